# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for Venture FinSight.

This module provides all low-level accessors for the SQLite database used
by the application. It is responsible for:

- Initializing and migrating the database schema.
- Storing companies and their signed-amount ledgers.
- Replacing the stored statements of a company atomically.
- Storing the planning domain (budget periods, categories and lines).
- Posting approved budget actuals as ledger transactions, atomically.

------------------------------------------------------------------------------
Schema Overview (schema version 2)
------------------------------------------------------------------------------

1) companies
   - id                  TEXT PRIMARY KEY
   - user_id             TEXT NOT NULL     -- owning user (portfolio)
   - name                TEXT NOT NULL
   - status              TEXT NOT NULL     -- "active" | "archived"
   - opening_cash_cents  INTEGER NOT NULL

2) transactions
   - id                       TEXT PRIMARY KEY
   - company_id               TEXT NOT NULL  -- foreign key to companies.id
   - date                     TEXT NOT NULL  -- ISO date "YYYY-MM-DD"
   - type                     TEXT NOT NULL
   - category                 TEXT NOT NULL
   - amount_cents             INTEGER NOT NULL  -- signed amount in cents
   - description              TEXT
   - affects_pl               INTEGER NOT NULL
   - affects_cash_flow        INTEGER NOT NULL
   - affects_balance          INTEGER NOT NULL
   - counterparty_company_id  TEXT         -- added in schema version 2
   - direction                TEXT         -- added in schema version 2

3) statements
   Long format, one row per statement line:
   (company_id, period_label, statement, line, amount_cents, computed_at).
   Rows of a company are always deleted and re-created together.

4) budget_periods / budget_categories / budget_lines
   Planning domain. `budget_lines.balance_cents` is the projected running
   balance; `transaction_id` links an approved line to the transaction it
   was posted as.

------------------------------------------------------------------------------
Transactions and atomicity
------------------------------------------------------------------------------

Every write goes through the `transaction()` context manager: the
connection is committed when the block completes and rolled back when it
raises. The failure surfaces as `AtomicOperationError`, chained to the
underlying cause. No partial write is ever visible.

------------------------------------------------------------------------------
Schema version
------------------------------------------------------------------------------

The schema version is tracked with `PRAGMA user_version`. It is resolved
once by `init_database()`, which migrates older files in place and returns
a `SchemaInfo`. Accessors never probe the schema themselves: callers run
`init_database()` once at startup.

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- Amounts are stored as signed integer cents and rebuilt as Decimal.
- Dates and timestamps are stored as ISO-8601 text (UTC for timestamps).
- Foreign key enforcement is explicitly enabled.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pandas as pd

from .budget import PostingPlan
from .engine import FinancialStatements
from .models import (
    BudgetCategory,
    BudgetLine,
    BudgetPeriod,
    Company,
    Transaction,
    from_cents,
    make_transaction,
    to_cents,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

STATEMENT_SECTIONS: tuple[str, ...] = ("pl", "balance_sheet", "cash_flow")

TRANSACTION_COLUMNS: tuple[str, ...] = (
    "id",
    "company_id",
    "date",
    "type",
    "category",
    "amount_cents",
    "description",
    "affects_pl",
    "affects_cash_flow",
    "affects_balance",
    "counterparty_company_id",
    "direction",
)

BUDGET_LINE_COLUMNS: tuple[str, ...] = (
    "id",
    "period_id",
    "company_id",
    "category_id",
    "date",
    "amount_cents",
    "notes",
    "balance_cents",
    "is_approved",
    "approved_at",
    "approved_by",
    "transaction_id",
)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for Venture FinSight.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


@dataclass(frozen=True)
class SchemaInfo:
    """
    Schema capabilities, resolved once when the database is opened.

    Attributes
    ----------
    version:
        Value of `PRAGMA user_version` after migration.
    migrated_from:
        Version found in the file before migration (0 for a new file).
    structured_intercompany:
        True when `transactions` carries the counterparty / direction
        columns.
    """

    version: int
    migrated_from: int
    structured_intercompany: bool


@dataclass(frozen=True)
class ImportStats:
    """
    Summary of an import of transactions into the database.

    Attributes
    ----------
    rows_inserted:
        Number of rows inserted into `transactions`.
    duplicates_detected:
        Number of rows skipped because their id already exists.
    """

    rows_inserted: int
    duplicates_detected: int


class AtomicOperationError(RuntimeError):
    """An atomic database operation failed and was rolled back."""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the set of column names for the given table."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    return {row[1] for row in cur.fetchall()}


def _migrate_schema_if_needed(conn: sqlite3.Connection, found: int) -> None:
    """
    Migrate a schema created by an older version in place.

    - version 1 → 2: add the structured intercompany columns
      (`counterparty_company_id`, `direction`) to `transactions`.

    Existing rows keep NULL in the new columns; direction is then inferred
    from the description until the normalizer back-fills it.
    """
    if found < 2:
        columns = _get_table_columns(conn, "transactions")
        if "counterparty_company_id" not in columns:
            conn.execute(
                "ALTER TABLE transactions ADD COLUMN counterparty_company_id TEXT;"
            )
        if "direction" not in columns:
            conn.execute("ALTER TABLE transactions ADD COLUMN direction TEXT;")


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS companies (
            id                 TEXT PRIMARY KEY,
            user_id            TEXT    NOT NULL,
            name               TEXT    NOT NULL,
            status             TEXT    NOT NULL DEFAULT 'active',
            opening_cash_cents INTEGER NOT NULL DEFAULT 0
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id                      TEXT PRIMARY KEY,
            company_id              TEXT    NOT NULL,
            date                    TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            type                    TEXT    NOT NULL,
            category                TEXT    NOT NULL,
            amount_cents            INTEGER NOT NULL,
            description             TEXT,
            affects_pl              INTEGER NOT NULL DEFAULT 1,
            affects_cash_flow       INTEGER NOT NULL DEFAULT 1,
            affects_balance         INTEGER NOT NULL DEFAULT 1,
            counterparty_company_id TEXT,
            direction               TEXT,

            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS statements (
            company_id    TEXT    NOT NULL,
            period_label  TEXT    NOT NULL,
            statement     TEXT    NOT NULL,  -- 'pl' | 'balance_sheet' | 'cash_flow'
            line          TEXT    NOT NULL,
            amount_cents  INTEGER NOT NULL,
            computed_at   TEXT    NOT NULL,

            PRIMARY KEY (company_id, period_label, statement, line),
            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS budget_periods (
            id          TEXT PRIMARY KEY,
            company_id  TEXT NOT NULL,
            name        TEXT NOT NULL,
            type        TEXT NOT NULL,  -- 'BUDGET' | 'FORECAST' | 'ACTUALS'
            start_date  TEXT,
            end_date    TEXT,

            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS budget_categories (
            id            TEXT PRIMARY KEY,
            name          TEXT NOT NULL,
            type          TEXT NOT NULL,  -- 'INCOME' | 'EXPENSE'
            account_code  TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS budget_lines (
            id              TEXT PRIMARY KEY,
            period_id       TEXT    NOT NULL,
            company_id      TEXT    NOT NULL,
            category_id     TEXT    NOT NULL,
            date            TEXT    NOT NULL,
            amount_cents    INTEGER NOT NULL,
            notes           TEXT,
            balance_cents   INTEGER,
            is_approved     INTEGER NOT NULL DEFAULT 0,
            approved_at     TEXT,
            approved_by     TEXT,
            transaction_id  TEXT,

            FOREIGN KEY (period_id) REFERENCES budget_periods(id),
            FOREIGN KEY (company_id) REFERENCES companies(id),
            FOREIGN KEY (category_id) REFERENCES budget_categories(id)
        );
        """
    )

    # Indexes
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_transactions_company_date
            ON transactions(company_id, date);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_budget_lines_period
            ON budget_lines(period_id, date);
        """
    )


def _to_iso_date(value) -> str:
    """Convert a date-like value to ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)[:10]).isoformat()


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _optional_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _transaction_to_row(tx: Transaction) -> tuple:
    return (
        tx.id,
        tx.company_id,
        tx.date.isoformat(),
        tx.type,
        tx.category,
        to_cents(tx.amount),
        tx.description,
        int(tx.affects_pl),
        int(tx.affects_cash_flow),
        int(tx.affects_balance),
        tx.counterparty_company_id,
        tx.direction,
    )


def _row_to_transaction(row: tuple) -> Transaction:
    """
    Convert a `transactions` row into a Transaction.

    Expected row layout: TRANSACTION_COLUMNS.
    """
    (
        tx_id,
        company_id,
        date_str,
        tx_type,
        category,
        amount_cents,
        description,
        affects_pl,
        affects_cash_flow,
        affects_balance,
        counterparty_company_id,
        direction,
    ) = row

    return Transaction(
        id=tx_id,
        company_id=company_id,
        date=date.fromisoformat(date_str),
        type=tx_type,
        category=category,
        amount=from_cents(amount_cents),
        description=description or "",
        affects_pl=bool(affects_pl),
        affects_cash_flow=bool(affects_cash_flow),
        affects_balance=bool(affects_balance),
        counterparty_company_id=counterparty_company_id,
        direction=direction,
    )


def _row_to_budget_line(row: tuple) -> BudgetLine:
    """Convert a `budget_lines` row (BUDGET_LINE_COLUMNS) into a BudgetLine."""
    (
        line_id,
        period_id,
        company_id,
        category_id,
        date_str,
        amount_cents,
        notes,
        balance_cents,
        is_approved,
        approved_at,
        approved_by,
        transaction_id,
    ) = row

    return BudgetLine(
        id=line_id,
        period_id=period_id,
        company_id=company_id,
        category_id=category_id,
        date=date.fromisoformat(date_str),
        amount=from_cents(amount_cents),
        notes=notes,
        balance=from_cents(balance_cents) if balance_cents is not None else None,
        is_approved=bool(is_approved),
        approved_at=datetime.fromisoformat(approved_at) if approved_at else None,
        approved_by=approved_by,
        transaction_id=transaction_id,
    )


def _statement_rows(
    company_id: str, label: str, statements: FinancialStatements, computed_at: str
) -> list[tuple]:
    """Flatten one FinancialStatements into long-format rows."""
    rows: list[tuple] = []
    for section in STATEMENT_SECTIONS:
        statement = getattr(statements, section)
        for f in fields(statement):
            value = getattr(statement, f.name)
            if not isinstance(value, Decimal):
                continue
            rows.append(
                (company_id, label, section, f.name, to_cents(value), computed_at)
            )
    return rows


# ---------------------------------------------------------------------------
# Public API: schema and transactions
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> SchemaInfo:
    """
    Initialize (and migrate) the database schema.

    - Creates the SQLite file if it does not exist.
    - Creates tables and indexes if they are missing.
    - Migrates files written by older versions and records the schema
      version in `PRAGMA user_version`.
    - This function is idempotent: calling it multiple times is safe.

    Returns
    -------
    SchemaInfo
        The schema capabilities, to be resolved once at startup.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    _ensure_sqlite(cfg)
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        found = conn.execute("PRAGMA user_version;").fetchone()[0]
        _create_schema_if_needed(conn)
        if found < SCHEMA_VERSION:
            _migrate_schema_if_needed(conn, found)
            if found:
                logger.info("Migrated database schema %d -> %d", found, SCHEMA_VERSION)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
        conn.commit()

        columns = _get_table_columns(conn, "transactions")
    finally:
        conn.close()

    return SchemaInfo(
        version=SCHEMA_VERSION,
        migrated_from=found,
        structured_intercompany={"counterparty_company_id", "direction"}.issubset(
            columns
        ),
    )


@contextmanager
def transaction(cfg: DatabaseConfig) -> Iterator[sqlite3.Connection]:
    """
    Run a block of statements as one all-or-nothing unit.

    Commits when the block completes; rolls back and raises
    AtomicOperationError (chained to the cause) when it raises.
    """
    conn = _connect(cfg)
    try:
        yield conn
        conn.commit()
    except Exception as exc:
        conn.rollback()
        raise AtomicOperationError(f"Database operation rolled back: {exc}") from exc
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------


def upsert_company(cfg: DatabaseConfig, company: Company) -> None:
    """Insert a company, or update it when the id already exists."""
    with transaction(cfg) as conn:
        conn.execute(
            """
            INSERT INTO companies (id, user_id, name, status, opening_cash_cents)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id = excluded.user_id,
                name = excluded.name,
                status = excluded.status,
                opening_cash_cents = excluded.opening_cash_cents;
            """,
            (
                company.id,
                company.user_id,
                company.name,
                company.status,
                to_cents(company.opening_cash),
            ),
        )


def _row_to_company(row: tuple) -> Company:
    company_id, user_id, name, status, opening_cash_cents = row
    return Company(
        id=company_id,
        user_id=user_id,
        name=name,
        opening_cash=from_cents(opening_cash_cents),
        status=status,
    )


def get_company(cfg: DatabaseConfig, company_id: str) -> Company | None:
    """Return a company by id, or None if it does not exist."""
    conn = _connect(cfg)
    try:
        row = conn.execute(
            """
            SELECT id, user_id, name, status, opening_cash_cents
              FROM companies
             WHERE id = ?;
            """,
            (company_id,),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_company(row) if row is not None else None


def list_companies(
    cfg: DatabaseConfig,
    user_id: str | None = None,
    status: str | None = None,
) -> list[Company]:
    """
    List companies, optionally restricted to one owning user and/or status.

    Companies are ordered by name, then id.
    """
    clauses: list[str] = []
    params: list[object] = []
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    conn = _connect(cfg)
    try:
        rows = conn.execute(
            f"""
            SELECT id, user_id, name, status, opening_cash_cents
              FROM companies
              {where}
             ORDER BY name, id;
            """,
            params,
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_company(row) for row in rows]


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

_INSERT_TRANSACTION_SQL = f"""
    INSERT INTO transactions ({", ".join(TRANSACTION_COLUMNS)})
    VALUES ({", ".join("?" for _ in TRANSACTION_COLUMNS)});
"""


def insert_transactions(
    cfg: DatabaseConfig, transactions: Iterable[Transaction]
) -> int:
    """Insert transactions in one atomic batch and return the row count."""
    rows = [_transaction_to_row(tx) for tx in transactions]
    with transaction(cfg) as conn:
        conn.executemany(_INSERT_TRANSACTION_SQL, rows)
    return len(rows)


def _ensure_dataframe_columns(df: pd.DataFrame) -> None:
    """Validate that the DataFrame contains the expected columns."""
    required = {"date", "type", "category", "amount"}
    missing = required.difference(df.columns)
    if missing:
        cols = ", ".join(sorted(missing))
        msg = f"DataFrame is missing required column(s): {cols}"
        raise ValueError(msg)


def _cell(row: pd.Series, column: str):
    """Return a cell value, or None when the column is absent or empty."""
    if column not in row.index:
        return None
    value = row[column]
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _cell_flag(row: pd.Series, column: str) -> Optional[bool]:
    value = _cell(row, column)
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "y"):
        return True
    if text in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean value for {column!r}: {value!r}")


def dataframe_to_transactions(
    df: pd.DataFrame, company_id: str | None = None
) -> list[Transaction]:
    """
    Build Transaction objects from a normalized transactions DataFrame.

    Parameters
    ----------
    df:
        Columns `date`, `type`, `category`, `amount` and optionally `id`,
        `company_id`, `description`, `affects_pl`, `affects_cash_flow`,
        `affects_balance`, `counterparty_company_id`, `direction`.
        Amounts may be strings (kept exact) or numbers.
    company_id:
        Company to assign to every row; required when the DataFrame has no
        `company_id` column.

    Raises
    ------
    ValueError
        If a column or a value is invalid.
    """
    _ensure_dataframe_columns(df)

    out: list[Transaction] = []
    for idx, row in df.iterrows():
        owner = company_id or _cell(row, "company_id")
        if not owner:
            raise ValueError(f"Row {idx}: no company_id given for the transaction.")
        try:
            tx = make_transaction(
                id=str(_cell(row, "id") or uuid.uuid4().hex),
                company_id=str(owner),
                date=_cell(row, "date"),
                type=str(_cell(row, "type") or ""),
                category=_cell(row, "category"),
                amount=_cell(row, "amount"),
                description=_cell(row, "description"),
                affects_pl=_cell_flag(row, "affects_pl"),
                affects_cash_flow=_cell_flag(row, "affects_cash_flow"),
                affects_balance=_cell_flag(row, "affects_balance"),
                counterparty_company_id=_cell(row, "counterparty_company_id"),
                direction=_cell(row, "direction"),
            )
        except ValueError as exc:
            raise ValueError(f"Row {idx}: {exc}") from exc
        out.append(tx)
    return out


def import_transactions(
    df: pd.DataFrame,
    cfg: DatabaseConfig,
    company_id: str | None = None,
) -> ImportStats:
    """
    Import a batch of transactions into the database.

    Behavior
    --------
    - Every row is validated and converted before anything is written.
    - Rows whose id already exists in `transactions` are not inserted and are
      counted as duplicates.
    - All remaining rows are inserted in one atomic batch.

    Raises
    ------
    ValueError
        If the DataFrame or one of its values is invalid.
    AtomicOperationError
        If the insert fails (for example: unknown company).
    """
    transactions = dataframe_to_transactions(df, company_id)

    rows_inserted = 0
    duplicates = 0
    with transaction(cfg) as conn:
        cur = conn.cursor()
        for tx in transactions:
            cur.execute("SELECT 1 FROM transactions WHERE id = ?;", (tx.id,))
            if cur.fetchone() is not None:
                duplicates += 1
                continue
            cur.execute(_INSERT_TRANSACTION_SQL, _transaction_to_row(tx))
            rows_inserted += 1

    logger.info(
        "Imported %d transaction(s), %d duplicate(s) skipped", rows_inserted, duplicates
    )
    return ImportStats(rows_inserted=rows_inserted, duplicates_detected=duplicates)


def load_transactions(
    cfg: DatabaseConfig,
    company_id: str,
    types: Sequence[str] | None = None,
) -> list[Transaction]:
    """Load the ledger of one company ordered by (date, id)."""
    sql = f"SELECT {', '.join(TRANSACTION_COLUMNS)} FROM transactions WHERE company_id = ?"
    params: list[object] = [company_id]
    if types:
        sql += f" AND type IN ({', '.join('?' for _ in types)})"
        params.extend(types)
    sql += " ORDER BY date, id;"

    conn = _connect(cfg)
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    return [_row_to_transaction(row) for row in rows]


def update_transactions(
    cfg: DatabaseConfig, transactions: Iterable[Transaction]
) -> int:
    """
    Overwrite existing transactions (matched by id) in one atomic batch.

    Raises
    ------
    AtomicOperationError
        If any transaction does not exist; no row is updated then.
    """
    assignments = ", ".join(f"{col} = ?" for col in TRANSACTION_COLUMNS[1:])
    count = 0
    with transaction(cfg) as conn:
        for tx in transactions:
            row = _transaction_to_row(tx)
            cur = conn.execute(
                f"UPDATE transactions SET {assignments} WHERE id = ?;",
                (*row[1:], tx.id),
            )
            if cur.rowcount != 1:
                raise LookupError(f"Transaction {tx.id!r} does not exist.")
            count += 1
    return count


def delete_transactions(cfg: DatabaseConfig, ids: Iterable[str]) -> int:
    """
    Delete transactions by id in one atomic batch.

    Raises
    ------
    AtomicOperationError
        If any id does not exist; nothing is deleted then.
    """
    count = 0
    with transaction(cfg) as conn:
        for tx_id in ids:
            cur = conn.execute("DELETE FROM transactions WHERE id = ?;", (tx_id,))
            if cur.rowcount != 1:
                raise LookupError(f"Transaction {tx_id!r} does not exist.")
            count += 1
    return count


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


def replace_statements(
    cfg: DatabaseConfig,
    company_id: str,
    statements: Mapping[str, FinancialStatements],
) -> int:
    """
    Replace every stored statement of a company with a new set.

    The previous rows are deleted and the new ones inserted in a single
    transaction: readers see either the old set or the new set, never a
    mix, and a failure leaves the old set untouched.

    Parameters
    ----------
    statements:
        Mapping of period label -> FinancialStatements.

    Returns
    -------
    int
        Number of statement rows written.
    """
    computed_at = _now_utc_iso()
    written = 0
    with transaction(cfg) as conn:
        conn.execute("DELETE FROM statements WHERE company_id = ?;", (company_id,))
        for label, period_statements in statements.items():
            rows = _statement_rows(company_id, label, period_statements, computed_at)
            conn.executemany(
                """
                INSERT INTO statements (
                    company_id, period_label, statement, line,
                    amount_cents, computed_at
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                rows,
            )
            written += len(rows)
    return written


def load_statements(cfg: DatabaseConfig, company_id: str | None = None) -> pd.DataFrame:
    """
    Load stored statements as a long-format DataFrame.

    Columns: company_id, period_label, statement, line, amount (Decimal),
    computed_at. An empty DataFrame with the same columns is returned when
    nothing is stored.
    """
    columns = ["company_id", "period_label", "statement", "line", "amount", "computed_at"]

    sql = (
        "SELECT company_id, period_label, statement, line, amount_cents, computed_at "
        "FROM statements"
    )
    params: list[object] = []
    if company_id is not None:
        sql += " WHERE company_id = ?"
        params.append(company_id)
    sql += " ORDER BY company_id, period_label, statement, rowid;"

    conn = _connect(cfg)
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()

    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(
        rows,
        columns=[
            "company_id",
            "period_label",
            "statement",
            "line",
            "amount_cents",
            "computed_at",
        ],
    )
    df["amount"] = df["amount_cents"].map(from_cents)
    return df[columns]


# ---------------------------------------------------------------------------
# Planning domain
# ---------------------------------------------------------------------------


def insert_budget_period(cfg: DatabaseConfig, period: BudgetPeriod) -> None:
    with transaction(cfg) as conn:
        conn.execute(
            """
            INSERT INTO budget_periods (id, company_id, name, type, start_date, end_date)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                period.id,
                period.company_id,
                period.name,
                period.type,
                period.start_date.isoformat() if period.start_date else None,
                period.end_date.isoformat() if period.end_date else None,
            ),
        )


def get_budget_period(cfg: DatabaseConfig, period_id: str) -> BudgetPeriod | None:
    conn = _connect(cfg)
    try:
        row = conn.execute(
            """
            SELECT id, company_id, name, type, start_date, end_date
              FROM budget_periods
             WHERE id = ?;
            """,
            (period_id,),
        ).fetchone()
    finally:
        conn.close()

    if row is None:
        return None
    return BudgetPeriod(
        id=row[0],
        company_id=row[1],
        name=row[2],
        type=row[3],
        start_date=_optional_date(row[4]),
        end_date=_optional_date(row[5]),
    )


def insert_budget_category(cfg: DatabaseConfig, category: BudgetCategory) -> None:
    with transaction(cfg) as conn:
        conn.execute(
            """
            INSERT INTO budget_categories (id, name, type, account_code)
            VALUES (?, ?, ?, ?);
            """,
            (category.id, category.name, category.type, category.account_code),
        )


def load_budget_categories(cfg: DatabaseConfig) -> dict[str, BudgetCategory]:
    """Return every budget category keyed by id."""
    conn = _connect(cfg)
    try:
        rows = conn.execute(
            "SELECT id, name, type, account_code FROM budget_categories ORDER BY id;"
        ).fetchall()
    finally:
        conn.close()
    return {
        row[0]: BudgetCategory(id=row[0], name=row[1], type=row[2], account_code=row[3])
        for row in rows
    }


def insert_budget_lines(cfg: DatabaseConfig, lines: Iterable[BudgetLine]) -> int:
    """Insert budget lines in one atomic batch and return the row count."""
    rows = [
        (
            line.id,
            line.period_id,
            line.company_id,
            line.category_id,
            _to_iso_date(line.date),
            to_cents(line.amount),
            line.notes,
            to_cents(line.balance) if line.balance is not None else None,
            int(line.is_approved),
            line.approved_at.isoformat() if line.approved_at else None,
            line.approved_by,
            line.transaction_id,
        )
        for line in lines
    ]
    with transaction(cfg) as conn:
        conn.executemany(
            f"""
            INSERT INTO budget_lines ({", ".join(BUDGET_LINE_COLUMNS)})
            VALUES ({", ".join("?" for _ in BUDGET_LINE_COLUMNS)});
            """,
            rows,
        )
    return len(rows)


def load_budget_lines(cfg: DatabaseConfig, period_id: str) -> list[BudgetLine]:
    """Load the lines of one budget period ordered by (date, id)."""
    conn = _connect(cfg)
    try:
        rows = conn.execute(
            f"""
            SELECT {", ".join(BUDGET_LINE_COLUMNS)}
              FROM budget_lines
             WHERE period_id = ?
             ORDER BY date, id;
            """,
            (period_id,),
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_budget_line(row) for row in rows]


def update_line_balances(cfg: DatabaseConfig, lines: Iterable[BudgetLine]) -> int:
    """Store the projected balance of each line in one atomic batch."""
    count = 0
    with transaction(cfg) as conn:
        for line in lines:
            balance = to_cents(line.balance) if line.balance is not None else None
            cur = conn.execute(
                "UPDATE budget_lines SET balance_cents = ? WHERE id = ?;",
                (balance, line.id),
            )
            if cur.rowcount != 1:
                raise LookupError(f"Budget line {line.id!r} does not exist.")
            count += 1
    return count


def post_actuals(cfg: DatabaseConfig, plan: PostingPlan) -> dict[str, object]:
    """
    Apply a posting plan: create its transactions and approve its lines.

    All-or-nothing: when any transaction cannot be created or any line is
    already approved (or missing), the whole batch is rolled back and
    AtomicOperationError is raised.

    Returns
    -------
    dict
        ``plan.summary()`` once the batch is committed.
    """
    with transaction(cfg) as conn:
        for tx, line in zip(plan.transactions, plan.approved_lines):
            conn.execute(_INSERT_TRANSACTION_SQL, _transaction_to_row(tx))
            cur = conn.execute(
                """
                UPDATE budget_lines
                   SET is_approved = 1,
                       approved_at = ?,
                       approved_by = ?,
                       transaction_id = ?
                 WHERE id = ?
                   AND is_approved = 0;
                """,
                (
                    line.approved_at.isoformat() if line.approved_at else _now_utc_iso(),
                    line.approved_by,
                    tx.id,
                    line.id,
                ),
            )
            if cur.rowcount != 1:
                raise ValueError(
                    f"Budget line {line.id!r} is missing or already approved."
                )

    summary = plan.summary()
    logger.info(
        "Posted %d transaction(s) for period %s",
        summary["transactions"],
        plan.period_id,
    )
    return summary
