# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for Venture FinSight.

This module reads ledger transactions and budget lines from CSV files and
normalizes them into a consistent DataFrame structure that the database
layer can import.

Transactions CSV
----------------
Column names are case-insensitive. Two amount formats are supported:

1) Signed amount format
       date, type, category, amount[, description]

2) Debit / credit format
       date, type, category, debit, credit[, description]

   The signed amount is computed as ``credit - debit``.

Optional columns: ``id``, ``company_id``, ``affects_pl``,
``affects_cash_flow``, ``affects_balance``, ``counterparty_company_id``,
``direction``. The column ``label`` is accepted as an alias for
``description``.

Amounts are read as *text* and kept as exact decimal strings: binary
floating point never enters the pipeline.

Budget lines CSV
----------------
       date, category_id, amount[, id, notes]

If the CSV structure does not match, a clear ValueError is raised.
"""

import os
from typing import Optional, Union

import pandas as pd

from .models import BudgetLine, make_transaction, to_amount, to_decimal

TRANSACTION_OPTIONAL_COLUMNS: tuple[str, ...] = (
    "id",
    "company_id",
    "description",
    "affects_pl",
    "affects_cash_flow",
    "affects_balance",
    "counterparty_company_id",
    "direction",
)


def _read_text_csv(path: Union[str, "os.PathLike[str]"]) -> pd.DataFrame:
    """Read a CSV with every column as text and lower-cased column names."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.lower().strip() for c in df.columns]
    return df


def _parse_dates(d: pd.DataFrame) -> None:
    # Parse date strictly: invalid dates should fail loudly
    try:
        d["date"] = pd.to_datetime(d["date"], errors="raise").dt.date
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Invalid values in 'date' column.") from exc


def _check_amounts(values: pd.Series, column: str, allow_blank: bool = False) -> None:
    for raw in values:
        if allow_blank and not str(raw).strip():
            continue
        try:
            to_amount(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid numeric values in {column!r} column: {exc}") from exc


def read_transactions_csv(
    path: Union[str, "os.PathLike[str]"],
    company_id: Optional[str] = None,
) -> pd.DataFrame:
    """
    Read ledger transactions from a CSV file and normalize them.

    Parameters
    ----------
    path:
        Path to the CSV file.
    company_id:
        Owning company assigned to every row. When omitted the CSV must
        carry a ``company_id`` column.

    Returns
    -------
    pandas.DataFrame
        Columns: date (datetime.date), type, category, amount (str, exact),
        plus every optional column present in the file. Transaction types
        are validated, so the frame can be imported as is.

    Raises
    ------
    ValueError
        If the structure is not supported or if a value cannot be parsed.
    """
    df = _read_text_csv(path)
    cols = set(df.columns)

    # Backward compat: 'label' -> 'description' if needed
    if "label" in cols and "description" not in cols:
        df = df.rename(columns={"label": "description"})
        cols = set(df.columns)

    base = {"date", "type", "category"}
    if not base.issubset(cols):
        raise ValueError(
            "Invalid transactions structure. Expected either:\n"
            "  - date, type, category, amount[, description]\n"
            "  - date, type, category, debit, credit[, description]\n"
            "(column names are case-insensitive)."
        )

    d = df.copy()
    _parse_dates(d)

    # ----- Signed amount format ---------------------------------------------
    if "amount" in cols:
        _check_amounts(d["amount"], "amount")
    # ----- Debit / credit format --------------------------------------------
    elif {"debit", "credit"}.issubset(cols):
        _check_amounts(d["debit"], "debit", allow_blank=True)
        _check_amounts(d["credit"], "credit", allow_blank=True)
        d["amount"] = [
            str(to_decimal(credit.strip() or "0") - to_decimal(debit.strip() or "0"))
            for debit, credit in zip(d["debit"], d["credit"])
        ]
    else:
        raise ValueError("Transactions CSV needs an 'amount' or 'debit'/'credit' columns.")

    if company_id is not None:
        d["company_id"] = company_id
    elif "company_id" not in d.columns:
        raise ValueError("Transactions CSV has no 'company_id' column and none was given.")

    d["type"] = d["type"].str.strip().str.lower()
    for idx, row in d.iterrows():
        # Validates the type, the direction and the amount of every row.
        try:
            make_transaction(
                id=row.get("id") or f"row-{idx}",
                company_id=row["company_id"],
                date=row["date"],
                type=row["type"],
                category=row["category"],
                amount=row["amount"],
                direction=row.get("direction") or None,
            )
        except ValueError as exc:
            raise ValueError(f"Row {idx}: {exc}") from exc

    columns = ["date", "type", "category", "amount"] + [
        c for c in TRANSACTION_OPTIONAL_COLUMNS if c in d.columns
    ]
    return d[columns].reset_index(drop=True)


def read_budget_lines_csv(path: Union[str, "os.PathLike[str]"]) -> pd.DataFrame:
    """
    Read budget lines from a CSV file.

    Returns
    -------
    pandas.DataFrame
        Columns: date (datetime.date), category_id, amount (str, exact),
        and ``id`` / ``notes`` when present.

    Raises
    ------
    ValueError
        If required columns are missing or values cannot be parsed.
    """
    df = _read_text_csv(path)
    required = {"date", "category_id", "amount"}
    missing = required.difference(df.columns)
    if missing:
        raise ValueError(
            f"Budget lines CSV is missing required column(s): {', '.join(sorted(missing))}"
        )

    d = df.copy()
    _parse_dates(d)
    _check_amounts(d["amount"], "amount")

    columns = ["date", "category_id", "amount"] + [
        c for c in ("id", "notes") if c in d.columns
    ]
    return d[columns].reset_index(drop=True)


def budget_lines_from_frame(
    df: pd.DataFrame, period_id: str, company_id: str
) -> list[BudgetLine]:
    """Build BudgetLine objects for one period from ``read_budget_lines_csv``."""
    lines = []
    for idx, row in df.iterrows():
        lines.append(
            BudgetLine(
                id=str(row.get("id") or f"{period_id}-{idx + 1}"),
                period_id=period_id,
                company_id=company_id,
                category_id=str(row["category_id"]),
                date=row["date"],
                amount=to_amount(row["amount"]),
                notes=row.get("notes") or None,
            )
        )
    return lines
