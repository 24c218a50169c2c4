# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Domain value objects for Venture FinSight.

This module defines the immutable records the engine works on:

- ``Transaction``: one row of the signed-amount ledger of a company,
- ``Company``: an entity of a portfolio, owned by exactly one user,
- ``BudgetPeriod`` / ``BudgetCategory`` / ``BudgetLine``: the planning
  domain (budget, forecast and actuals lines).

It also exposes the decimal helpers used everywhere monetary values are
handled. Binary floating point never enters the engine: every amount is a
``decimal.Decimal`` and is persisted as signed integer cents.

Sign convention
---------------
Amounts are stored pre-signed by the producer of the transaction. The
classifier (see ``classifier.py``) only re-signs where a statement line
explicitly requires it (investing outflows, operating outflows).

Statement flags
---------------
``affects_pl``, ``affects_cash_flow`` and ``affects_balance`` are stored
explicitly on every transaction and are the authority. The transaction
type only provides defaults, resolved once by ``make_transaction()``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal, Optional

ZERO = Decimal("0")
CENT = Decimal("0.01")

TransactionType = Literal[
    "revenue",
    "expense",
    "asset",
    "liability",
    "equity",
    "intercompany_transfer",
    "intercompany",
]

TRANSACTION_TYPES: frozenset[str] = frozenset(
    {
        "revenue",
        "expense",
        "asset",
        "liability",
        "equity",
        "intercompany_transfer",
        "intercompany",
    }
)

INTERCOMPANY_TYPES: frozenset[str] = frozenset({"intercompany_transfer", "intercompany"})

Direction = Literal["outflow", "inflow"]
PeriodType = Literal["BUDGET", "FORECAST", "ACTUALS"]
CategoryType = Literal["INCOME", "EXPENSE"]


# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------


def to_decimal(value: Any) -> Decimal:
    """Convert a numeric-like value to an exact Decimal.

    Floats are converted through their shortest ``repr`` so that ``0.1``
    becomes ``Decimal("0.1")`` and not its binary expansion.

    Raises:
        ValueError: if the value is empty, not numeric, NaN or infinite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid monetary amount: {value!r}")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Invalid monetary amount: {value!r}")
        result = Decimal(repr(value))
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            raise ValueError("Monetary amount cannot be empty.")
        try:
            result = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid monetary amount: {value!r}") from exc

    if not result.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return result


def to_amount(value: Any) -> Decimal:
    """Convert a ledger amount, refusing fractions of a cent.

    Amounts are stored as integer cents, so anything finer would be
    rounded on the way to the database.

    Raises:
        ValueError: if the value is not a valid amount or has more than two
            decimal places.
    """
    amount = to_decimal(value)
    if amount != amount.quantize(CENT):
        raise ValueError(
            f"Amount {value!r} has more than two decimal places; "
            "amounts must be whole cents."
        )
    return amount


def to_cents(amount: Decimal) -> int:
    """Return the signed integer number of cents for an amount (half-up)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Return the Decimal amount for a signed integer number of cents."""
    return Decimal(int(cents)).scaleb(-2)


def normalize_category(category: Optional[str]) -> str:
    """Lowercase, trim and snake-case a free-form category string."""
    text = str(category or "").strip().lower()
    for sep in (" ", "-", "/"):
        text = text.replace(sep, "_")
    while "__" in text:
        text = text.replace("__", "_")
    return text.strip("_")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transaction:
    """
    One row of a company's signed-amount ledger.

    Attributes
    ----------
    id :
        Opaque unique identifier.
    company_id :
        Owning entity.
    date :
        Calendar date; statements are computed through a date.
    type :
        One of ``TRANSACTION_TYPES`` ('intercompany' is an alias of
        'intercompany_transfer').
    category :
        Free-form classification string driving sub-bucketing.
    amount :
        Signed exact amount.
    description :
        Free text.
    affects_pl, affects_cash_flow, affects_balance :
        Statement flags, authoritative over the type defaults.
    counterparty_company_id, direction :
        Structured intercompany fields. When present they take precedence
        over any inference from the description.
    """

    id: str
    company_id: str
    date: date
    type: str
    category: str
    amount: Decimal
    description: str = ""
    affects_pl: bool = True
    affects_cash_flow: bool = True
    affects_balance: bool = True
    counterparty_company_id: Optional[str] = None
    direction: Optional[str] = None

    @property
    def is_intercompany(self) -> bool:
        return self.type in INTERCOMPANY_TYPES

    @property
    def normalized_type(self) -> str:
        """Type with the 'intercompany' alias folded onto 'intercompany_transfer'."""
        if self.is_intercompany:
            return "intercompany_transfer"
        return self.type


def default_flags(tx_type: str) -> tuple[bool, bool, bool]:
    """Return the default (affects_pl, affects_cash_flow, affects_balance)."""
    if tx_type in ("revenue", "expense"):
        return True, True, True
    return False, True, True


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date value: {value!r}") from exc


def make_transaction(
    *,
    id: str,
    company_id: str,
    date: Any,
    type: str,
    category: Optional[str],
    amount: Any,
    description: Optional[str] = None,
    affects_pl: Optional[bool] = None,
    affects_cash_flow: Optional[bool] = None,
    affects_balance: Optional[bool] = None,
    counterparty_company_id: Optional[str] = None,
    direction: Optional[str] = None,
) -> Transaction:
    """Build a Transaction, converting values and resolving unset flags.

    Raises:
        ValueError: if the type, direction, date or amount is invalid.
    """
    tx_type = str(type).strip().lower()
    if tx_type not in TRANSACTION_TYPES:
        raise ValueError(
            f"Unknown transaction type {type!r}. "
            f"Expected one of: {', '.join(sorted(TRANSACTION_TYPES))}."
        )
    if direction is not None and direction not in ("outflow", "inflow"):
        raise ValueError(f"Invalid transfer direction: {direction!r}")

    pl_default, cf_default, bs_default = default_flags(tx_type)

    return Transaction(
        id=str(id),
        company_id=str(company_id),
        date=_to_date(date),
        type=tx_type,
        category=str(category or "").strip(),
        amount=to_amount(amount),
        description=str(description or ""),
        affects_pl=pl_default if affects_pl is None else bool(affects_pl),
        affects_cash_flow=cf_default
        if affects_cash_flow is None
        else bool(affects_cash_flow),
        affects_balance=bs_default if affects_balance is None else bool(affects_balance),
        counterparty_company_id=counterparty_company_id,
        direction=direction,
    )


@dataclass(frozen=True)
class Company:
    """An entity of a portfolio. Every company has exactly one owning user."""

    id: str
    user_id: str
    name: str
    opening_cash: Decimal = ZERO
    status: str = "active"


# ---------------------------------------------------------------------------
# Planning domain
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetPeriod:
    """A planning period (budget, forecast or actuals) of one company."""

    id: str
    company_id: str
    name: str
    type: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass(frozen=True)
class BudgetCategory:
    """A planning category; INCOME categories post as revenue."""

    id: str
    name: str
    type: str
    account_code: Optional[str] = None


@dataclass(frozen=True)
class BudgetLine:
    """
    A planned amount for one category on one date.

    ``balance`` is derived (see ``balances.project_running_balances``).
    Approval is one-way: once ``is_approved`` is set, the line carries the
    id of the ledger transaction it was posted as.
    """

    id: str
    period_id: str
    company_id: str
    category_id: str
    date: date
    amount: Decimal
    notes: Optional[str] = None
    balance: Optional[Decimal] = None
    is_approved: bool = False
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    transaction_id: Optional[str] = None
