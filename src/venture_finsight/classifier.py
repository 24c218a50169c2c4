# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Transaction classifier.

Maps one ledger transaction onto its effect on each of the three
statements:

- Profit & Loss (only when ``affects_pl``),
- Cash Flow (only when ``affects_cash_flow``),
- Balance Sheet (only when ``affects_balance``).

Each effect names a statement line and carries the signed amount to add
to that line. Classification is best-effort: a category that cannot be
matched under a known type lands on the ``"unclassified"`` line instead of
raising, so that recalculation stays resilient to partially migrated data.

Category matching
-----------------
Categories are normalized with ``models.normalize_category`` and matched
against keyword tables. A keyword matches when it equals the category,
equals one of its ``_``-separated tokens, or (for keywords longer than
three characters) appears anywhere in it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .models import Transaction, normalize_category

logger = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"

# P&L lines -----------------------------------------------------------------

REVENUE_LINES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("product_revenue", ("product", "sales", "merchandise", "goods")),
    ("service_revenue", ("service", "consulting", "subscription", "saas", "fees")),
)
OTHER_REVENUE = "other_revenue"

EXPENSE_LINES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "direct_costs",
        ("direct_cost", "direct", "cogs", "cost_of_goods", "cost_of_sales", "materials"),
    ),
    ("infrastructure_costs", ("infrastructure", "hosting", "cloud", "server")),
    ("sales_marketing", ("marketing", "sales", "advertising", "ads")),
    ("rd_expenses", ("r&d", "rd", "research", "development", "engineering")),
    (
        "admin_expenses",
        (
            "admin",
            "administrative",
            "general",
            "office",
            "legal",
            "payroll",
            "salaries",
            "rent",
            "insurance",
            "accounting",
        ),
    ),
)

PL_LINES: tuple[str, ...] = (
    "product_revenue",
    "service_revenue",
    OTHER_REVENUE,
    "direct_costs",
    "infrastructure_costs",
    "sales_marketing",
    "rd_expenses",
    "admin_expenses",
    "unclassified_expenses",
)

# Balance sheet lines --------------------------------------------------------

ASSET_LINES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("accounts_receivable", ("receivable", "receivables", "ar")),
    ("inventory", ("inventory", "stock")),
    ("fixed_assets", ("equipment", "fixed", "property", "hardware", "furniture")),
)

LIABILITY_LINES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("accounts_payable", ("payable", "payables", "ap")),
    ("short_term_debt", ("short_term_debt", "short_term", "credit_line")),
    ("long_term_debt", ("long_term_debt", "long_term", "loan", "mortgage", "debt")),
)

CASH_KEYWORDS: tuple[str, ...] = ("cash",)
INVESTING_KEYWORDS: tuple[str, ...] = (
    "equipment",
    "inventory",
    "fixed",
    "property",
    "hardware",
    "furniture",
)
RECEIVABLE_KEYWORDS: tuple[str, ...] = ("receivable", "receivables", "ar")
FINANCING_DEBT_KEYWORDS: tuple[str, ...] = ("debt", "loan", "credit_line", "mortgage")
PAYABLE_KEYWORDS: tuple[str, ...] = ("payable", "payables", "ap")


@dataclass(frozen=True)
class Effect:
    """Signed contribution of one transaction to one statement line."""

    line: str
    amount: Decimal


@dataclass(frozen=True)
class Classification:
    """Effects of one transaction on the three statements (None = no effect)."""

    pl: Optional[Effect] = None
    cash_flow: Optional[Effect] = None
    balance_sheet: Optional[Effect] = None

    @property
    def is_unclassified(self) -> bool:
        return any(
            effect is not None and effect.line in (UNCLASSIFIED, "unclassified_expenses")
            for effect in (self.pl, self.cash_flow, self.balance_sheet)
        )


def matches(category: str, keywords: tuple[str, ...]) -> bool:
    """Return True if a normalized category matches any of the keywords."""
    if not category:
        return False
    tokens = set(category.split("_"))
    for kw in keywords:
        if kw == category or kw in tokens:
            return True
        if len(kw) > 3 and kw in category:
            return True
    return False


def _first_line(
    category: str, table: tuple[tuple[str, tuple[str, ...]], ...]
) -> Optional[str]:
    for line, keywords in table:
        if matches(category, keywords):
            return line
    return None


# ---------------------------------------------------------------------------
# Per-statement mappings
# ---------------------------------------------------------------------------


def pl_effect(tx: Transaction) -> Optional[Effect]:
    """Profit & Loss effect of a transaction, if any.

    Revenue keeps its stored sign (a refund reduces revenue). Expense lines
    hold magnitudes, whatever sign the producer used.
    """
    if not tx.affects_pl:
        return None

    category = normalize_category(tx.category)
    if tx.type == "revenue":
        line = _first_line(category, REVENUE_LINES) or OTHER_REVENUE
        return Effect(line, tx.amount)

    if tx.type == "expense":
        line = _first_line(category, EXPENSE_LINES) or "unclassified_expenses"
        return Effect(line, abs(tx.amount))

    return None


def cash_flow_effect(tx: Transaction) -> Optional[Effect]:
    """Cash Flow effect (operating / investing / financing), if any."""
    if not tx.affects_cash_flow:
        return None

    category = normalize_category(tx.category)
    amount = tx.amount

    if tx.type == "revenue":
        return Effect("operating", amount)
    if tx.type == "expense":
        return Effect("operating", -abs(amount))
    if tx.is_intercompany:
        return Effect("operating", amount)

    if tx.type == "asset":
        if matches(category, CASH_KEYWORDS):
            return Effect("operating", amount)
        if matches(category, INVESTING_KEYWORDS):
            # Buying an asset is a cash outflow.
            return Effect("investing", -amount)
        if matches(category, RECEIVABLE_KEYWORDS):
            return None
        return Effect(UNCLASSIFIED, amount)

    if tx.type == "equity":
        return Effect("financing", amount)

    if tx.type == "liability":
        if matches(category, PAYABLE_KEYWORDS):
            return Effect("operating", -abs(amount))
        if matches(category, FINANCING_DEBT_KEYWORDS) or category in (
            "short_term_debt",
            "long_term_debt",
        ):
            return Effect("financing", amount)
        return Effect(UNCLASSIFIED, amount)

    return Effect(UNCLASSIFIED, amount)


def balance_sheet_effect(tx: Transaction) -> Optional[Effect]:
    """Balance Sheet effect, if any.

    Cash never posts here: cash equivalents come only from the cash flow
    statement's ending cash.
    """
    if not tx.affects_balance:
        return None

    category = normalize_category(tx.category)

    if tx.type == "asset":
        if matches(category, CASH_KEYWORDS):
            return None
        line = _first_line(category, ASSET_LINES) or UNCLASSIFIED
        return Effect(line, tx.amount)

    if tx.type == "liability":
        line = _first_line(category, LIABILITY_LINES) or UNCLASSIFIED
        return Effect(line, tx.amount)

    if tx.type == "equity":
        return Effect("contributed_capital", tx.amount)

    if tx.type in ("revenue", "expense") or tx.is_intercompany:
        return None

    return Effect(UNCLASSIFIED, tx.amount)


def classify(tx: Transaction) -> Classification:
    """Classify a transaction onto the three statements."""
    result = Classification(
        pl=pl_effect(tx),
        cash_flow=cash_flow_effect(tx),
        balance_sheet=balance_sheet_effect(tx),
    )
    if result.is_unclassified:
        logger.debug(
            "Transaction %s (%s/%s) partly unclassified",
            tx.id,
            tx.type,
            tx.category,
        )
    return result
