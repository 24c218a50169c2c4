# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Core statement calculator for Venture FinSight.

This module folds the ledger of a single company into three internally
consistent statements:

1. Profit & Loss
   --------------
   Revenue split into product / service / other revenue, costs split into
   direct costs, infrastructure, sales & marketing, R&D and admin, plus an
   ``unclassified_expenses`` bucket for expense categories that could not
   be matched. COGS, operating expenses, net profit and profit margin are
   derived once from these buckets.

2. Cash Flow
   ----------
   Operating, investing and financing movements, chained from a
   beginning cash figure:

       ending_cash = beginning_cash + operating + investing + financing

3. Balance Sheet
   --------------
   Cash equivalents are *always* the cash flow ending cash (a single source
   of truth). Receivables, inventory, fixed assets, payables and debts come
   from the balance-sheet effects of the transactions, optionally starting
   from a prior balance sheet when periods are chained. Total equity is the
   residual ``total_assets - total_liabilities``.

Notes
-----
- The calculator never rejects a transaction. Unclassifiable categories
  are absorbed by the classifier and reported through
  ``FinancialStatements.unclassified``.
- The fold is deterministic: transactions are sorted by (date, id) before
  being folded, and Decimal sums are exact. Recomputing from the same
  input always yields equal statements, which is what the
  delete-then-recreate storage of statements relies on.
- Period chaining lives in ``multi_periods.py``; consolidation across
  companies lives in ``consolidation.py``.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .classifier import classify
from .models import CENT, ZERO, Transaction, to_decimal

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = CENT


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProfitAndLoss:
    """
    Profit & Loss statement.

    Attributes
    ----------
    product_revenue, service_revenue, other_revenue :
        Revenue buckets.
    direct_costs, infrastructure_costs :
        Cost of goods sold components.
    sales_marketing, rd_expenses, admin_expenses :
        Operating expense components.
    unclassified_expenses :
        Expenses whose category could not be matched.
    revenue, cogs, operating_expenses, total_expenses, net_profit :
        Derived totals.
    profit_margin :
        ``net_profit / revenue * 100`` rounded to 2 decimals, or 0 when
        revenue is not positive.
    """

    product_revenue: Decimal = ZERO
    service_revenue: Decimal = ZERO
    other_revenue: Decimal = ZERO
    direct_costs: Decimal = ZERO
    infrastructure_costs: Decimal = ZERO
    sales_marketing: Decimal = ZERO
    rd_expenses: Decimal = ZERO
    admin_expenses: Decimal = ZERO
    unclassified_expenses: Decimal = ZERO
    revenue: Decimal = ZERO
    cogs: Decimal = ZERO
    operating_expenses: Decimal = ZERO
    total_expenses: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_margin: Decimal = ZERO

    @classmethod
    def from_buckets(cls, buckets: dict[str, Decimal]) -> "ProfitAndLoss":
        """Build a P&L from its buckets, deriving every total exactly once."""
        product = buckets.get("product_revenue", ZERO)
        service = buckets.get("service_revenue", ZERO)
        other = buckets.get("other_revenue", ZERO)
        direct = buckets.get("direct_costs", ZERO)
        infra = buckets.get("infrastructure_costs", ZERO)
        sales = buckets.get("sales_marketing", ZERO)
        rd = buckets.get("rd_expenses", ZERO)
        admin = buckets.get("admin_expenses", ZERO)
        unclassified = buckets.get("unclassified_expenses", ZERO)

        revenue = product + service + other
        cogs = direct + infra
        opex = sales + rd + admin
        total_expenses = cogs + opex + unclassified
        net_profit = revenue - total_expenses

        return cls(
            product_revenue=product,
            service_revenue=service,
            other_revenue=other,
            direct_costs=direct,
            infrastructure_costs=infra,
            sales_marketing=sales,
            rd_expenses=rd,
            admin_expenses=admin,
            unclassified_expenses=unclassified,
            revenue=revenue,
            cogs=cogs,
            operating_expenses=opex,
            total_expenses=total_expenses,
            net_profit=net_profit,
            profit_margin=profit_margin(net_profit, revenue),
        )


@dataclass(frozen=True)
class CashFlow:
    """Cash Flow statement; ``ending_cash`` chains into the next period."""

    beginning_cash: Decimal = ZERO
    operating_cash_flow: Decimal = ZERO
    investing_cash_flow: Decimal = ZERO
    financing_cash_flow: Decimal = ZERO
    net_cash_flow: Decimal = ZERO
    ending_cash: Decimal = ZERO

    @classmethod
    def from_flows(
        cls,
        beginning_cash: Decimal,
        operating: Decimal,
        investing: Decimal,
        financing: Decimal,
    ) -> "CashFlow":
        net = operating + investing + financing
        return cls(
            beginning_cash=beginning_cash,
            operating_cash_flow=operating,
            investing_cash_flow=investing,
            financing_cash_flow=financing,
            net_cash_flow=net,
            ending_cash=beginning_cash + net,
        )


@dataclass(frozen=True)
class BalanceSheet:
    """
    Balance Sheet snapshot.

    ``cash_equivalents`` is always the cash flow ending cash.
    ``contributed_capital`` is informational: ``total_equity`` is the
    residual of assets over liabilities.
    """

    cash_equivalents: Decimal = ZERO
    accounts_receivable: Decimal = ZERO
    inventory: Decimal = ZERO
    fixed_assets: Decimal = ZERO
    total_assets: Decimal = ZERO
    accounts_payable: Decimal = ZERO
    short_term_debt: Decimal = ZERO
    long_term_debt: Decimal = ZERO
    total_liabilities: Decimal = ZERO
    contributed_capital: Decimal = ZERO
    total_equity: Decimal = ZERO
    balances: bool = True

    @classmethod
    def from_lines(
        cls,
        cash_equivalents: Decimal,
        lines: dict[str, Decimal],
        total_equity: Optional[Decimal] = None,
        tolerance: Decimal = BALANCE_TOLERANCE,
    ) -> "BalanceSheet":
        """Build a balance sheet, recomputing totals from the lines.

        When ``total_equity`` is not given it is the residual of assets
        over liabilities (single-entity case). The consolidator passes the
        summed equity of the companies instead.
        """
        ar = lines.get("accounts_receivable", ZERO)
        inventory = lines.get("inventory", ZERO)
        fixed = lines.get("fixed_assets", ZERO)
        ap = lines.get("accounts_payable", ZERO)
        std = lines.get("short_term_debt", ZERO)
        ltd = lines.get("long_term_debt", ZERO)

        total_assets = cash_equivalents + ar + inventory + fixed
        total_liabilities = ap + std + ltd
        if total_equity is None:
            total_equity = total_assets - total_liabilities

        return cls(
            cash_equivalents=cash_equivalents,
            accounts_receivable=ar,
            inventory=inventory,
            fixed_assets=fixed,
            total_assets=total_assets,
            accounts_payable=ap,
            short_term_debt=std,
            long_term_debt=ltd,
            total_liabilities=total_liabilities,
            contributed_capital=lines.get("contributed_capital", ZERO),
            total_equity=total_equity,
            balances=abs(total_assets - (total_liabilities + total_equity))
            <= tolerance,
        )

    @property
    def imbalance(self) -> Decimal:
        """Assets minus (liabilities + equity); zero when the sheet balances."""
        return self.total_assets - (self.total_liabilities + self.total_equity)


@dataclass(frozen=True)
class FinancialStatements:
    """Output of one calculation: the three statements plus diagnostics."""

    pl: ProfitAndLoss
    balance_sheet: BalanceSheet
    cash_flow: CashFlow
    unclassified: tuple[str, ...] = ()
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors


BALANCE_SHEET_LINES: tuple[str, ...] = (
    "accounts_receivable",
    "inventory",
    "fixed_assets",
    "accounts_payable",
    "short_term_debt",
    "long_term_debt",
    "contributed_capital",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def profit_margin(net_profit: Decimal, revenue: Decimal) -> Decimal:
    """Return the profit margin in percent, rounded to 2 decimals."""
    if revenue <= ZERO:
        return ZERO
    return (net_profit / revenue * 100).quantize(CENT, rounding=ROUND_HALF_UP)


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Return transactions in deterministic fold order: (date, id)."""
    return sorted(transactions, key=lambda t: (t.date, t.id))


def balance_errors(balance_sheet: BalanceSheet, label: str = "Balance sheet") -> list[str]:
    """Return a descriptive error when a balance sheet does not balance."""
    if balance_sheet.balances:
        return []
    return [
        f"{label} does not balance: "
        f"Assets ({balance_sheet.total_assets:.2f}) != "
        f"Liabilities ({balance_sheet.total_liabilities:.2f}) + "
        f"Equity ({balance_sheet.total_equity:.2f}) | "
        f"Difference: {balance_sheet.imbalance:.2f}"
    ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def calculate(
    transactions: Iterable[Transaction],
    opening_cash=ZERO,
    prior_balance_sheet: Optional[BalanceSheet] = None,
) -> FinancialStatements:
    """Fold a company's transactions into P&L, Balance Sheet and Cash Flow.

    Steps:
        1. Sort transactions by (date, id).
        2. Classify each transaction once and accumulate its P&L, cash flow
           and balance sheet effects.
        3. Derive the cash flow (ending cash from opening cash).
        4. Derive the balance sheet, using the ending cash as cash
           equivalents and starting non-cash lines from
           ``prior_balance_sheet`` when given.

    Args:
        transactions: Ledger rows of one company, in any order.
        opening_cash: Cash at the start of the computation (default 0, or
            the prior period's ending cash when chaining periods).
        prior_balance_sheet: Balance sheet at the end of the prior period.

    Returns:
        A FinancialStatements instance. ``errors`` lists balance and cash
        consistency problems; ``unclassified`` lists the ids of
        transactions that fell (partly) into an unclassified bucket.
    """
    opening = to_decimal(opening_cash)

    pl_buckets: dict[str, Decimal] = {}
    flows: dict[str, Decimal] = {"operating": ZERO, "investing": ZERO, "financing": ZERO}
    lines: dict[str, Decimal] = {}
    if prior_balance_sheet is not None:
        for name in BALANCE_SHEET_LINES:
            lines[name] = getattr(prior_balance_sheet, name)

    unclassified: list[str] = []

    for tx in sort_transactions(transactions):
        c = classify(tx)
        if c.is_unclassified:
            unclassified.append(tx.id)

        if c.pl is not None:
            pl_buckets[c.pl.line] = pl_buckets.get(c.pl.line, ZERO) + c.pl.amount

        # Unclassified cash and balance effects are reported, not posted.
        if c.cash_flow is not None and c.cash_flow.line in flows:
            flows[c.cash_flow.line] += c.cash_flow.amount

        if c.balance_sheet is not None and c.balance_sheet.line in BALANCE_SHEET_LINES:
            name = c.balance_sheet.line
            lines[name] = lines.get(name, ZERO) + c.balance_sheet.amount

    pl = ProfitAndLoss.from_buckets(pl_buckets)
    cash_flow = CashFlow.from_flows(
        opening,
        flows["operating"],
        flows["investing"],
        flows["financing"],
    )
    balance_sheet = BalanceSheet.from_lines(cash_flow.ending_cash, lines)

    errors = balance_errors(balance_sheet)
    if balance_sheet.cash_equivalents != cash_flow.ending_cash:
        errors.append(
            f"Cash mismatch: Balance Sheet ({balance_sheet.cash_equivalents:.2f}) "
            f"!= Cash Flow ({cash_flow.ending_cash:.2f})"
        )

    if unclassified:
        logger.warning(
            "%d transaction(s) fell into an unclassified bucket", len(unclassified)
        )

    return FinancialStatements(
        pl=pl,
        balance_sheet=balance_sheet,
        cash_flow=cash_flow,
        unclassified=tuple(unclassified),
        errors=tuple(errors),
    )
