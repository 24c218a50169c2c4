# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Multi-entity consolidation with intercompany elimination.

``consolidate()`` combines the statements of every company of a portfolio
(all companies owned by one user) into one set of consolidated statements:

1. Per-company calculation
   Each company is run through ``engine.calculate`` independently; no state
   is shared between companies.

2. Aggregation
   P&L, cash flow and balance sheet lines are summed across companies.
   Derived totals (COGS, net profit, margins, ...) are recomputed from the
   summed lines.

3. Elimination
   - Transfers: every intercompany outflow is paired with one inflow of
     equal magnitude and date in another company (the inflow tagged as its
     auto mirror first, then any inflow with compatible counterparties).
     Both legs of a pair must post to the same cash flow line, so their
     cash effects cancel in the summed cash flow and the consolidated cash
     flow only reflects external movements. Legs that cannot be paired
     (including a pair where only one side moves cash) are reported in
     ``Eliminations.unmatched_transfers`` for review and stay in the
     aggregate.
   - Balances: intercompany asset rows count as receivables and
     intercompany liability rows as payables. The smaller of the two is
     removed from the balance sheet lines the rows post to (a loan reduces
     long term debt, not accounts payable). A remaining difference is an
     error.

4. Validation
   Consolidated assets must equal consolidated liabilities plus the summed
   equity of the companies within the tolerance. Otherwise the result is
   flagged ``is_valid=False`` with a descriptive error: an unbalanced
   statement is never published silently.

Every step is order-independent: companies and transfers are matched in a
canonical (date, company id, id) order and Decimal sums are exact, so the
consolidated totals do not depend on the order of the input companies.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .classifier import balance_sheet_effect, cash_flow_effect
from .engine import (
    BALANCE_TOLERANCE,
    BalanceSheet,
    CashFlow,
    FinancialStatements,
    ProfitAndLoss,
    balance_errors,
    calculate,
)
from .intercompany import (
    companies_by_name,
    mirrored_source_id,
    resolve_counterparty,
)
from .models import ZERO, Transaction, normalize_category, to_decimal

logger = logging.getLogger(__name__)

PL_BUCKETS: tuple[str, ...] = (
    "product_revenue",
    "service_revenue",
    "other_revenue",
    "direct_costs",
    "infrastructure_costs",
    "sales_marketing",
    "rd_expenses",
    "admin_expenses",
    "unclassified_expenses",
)

SUMMED_BALANCE_LINES: tuple[str, ...] = (
    "accounts_receivable",
    "inventory",
    "fixed_assets",
    "accounts_payable",
    "short_term_debt",
    "long_term_debt",
    "contributed_capital",
)


@dataclass(frozen=True)
class CompanyInput:
    """Ledger of one company to consolidate."""

    id: str
    name: str
    transactions: tuple[Transaction, ...]
    opening_cash: Decimal = ZERO


@dataclass(frozen=True)
class CompanyStatements:
    """Per-company breakdown of a consolidation."""

    company_id: str
    name: str
    statements: FinancialStatements


@dataclass(frozen=True)
class IntercompanyPair:
    """A matched intercompany outflow / inflow pair."""

    outflow: Transaction
    inflow: Transaction

    @property
    def amount(self) -> Decimal:
        return abs(self.outflow.amount)


@dataclass(frozen=True)
class Eliminations:
    """
    Intercompany eliminations applied during consolidation.

    Attributes
    ----------
    matched_pairs :
        Transfers eliminated from the consolidated cash flow.
    unmatched_transfers :
        Orphaned transfer rows, kept in the aggregate for operator review.
    transfers_eliminated :
        Gross magnitude of the matched transfers.
    receivables, payables :
        Intercompany asset and liability balances found in the ledgers.
    balances_eliminated :
        Amount removed from both receivables and payables.
    unmatched_balances :
        Remaining difference between intercompany receivables and payables.
    """

    matched_pairs: tuple[IntercompanyPair, ...] = ()
    unmatched_transfers: tuple[Transaction, ...] = ()
    transfers_eliminated: Decimal = ZERO
    receivables: Decimal = ZERO
    payables: Decimal = ZERO
    balances_eliminated: Decimal = ZERO
    unmatched_balances: Decimal = ZERO


@dataclass(frozen=True)
class ConsolidatedResult:
    """Outcome of a consolidation."""

    per_company: tuple[CompanyStatements, ...]
    consolidated: FinancialStatements
    eliminations: Eliminations
    is_valid: bool
    errors: tuple[str, ...]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _sum_field(items: Sequence, name: str) -> Decimal:
    return sum((getattr(item, name) for item in items), ZERO)


def _is_intercompany_balance(tx: Transaction) -> bool:
    return "intercompany" in normalize_category(tx.category) or (
        "intercompany" in (tx.description or "").lower()
    )


def _cash_line(tx: Transaction) -> Optional[str]:
    effect = cash_flow_effect(tx)
    return None if effect is None else effect.line


def match_transfers(
    companies: Sequence[CompanyInput],
) -> tuple[list[IntercompanyPair], list[Transaction]]:
    """Pair intercompany outflows with inflows across companies.

    Returns the matched pairs and the unmatched (orphaned) rows. Zero-amount
    rows move nothing and are ignored. Both legs of a pair must land on the
    same cash flow line; an outflow that moves cash never pairs with an
    inflow that does not.
    """
    by_name = companies_by_name(sorted(companies, key=lambda c: c.id))

    transfers = sorted(
        (t for c in companies for t in c.transactions if t.is_intercompany),
        key=lambda t: (t.date, t.company_id, t.id),
    )
    outflows = [t for t in transfers if t.amount < 0]
    inflows = [t for t in transfers if t.amount > 0]

    pairs: list[IntercompanyPair] = []
    matched_out: set[str] = set()
    matched_in: set[str] = set()

    # 1) Auto mirrors point at their source explicitly.
    outflows_by_id = {t.id: t for t in outflows}
    for inflow in inflows:
        source_id = mirrored_source_id(inflow)
        outflow = outflows_by_id.get(source_id) if source_id else None
        if (
            outflow is None
            or outflow.id in matched_out
            or outflow.company_id == inflow.company_id
            or outflow.amount != -inflow.amount
            or _cash_line(outflow) != _cash_line(inflow)
        ):
            continue
        pairs.append(IntercompanyPair(outflow=outflow, inflow=inflow))
        matched_out.add(outflow.id)
        matched_in.add(inflow.id)

    # 2) Remaining rows: same date and magnitude, compatible counterparties.
    for outflow in outflows:
        if outflow.id in matched_out:
            continue
        out_cp = resolve_counterparty(outflow, by_name, "outflow")
        for inflow in inflows:
            if inflow.id in matched_in:
                continue
            if inflow.company_id == outflow.company_id:
                continue
            if inflow.date != outflow.date or inflow.amount != -outflow.amount:
                continue
            if _cash_line(inflow) != _cash_line(outflow):
                continue
            in_cp = resolve_counterparty(inflow, by_name, "inflow")
            if out_cp is not None and out_cp != inflow.company_id:
                continue
            if in_cp is not None and in_cp != outflow.company_id:
                continue
            pairs.append(IntercompanyPair(outflow=outflow, inflow=inflow))
            matched_out.add(outflow.id)
            matched_in.add(inflow.id)
            break

    unmatched = [
        t
        for t in transfers
        if t.amount != 0 and t.id not in matched_out and t.id not in matched_in
    ]
    pairs.sort(key=lambda p: (p.outflow.date, p.outflow.company_id, p.outflow.id))
    return pairs, unmatched


def _intercompany_balances(
    companies: Sequence[CompanyInput],
) -> tuple[dict[str, Decimal], dict[str, Decimal]]:
    """Intercompany asset and liability amounts per balance sheet line.

    Rows landing on a line the balance sheet does not carry (cash,
    unclassified) are left out: there is nothing to eliminate them from.
    """
    receivables: dict[str, Decimal] = {}
    payables: dict[str, Decimal] = {}
    for company in companies:
        for tx in company.transactions:
            if tx.type not in ("asset", "liability") or not _is_intercompany_balance(tx):
                continue
            effect = balance_sheet_effect(tx)
            if effect is None or effect.line not in SUMMED_BALANCE_LINES:
                continue
            side = receivables if tx.type == "asset" else payables
            side[effect.line] = side.get(effect.line, ZERO) + effect.amount
    return receivables, payables


def _eliminate_from_lines(
    lines: dict[str, Decimal], by_line: dict[str, Decimal], amount: Decimal
) -> None:
    # Lines are reduced in balance sheet order until the amount is used up.
    remaining = amount
    for name in SUMMED_BALANCE_LINES:
        if remaining <= 0:
            break
        take = min(max(by_line.get(name, ZERO), ZERO), remaining)
        lines[name] -= take
        remaining -= take


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def consolidate(
    companies: Sequence[CompanyInput],
    tolerance: Optional[Decimal] = None,
) -> ConsolidatedResult:
    """Consolidate the statements of several companies.

    Args:
        companies: Companies of one portfolio with their transactions and
            opening cash.
        tolerance: Accepted difference between assets and liabilities plus
            equity (defaults to one cent).

    Returns:
        A ConsolidatedResult with the per-company breakdown, the
        consolidated statements, the eliminations, and validation errors.
    """
    tol = BALANCE_TOLERANCE if tolerance is None else to_decimal(tolerance)
    errors: list[str] = []

    # 1) Per-company statements
    per_company: list[CompanyStatements] = []
    for company in companies:
        statements = calculate(company.transactions, company.opening_cash)
        for err in statements.errors:
            errors.append(f"{company.name}: {err}")
        per_company.append(
            CompanyStatements(
                company_id=company.id, name=company.name, statements=statements
            )
        )
    all_statements = [c.statements for c in per_company]

    # 2) Aggregate
    pls = [s.pl for s in all_statements]
    pl = ProfitAndLoss.from_buckets({name: _sum_field(pls, name) for name in PL_BUCKETS})

    cfs = [s.cash_flow for s in all_statements]
    bss = [s.balance_sheet for s in all_statements]
    lines = {name: _sum_field(bss, name) for name in SUMMED_BALANCE_LINES}
    total_equity = _sum_field(bss, "total_equity")

    # 3) Eliminations
    pairs, unmatched = match_transfers(companies)
    transfers_eliminated = sum((p.amount for p in pairs), ZERO)

    receivables_by_line, payables_by_line = _intercompany_balances(companies)
    receivables = sum(receivables_by_line.values(), ZERO)
    payables = sum(payables_by_line.values(), ZERO)
    balances_eliminated = max(min(receivables, payables), ZERO)
    _eliminate_from_lines(lines, receivables_by_line, balances_eliminated)
    _eliminate_from_lines(lines, payables_by_line, balances_eliminated)
    unmatched_balances = abs(receivables - payables)

    cash_flow = CashFlow.from_flows(
        _sum_field(cfs, "beginning_cash"),
        _sum_field(cfs, "operating_cash_flow"),
        _sum_field(cfs, "investing_cash_flow"),
        _sum_field(cfs, "financing_cash_flow"),
    )
    balance_sheet = BalanceSheet.from_lines(
        cash_flow.ending_cash, lines, total_equity=total_equity, tolerance=tol
    )

    eliminations = Eliminations(
        matched_pairs=tuple(pairs),
        unmatched_transfers=tuple(unmatched),
        transfers_eliminated=transfers_eliminated,
        receivables=receivables,
        payables=payables,
        balances_eliminated=balances_eliminated,
        unmatched_balances=unmatched_balances,
    )

    # 4) Validation
    consolidated_errors = balance_errors(balance_sheet, "Consolidated balance sheet")
    errors.extend(consolidated_errors)
    if unmatched_balances > tol:
        errors.append(
            f"Unmatched intercompany transactions: {unmatched_balances:.2f} "
            f"(Receivables: {receivables:.2f}, Payables: {payables:.2f})"
        )
        logger.warning(
            "Intercompany receivables %s and payables %s do not match",
            receivables,
            payables,
        )

    if unmatched:
        logger.warning(
            "%d unmatched intercompany transfer(s) kept in the consolidation",
            len(unmatched),
        )
    if consolidated_errors:
        logger.warning("Consolidated balance sheet does not balance")

    unclassified = sorted({tx_id for s in all_statements for tx_id in s.unclassified})
    consolidated = FinancialStatements(
        pl=pl,
        balance_sheet=balance_sheet,
        cash_flow=cash_flow,
        unclassified=tuple(unclassified),
        errors=tuple(consolidated_errors),
    )

    logger.info(
        "Consolidated %d companies: %d pair(s) eliminated, %d unmatched",
        len(per_company),
        len(pairs),
        len(unmatched),
    )

    return ConsolidatedResult(
        per_company=tuple(per_company),
        consolidated=consolidated,
        eliminations=eliminations,
        is_valid=not errors,
        errors=tuple(errors),
    )
