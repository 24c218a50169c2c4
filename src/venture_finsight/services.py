# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
High-level services orchestrating storage and calculation.

This module sits between:
- the low-level database helpers in `db.py`, and
- user-facing layers such as the CLI.

Responsibilities
----------------
1) Statements
   - `recompute_company` computes the statements of a company period by
     period. It is pure with respect to storage: it reads the ledger and
     returns results, writing nothing.
   - `recalculate_company` recomputes and then atomically replaces the
     stored statements of the company (delete then recreate in one
     transaction).

2) Consolidation
   - `consolidate_portfolio` consolidates the active companies of one user.

3) Intercompany maintenance
   - `normalize_intercompany`, `cleanup_intercompany_duplicates` and
     `allocate_intercompany_mirrors` plan their changes with the pure
     functions of `intercompany.py` and apply them in one atomic batch.
     With `dry_run=True` nothing is written. These operations are explicit
     maintenance actions and never run as a side effect of a calculation.

4) Budget
   - `refresh_running_balances` recomputes and stores the running balances
     of a budget period.
   - `approve_actuals` posts the approvable lines of an ACTUALS period
     atomically, then recalculates the statements of the company.

Design notes
------------
- Every service takes the AppConfig; the schema is expected to have been
  initialized once at startup (`db.init_database`).
- Pure folds and storage writes are never intermingled: each service first
  computes everything it needs, then performs one atomic write.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from . import db
from .balances import project_running_balances
from .budget import PostingPlan, approval_summary, plan_actuals_posting
from .config import AppConfig
from .consolidation import CompanyInput, ConsolidatedResult, consolidate
from .db import DatabaseConfig
from .engine import calculate
from .intercompany import (
    MirrorPlan,
    NormalizationReport,
    find_duplicate_transfers,
    normalize_transfers,
    plan_mirrors,
)
from .models import INTERCOMPANY_TYPES, ZERO, BudgetLine, Company
from .multi_periods import PeriodStatements, calculate_by_period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupeResult:
    """Outcome of an intercompany duplicates cleanup."""

    examined: int
    duplicate_ids: tuple[str, ...]
    deleted: int
    dry_run: bool


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of an actuals approval."""

    plan: PostingPlan
    summary: dict[str, object]
    statements_written: int


def _get_db_config(app_config: AppConfig) -> DatabaseConfig:
    """Return the database configuration of the application."""
    return app_config.database


def _require_company(cfg: DatabaseConfig, company_id: str) -> Company:
    company = db.get_company(cfg, company_id)
    if company is None:
        raise ValueError(f"Unknown company: {company_id!r}")
    return company


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


def recompute_company(
    app_config: AppConfig,
    company_id: str,
    period_type: Optional[str] = None,
) -> list[PeriodStatements]:
    """
    Compute the statements of a company without storing them.

    Periods are chained from the company's opening cash. A company without
    transactions yields a single empty 'all' period.
    """
    cfg = _get_db_config(app_config)
    company = _require_company(cfg, company_id)
    period_type = period_type or app_config.statements.period_type

    transactions = db.load_transactions(cfg, company_id)
    periods = calculate_by_period(transactions, period_type, company.opening_cash)
    if not periods:
        periods = [
            PeriodStatements(
                label="all",
                start=None,
                end=None,
                transactions=(),
                statements=calculate([], company.opening_cash),
            )
        ]
    return periods


def recalculate_company(
    app_config: AppConfig,
    company_id: str,
    period_type: Optional[str] = None,
) -> int:
    """
    Recompute the statements of a company and replace the stored ones.

    Returns the number of statement rows written. On failure the previously
    stored statements are left untouched.
    """
    logger.info("Recalculating statements for company %s", company_id)
    periods = recompute_company(app_config, company_id, period_type)

    written = db.replace_statements(
        _get_db_config(app_config),
        company_id,
        {p.label: p.statements for p in periods},
    )
    invalid = [p.label for p in periods if not p.statements.is_valid]
    if invalid:
        logger.warning(
            "Company %s: statements invalid for period(s) %s",
            company_id,
            ", ".join(invalid),
        )
    logger.info(
        "Stored %d period(s), %d row(s) for company %s",
        len(periods),
        written,
        company_id,
    )
    return written


# ---------------------------------------------------------------------------
# Consolidation
# ---------------------------------------------------------------------------


def consolidate_portfolio(
    app_config: AppConfig,
    user_id: str,
    tolerance: Optional[Decimal] = None,
) -> ConsolidatedResult:
    """Consolidate every active company owned by ``user_id``."""
    cfg = _get_db_config(app_config)
    companies = db.list_companies(cfg, user_id=user_id, status="active")

    inputs = [
        CompanyInput(
            id=c.id,
            name=c.name,
            transactions=tuple(db.load_transactions(cfg, c.id)),
            opening_cash=c.opening_cash,
        )
        for c in companies
    ]
    if tolerance is None:
        tolerance = app_config.balance_tolerance
    return consolidate(inputs, tolerance)


# ---------------------------------------------------------------------------
# Intercompany maintenance
# ---------------------------------------------------------------------------


def _portfolio_of(cfg: DatabaseConfig, company: Company) -> list[Company]:
    return db.list_companies(cfg, user_id=company.user_id)


def normalize_intercompany(
    app_config: AppConfig,
    company_id: str,
    dry_run: bool = False,
) -> NormalizationReport:
    """
    Normalize the intercompany transfers of one company.

    Counterparties are resolved against the companies of the same owner.
    """
    cfg = _get_db_config(app_config)
    company = _require_company(cfg, company_id)

    transactions = db.load_transactions(cfg, company_id, types=sorted(INTERCOMPANY_TYPES))
    report = normalize_transfers(transactions, _portfolio_of(cfg, company))

    if not dry_run and report.changes:
        db.update_transactions(cfg, [change.after for change in report.changes])

    logger.info(
        "Normalized intercompany transfers of %s: %d processed, %d updated, "
        "%d unchanged, %d unresolved%s",
        company_id,
        report.processed,
        report.updated,
        report.skipped,
        len(report.unresolved),
        " (dry run)" if dry_run else "",
    )
    return report


def cleanup_intercompany_duplicates(
    app_config: AppConfig,
    company_id: str,
    dry_run: bool = False,
) -> DedupeResult:
    """Delete duplicate intercompany rows of a company, keeping the first."""
    cfg = _get_db_config(app_config)
    _require_company(cfg, company_id)

    transactions = db.load_transactions(cfg, company_id, types=sorted(INTERCOMPANY_TYPES))
    duplicates = find_duplicate_transfers(transactions)

    deleted = 0
    if not dry_run and duplicates:
        deleted = db.delete_transactions(cfg, duplicates)

    logger.info(
        "Intercompany duplicates of %s: %d found, %d deleted%s",
        company_id,
        len(duplicates),
        deleted,
        " (dry run)" if dry_run else "",
    )
    return DedupeResult(
        examined=len(transactions),
        duplicate_ids=tuple(duplicates),
        deleted=deleted,
        dry_run=dry_run,
    )


def allocate_intercompany_mirrors(
    app_config: AppConfig,
    user_id: str,
    dry_run: bool = False,
) -> MirrorPlan:
    """Create the missing mirrored inflows across the portfolio of a user."""
    cfg = _get_db_config(app_config)
    companies = db.list_companies(cfg, user_id=user_id)

    transactions = [
        tx
        for c in companies
        for tx in db.load_transactions(cfg, c.id, types=sorted(INTERCOMPANY_TYPES))
    ]
    plan = plan_mirrors(companies, transactions)

    if plan.missing_targets:
        logger.warning(
            "%d outflow(s) without a resolvable target company",
            len(plan.missing_targets),
        )
    if not dry_run and plan.created:
        db.insert_transactions(cfg, plan.created)
    return plan


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------


def refresh_running_balances(
    app_config: AppConfig,
    period_id: str,
    starting_balance=ZERO,
) -> list[BudgetLine]:
    """Recompute the running balances of a budget period and store them."""
    cfg = _get_db_config(app_config)
    lines = db.load_budget_lines(cfg, period_id)
    projected = project_running_balances(lines, starting_balance)
    if projected:
        db.update_line_balances(cfg, projected)
    return projected


def actuals_summary(app_config: AppConfig, period_id: str) -> dict[str, object]:
    """Summary of the unapproved lines of a period, before approval."""
    cfg = _get_db_config(app_config)
    return approval_summary(
        db.load_budget_lines(cfg, period_id), db.load_budget_categories(cfg)
    )


def approve_actuals(
    app_config: AppConfig,
    period_id: str,
    line_ids: Optional[list[str]] = None,
    approved_by: str = "system",
) -> ApprovalResult:
    """
    Post the approvable lines of an ACTUALS period as transactions.

    The posting is all-or-nothing. Once committed, the statements of the
    company are recalculated.

    Raises
    ------
    ValueError
        If the period does not exist, is not ACTUALS, or has nothing to
        approve.
    db.AtomicOperationError
        If the posting failed; nothing was written then.
    """
    cfg = _get_db_config(app_config)
    period = db.get_budget_period(cfg, period_id)
    if period is None:
        raise ValueError(f"Unknown budget period: {period_id!r}")

    plan = plan_actuals_posting(
        period,
        db.load_budget_lines(cfg, period_id),
        db.load_budget_categories(cfg),
        line_ids=line_ids,
        approved_by=approved_by,
    )
    summary = db.post_actuals(cfg, plan)

    written = 0
    if plan.transactions:
        written = recalculate_company(app_config, period.company_id)
    return ApprovalResult(plan=plan, summary=summary, statements_written=written)
