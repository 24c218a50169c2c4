# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Budget actuals posting.

Approving the lines of an ACTUALS period turns each of them into a ledger
transaction and marks the line as approved. This module only *plans* the
posting (pure, no I/O); ``db.post_actuals`` applies a plan atomically:
either every planned transaction is created and every line approved, or
nothing is.

Posting rules
-------------
- Only periods of type ``ACTUALS`` can be approved.
- Only unapproved lines are candidates (optionally restricted to a list of
  ids). Approval is one-way.
- Zero-amount lines are skipped: they are neither posted nor approved.
- INCOME categories post as ``revenue``, every other category as
  ``expense``. The transaction category is the account code of the budget
  category, or its snake-cased name.
- The amount is posted as stored on the line; all statement flags are set.
"""

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from .models import (
    ZERO,
    BudgetCategory,
    BudgetLine,
    BudgetPeriod,
    Transaction,
    make_transaction,
)

logger = logging.getLogger(__name__)

AUTO_POSTED_TAG = "[Auto-posted from budget actuals]"


@dataclass(frozen=True)
class PostingPlan:
    """
    Transactions to create and lines to approve for one approval request.

    ``transactions[i]`` is the posting of ``approved_lines[i]``.
    """

    period_id: str
    transactions: tuple[Transaction, ...]
    approved_lines: tuple[BudgetLine, ...]
    skipped_zero: tuple[str, ...] = ()

    def summary(self) -> dict[str, object]:
        """Counts and totals of the plan (expense total as a magnitude)."""
        total_income = sum(
            (t.amount for t in self.transactions if t.type == "revenue"), ZERO
        )
        total_expense = sum(
            (abs(t.amount) for t in self.transactions if t.type == "expense"), ZERO
        )
        return {
            "approved": len(self.approved_lines),
            "transactions": len(self.transactions),
            "total_income": total_income,
            "total_expense": total_expense,
        }


def _category_slug(category: BudgetCategory) -> str:
    if category.account_code:
        return category.account_code
    return "_".join(category.name.lower().split())


def posting_description(category: BudgetCategory, notes: Optional[str]) -> str:
    """Description of the transaction posted for a budget line."""
    label = f"{category.name} - {notes}" if notes else category.name
    return f"{label} {AUTO_POSTED_TAG}"


def select_candidates(
    lines: Iterable[BudgetLine], line_ids: Optional[Iterable[str]] = None
) -> list[BudgetLine]:
    """Return the unapproved lines, restricted to ``line_ids`` when given.

    ``None`` and an empty ``line_ids`` both mean every unapproved line of
    the period: approving with an empty selection approves the whole period.
    """
    wanted = set(line_ids) if line_ids else None
    return [
        line
        for line in lines
        if not line.is_approved and (wanted is None or line.id in wanted)
    ]


def plan_actuals_posting(
    period: BudgetPeriod,
    lines: Sequence[BudgetLine],
    categories: Mapping[str, BudgetCategory],
    line_ids: Optional[Iterable[str]] = None,
    approved_by: str = "system",
    approved_at: Optional[datetime] = None,
    id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
) -> PostingPlan:
    """Plan the posting of the approvable lines of an ACTUALS period.

    Args:
        period: The budget period being approved.
        lines: Lines of the period.
        categories: Budget categories by id.
        line_ids: Optional subset of line ids to approve.
        approved_by: Approving user (defaults to 'system').
        approved_at: Approval timestamp (defaults to now, UTC).
        id_factory: Generates the ids of the new transactions.

    Raises:
        ValueError: if the period is not ACTUALS, if no line is left to
            approve, or if a line refers to an unknown category.
    """
    if period.type != "ACTUALS":
        raise ValueError(
            f"Only ACTUALS periods can be approved (period {period.id!r} "
            f"is {period.type})."
        )

    candidates = select_candidates(
        (line for line in lines if line.period_id == period.id), line_ids
    )
    if not candidates:
        raise ValueError(f"No lines to approve in period {period.id!r}.")

    if approved_at is None:
        approved_at = datetime.now(timezone.utc).replace(microsecond=0)

    transactions: list[Transaction] = []
    approved: list[BudgetLine] = []
    skipped: list[str] = []

    for line in candidates:
        if line.amount == 0:
            skipped.append(line.id)
            continue

        category = categories.get(line.category_id)
        if category is None:
            raise ValueError(
                f"Budget line {line.id!r} refers to unknown category "
                f"{line.category_id!r}."
            )

        tx = make_transaction(
            id=id_factory(),
            company_id=line.company_id,
            date=line.date,
            type="revenue" if category.type == "INCOME" else "expense",
            category=_category_slug(category),
            amount=line.amount,
            description=posting_description(category, line.notes),
            affects_pl=True,
            affects_cash_flow=True,
            affects_balance=True,
        )
        transactions.append(tx)
        approved.append(
            replace(
                line,
                is_approved=True,
                approved_at=approved_at,
                approved_by=approved_by,
                transaction_id=tx.id,
            )
        )

    if skipped:
        logger.info("Skipping %d zero-amount line(s)", len(skipped))

    return PostingPlan(
        period_id=period.id,
        transactions=tuple(transactions),
        approved_lines=tuple(approved),
        skipped_zero=tuple(skipped),
    )


def approval_summary(
    lines: Iterable[BudgetLine], categories: Mapping[str, BudgetCategory]
) -> dict[str, object]:
    """Summarize the unapproved lines of a period before approval.

    Lines are grouped per category name; income and expense totals are
    magnitudes for expenses and signed amounts for income.
    """
    per_category: dict[str, dict[str, object]] = {}
    total_income = ZERO
    total_expense = ZERO
    count = 0

    for line in select_candidates(lines):
        count += 1
        category = categories.get(line.category_id)
        name = category.name if category else line.category_id
        cat_type = category.type if category else "EXPENSE"

        row = per_category.setdefault(
            name,
            {
                "category": name,
                "type": cat_type,
                "account_code": category.account_code if category else None,
                "count": 0,
                "amount": ZERO,
            },
        )
        row["count"] += 1
        row["amount"] += line.amount

        if cat_type == "INCOME":
            total_income += line.amount
        else:
            total_expense += abs(line.amount)

    return {
        "unapproved_count": count,
        "categories": list(per_category.values()),
        "total_income": total_income,
        "total_expense": total_expense,
        "net": total_income - total_expense,
    }