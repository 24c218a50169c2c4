from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from venture_finsight.budget import (
    AUTO_POSTED_TAG,
    approval_summary,
    plan_actuals_posting,
    posting_description,
    select_candidates,
)
from venture_finsight.classifier import pl_effect
from venture_finsight.models import BudgetCategory, BudgetLine, BudgetPeriod

ACTUALS = BudgetPeriod(id="p1", company_id="c1", name="Jan", type="ACTUALS")
CATEGORIES = {
    "inc": BudgetCategory(id="inc", name="Consulting", type="INCOME"),
    "exp": BudgetCategory(id="exp", name="Cloud Hosting", type="EXPENSE"),
    "rnd": BudgetCategory(id="rnd", name="Engineering", type="EXPENSE", account_code="rd"),
}
APPROVED_AT = datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc)


def _line(line_id, category_id, amount, **kwargs):
    return BudgetLine(
        id=line_id,
        period_id=kwargs.pop("period_id", "p1"),
        company_id="c1",
        category_id=category_id,
        date=kwargs.pop("day", date(2025, 1, 15)),
        amount=Decimal(str(amount)),
        **kwargs,
    )


def _ids(*values):
    it = iter(values)
    return lambda: next(it)


def test_plan_posts_income_as_revenue_and_the_rest_as_expense():
    lines = [
        _line("l1", "inc", 500, notes="Retainer"),
        _line("l2", "exp", -120),
        _line("l3", "rnd", -300),
    ]
    plan = plan_actuals_posting(
        ACTUALS,
        lines,
        CATEGORIES,
        approved_by="alice",
        approved_at=APPROVED_AT,
        id_factory=_ids("t1", "t2", "t3"),
    )

    revenue, hosting, rnd = plan.transactions
    assert (revenue.type, revenue.category, revenue.amount) == ("revenue", "consulting", Decimal("500"))
    assert revenue.description == f"Consulting - Retainer {AUTO_POSTED_TAG}"
    assert (hosting.type, hosting.category) == ("expense", "cloud_hosting")
    assert rnd.category == "rd"
    assert all(t.affects_pl and t.affects_cash_flow and t.affects_balance for t in plan.transactions)

    # Posted categories land in the matching P&L buckets.
    assert pl_effect(hosting).line == "infrastructure_costs"
    assert pl_effect(rnd).line == "rd_expenses"

    assert [line.transaction_id for line in plan.approved_lines] == ["t1", "t2", "t3"]
    assert all(line.is_approved for line in plan.approved_lines)
    assert all(line.approved_by == "alice" for line in plan.approved_lines)
    assert plan.approved_lines[0].approved_at == APPROVED_AT

    assert plan.summary() == {
        "approved": 3,
        "transactions": 3,
        "total_income": Decimal("500"),
        "total_expense": Decimal("420"),
    }


def test_zero_lines_and_approved_lines_are_not_posted():
    lines = [
        _line("l1", "inc", 0),
        _line("l2", "exp", -10),
        _line("l3", "exp", -99, is_approved=True, transaction_id="old"),
        _line("l4", "exp", -7, period_id="other"),
    ]
    plan = plan_actuals_posting(ACTUALS, lines, CATEGORIES, id_factory=_ids("t1"))

    assert plan.skipped_zero == ("l1",)
    assert [line.id for line in plan.approved_lines] == ["l2"]


def test_line_ids_restrict_the_candidates():
    lines = [_line("l1", "inc", 5), _line("l2", "inc", 6)]
    plan = plan_actuals_posting(ACTUALS, lines, CATEGORIES, line_ids=["l2"], id_factory=_ids("t"))
    assert [line.id for line in plan.approved_lines] == ["l2"]
    assert [line.id for line in select_candidates(lines, None)] == ["l1", "l2"]
    assert [line.id for line in select_candidates(lines, [])] == ["l1", "l2"]


@pytest.mark.parametrize(
    "period, lines, message",
    [
        (
            BudgetPeriod(id="p1", company_id="c1", name="Plan", type="BUDGET"),
            [_line("l1", "inc", 5)],
            "Only ACTUALS",
        ),
        (ACTUALS, [_line("l1", "inc", 5, is_approved=True)], "No lines to approve"),
        (ACTUALS, [], "No lines to approve"),
        (ACTUALS, [_line("l1", "mystery", 5)], "unknown category"),
    ],
)
def test_plan_rejections(period, lines, message):
    with pytest.raises(ValueError, match=message):
        plan_actuals_posting(period, lines, CATEGORIES)


def test_posting_description_without_notes():
    assert posting_description(CATEGORIES["exp"], None) == f"Cloud Hosting {AUTO_POSTED_TAG}"


def test_approval_summary_groups_by_category():
    lines = [
        _line("l1", "inc", 100),
        _line("l2", "inc", 50),
        _line("l3", "exp", -30),
        _line("l4", "exp", -1000, is_approved=True),
    ]
    summary = approval_summary(lines, CATEGORIES)

    assert summary["unapproved_count"] == 3
    assert summary["total_income"] == Decimal("150")
    assert summary["total_expense"] == Decimal("30")
    assert summary["net"] == Decimal("120")
    by_name = {row["category"]: row for row in summary["categories"]}
    assert by_name["Consulting"]["count"] == 2
    assert by_name["Cloud Hosting"]["amount"] == Decimal("-30")
