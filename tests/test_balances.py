from datetime import date
from decimal import Decimal

from venture_finsight.balances import daily_running_totals, project_running_balances
from venture_finsight.models import BudgetLine


def _line(line_id, day, amount):
    return BudgetLine(
        id=line_id,
        period_id="p1",
        company_id="c1",
        category_id="cat",
        date=date(2025, 1, day),
        amount=Decimal(str(amount)),
    )


def test_same_day_lines_share_the_post_accumulation_balance():
    lines = [_line("a", 1, 50), _line("b", 1, -20), _line("c", 2, 10)]
    projected = project_running_balances(lines)

    assert [line.balance for line in projected] == [
        Decimal("30"),
        Decimal("30"),
        Decimal("40"),
    ]


def test_input_order_is_preserved_and_inputs_untouched():
    lines = [_line("late", 9, 5), _line("early", 2, 100)]
    projected = project_running_balances(lines, starting_balance=Decimal("1000"))

    assert [line.id for line in projected] == ["late", "early"]
    assert projected[0].balance == Decimal("1105")
    assert projected[1].balance == Decimal("1100")
    assert lines[0].balance is None


def test_daily_totals_are_sorted_by_date():
    totals = daily_running_totals([_line("b", 3, 1), _line("a", 1, 2)])
    assert list(totals) == [date(2025, 1, 1), date(2025, 1, 3)]
    assert daily_running_totals([]) == {}
