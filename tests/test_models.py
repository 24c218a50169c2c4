from datetime import date, datetime
from decimal import Decimal

import pytest

from venture_finsight.models import (
    from_cents,
    make_transaction,
    normalize_category,
    to_amount,
    to_cents,
    to_decimal,
)


def test_to_decimal_keeps_float_literals_exact():
    """Floats go through their repr: 0.1 must not become its binary expansion."""
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("1,250.50") == Decimal("1250.50")
    assert to_decimal(3) == Decimal("3")


@pytest.mark.parametrize("value", ["", "abc", float("nan"), float("inf"), True])
def test_to_decimal_rejects_invalid_values(value):
    with pytest.raises(ValueError):
        to_decimal(value)


def test_cents_round_trip_and_half_up_rounding():
    assert to_cents(Decimal("12.34")) == 1234
    assert to_cents(Decimal("-12.34")) == -1234
    assert to_cents(Decimal("0.005")) == 1
    assert from_cents(-1234) == Decimal("-12.34")


def test_ledger_amounts_must_be_whole_cents():
    """A sub-cent amount would be rounded by the cents storage."""
    assert to_amount("10.500") == Decimal("10.500")
    assert to_amount(-0.3) == Decimal("-0.3")
    with pytest.raises(ValueError, match="more than two decimal places"):
        to_amount("10.005")
    with pytest.raises(ValueError, match="more than two decimal places"):
        make_transaction(
            id="t1",
            company_id="c1",
            date="2025-01-01",
            type="revenue",
            category="saas",
            amount="10.005",
        )


def test_normalize_category():
    assert normalize_category("  Cost of Goods ") == "cost_of_goods"
    assert normalize_category("R&D / Research") == "r&d_research"
    assert normalize_category(None) == ""


def test_make_transaction_resolves_default_flags():
    """Revenue/expense touch all statements; other types default to no P&L."""
    revenue = make_transaction(
        id="t1",
        company_id="c1",
        date="2025-01-15",
        type="Revenue",
        category="SaaS",
        amount="100",
    )
    assert revenue.type == "revenue"
    assert revenue.date == date(2025, 1, 15)
    assert (revenue.affects_pl, revenue.affects_cash_flow, revenue.affects_balance) == (
        True,
        True,
        True,
    )

    transfer = make_transaction(
        id="t2",
        company_id="c1",
        date=datetime(2025, 1, 15, 10, 30),
        type="intercompany",
        category="",
        amount=-50,
    )
    assert transfer.is_intercompany
    assert transfer.normalized_type == "intercompany_transfer"
    assert transfer.affects_pl is False
    assert transfer.affects_cash_flow is True


def test_make_transaction_explicit_flags_win():
    tx = make_transaction(
        id="t1",
        company_id="c1",
        date=date(2025, 1, 1),
        type="expense",
        category="rent",
        amount="-10",
        affects_cash_flow=False,
    )
    assert tx.affects_pl is True
    assert tx.affects_cash_flow is False


def test_make_transaction_rejects_unknown_type_and_direction():
    with pytest.raises(ValueError, match="Unknown transaction type"):
        make_transaction(
            id="t1", company_id="c1", date="2025-01-01", type="gift", category="", amount=1
        )
    with pytest.raises(ValueError, match="direction"):
        make_transaction(
            id="t1",
            company_id="c1",
            date="2025-01-01",
            type="intercompany_transfer",
            category="",
            amount=1,
            direction="sideways",
        )
