from datetime import date
from decimal import Decimal

import pytest

from venture_finsight.classifier import (
    UNCLASSIFIED,
    Classification,
    balance_sheet_effect,
    cash_flow_effect,
    classify,
    pl_effect,
)
from venture_finsight.models import TRANSACTION_TYPES, make_transaction


def _tx(tx_type, category, amount, **kwargs):
    return make_transaction(
        id=kwargs.pop("id", "t1"),
        company_id="c1",
        date=date(2025, 1, 10),
        type=tx_type,
        category=category,
        amount=Decimal(str(amount)),
        **kwargs,
    )


CATEGORIES = [
    "product_sales",
    "consulting",
    "saas",
    "misc",
    "cogs",
    "hosting",
    "marketing",
    "r&d",
    "payroll",
    "cash",
    "equipment",
    "inventory",
    "accounts_receivable",
    "accounts_payable",
    "bank_loan",
    "credit_line",
    "long_term_debt",
    "seed_round",
    "transfer_out",
    "transfer_in",
    "",
    "something_unknown",
]


@pytest.mark.parametrize("tx_type", sorted(TRANSACTION_TYPES))
@pytest.mark.parametrize("category", CATEGORIES)
def test_every_type_and_category_has_a_defined_effect(tx_type, category):
    """Classification never raises: unknown combinations land in a bucket."""
    result = classify(_tx(tx_type, category, "-42.10"))
    assert isinstance(result, Classification)
    for effect in (result.pl, result.cash_flow, result.balance_sheet):
        if effect is not None:
            assert isinstance(effect.amount, Decimal)
            assert effect.line


@pytest.mark.parametrize(
    "category, line",
    [
        ("product_sales", "product_revenue"),
        ("Consulting fees", "service_revenue"),
        ("SaaS subscription", "service_revenue"),
        ("grant", "other_revenue"),
    ],
)
def test_revenue_sub_buckets(category, line):
    effect = pl_effect(_tx("revenue", category, 100))
    assert effect.line == line
    assert effect.amount == Decimal("100")


@pytest.mark.parametrize(
    "category, line",
    [
        ("cogs", "direct_costs"),
        ("Cost of Sales", "direct_costs"),
        ("sales commissions", "sales_marketing"),
        ("cloud hosting", "infrastructure_costs"),
        ("advertising", "sales_marketing"),
        ("R&D", "rd_expenses"),
        ("office rent", "admin_expenses"),
        ("mystery", "unclassified_expenses"),
    ],
)
def test_expense_sub_buckets_hold_magnitudes(category, line):
    effect = pl_effect(_tx("expense", category, -80))
    assert effect.line == line
    assert effect.amount == Decimal("80")


def test_expense_cash_flow_is_an_outflow_whatever_the_stored_sign():
    assert cash_flow_effect(_tx("expense", "rent", 80)).amount == Decimal("-80")
    assert cash_flow_effect(_tx("expense", "rent", -80)).amount == Decimal("-80")


def test_asset_purchase_is_investing_outflow_and_fixed_asset():
    tx = _tx("asset", "equipment", 3000)
    cf = cash_flow_effect(tx)
    bs = balance_sheet_effect(tx)
    assert (cf.line, cf.amount) == ("investing", Decimal("-3000"))
    assert (bs.line, bs.amount) == ("fixed_assets", Decimal("3000"))


def test_cash_asset_never_posts_to_the_balance_sheet():
    tx = _tx("asset", "cash", 500)
    assert balance_sheet_effect(tx) is None
    assert cash_flow_effect(tx).line == "operating"


def test_receivable_has_no_cash_effect():
    tx = _tx("asset", "accounts_receivable", 250)
    assert cash_flow_effect(tx) is None
    assert balance_sheet_effect(tx).line == "accounts_receivable"


@pytest.mark.parametrize(
    "category, bs_line, cf_line",
    [
        ("accounts_payable", "accounts_payable", "operating"),
        ("credit_line", "short_term_debt", "financing"),
        ("bank_loan", "long_term_debt", "financing"),
    ],
)
def test_liability_mapping(category, bs_line, cf_line):
    tx = _tx("liability", category, 1000)
    assert balance_sheet_effect(tx).line == bs_line
    assert cash_flow_effect(tx).line == cf_line


def test_equity_is_financing_and_contributed_capital():
    result = classify(_tx("equity", "seed_round", 10000))
    assert result.pl is None
    assert (result.cash_flow.line, result.cash_flow.amount) == ("financing", Decimal("10000"))
    assert result.balance_sheet.line == "contributed_capital"


def test_intercompany_moves_operating_cash_only():
    result = classify(_tx("intercompany_transfer", "transfer_out", -100))
    assert result.pl is None
    assert result.balance_sheet is None
    assert (result.cash_flow.line, result.cash_flow.amount) == ("operating", Decimal("-100"))


def test_unknown_asset_category_is_unclassified():
    result = classify(_tx("asset", "crypto_wallet", 10))
    assert result.is_unclassified
    assert result.cash_flow.line == UNCLASSIFIED
    assert result.balance_sheet.line == UNCLASSIFIED


def test_flags_switch_statements_off():
    tx = _tx(
        "revenue",
        "saas",
        100,
        affects_pl=False,
        affects_cash_flow=False,
        affects_balance=False,
    )
    assert classify(tx) == Classification()
