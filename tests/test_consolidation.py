from datetime import date
from decimal import Decimal

from venture_finsight.consolidation import CompanyInput, consolidate, match_transfers
from venture_finsight.models import make_transaction

DAY = date(2025, 4, 1)


def _tx(tx_id, company_id, tx_type, category, amount, description="", **kwargs):
    return make_transaction(
        id=tx_id,
        company_id=company_id,
        date=kwargs.pop("day", DAY),
        type=tx_type,
        category=category,
        amount=Decimal(str(amount)),
        description=description,
        **kwargs,
    )


def _alpha():
    return CompanyInput(
        id="a",
        name="Alpha",
        transactions=(
            _tx("a-1", "a", "intercompany_transfer", "transfer_out", -100, "Transfer to Beta"),
            _tx("a-2", "a", "revenue", "saas", 400),
        ),
        opening_cash=Decimal("1000"),
    )


def _beta():
    return CompanyInput(
        id="b",
        name="Beta",
        transactions=(
            _tx(
                "mirror-a-1",
                "b",
                "intercompany_transfer",
                "transfer_in",
                100,
                "Intercompany transfer from Alpha [AUTO MIRROR a-1]",
            ),
            _tx("b-1", "b", "expense", "hosting", -60),
        ),
    )


def _gamma():
    return CompanyInput(
        id="c",
        name="Gamma",
        transactions=(
            _tx("c-1", "c", "equity", "seed_round", 5000),
            _tx("c-2", "c", "asset", "equipment", 1500),
        ),
        opening_cash=Decimal("250"),
    )


def test_matched_transfer_is_eliminated_from_operating_cash():
    result = consolidate([_alpha(), _beta()])

    alpha, beta = result.per_company
    assert alpha.statements.cash_flow.operating_cash_flow == Decimal("300")
    assert beta.statements.cash_flow.operating_cash_flow == Decimal("40")

    elims = result.eliminations
    assert len(elims.matched_pairs) == 1
    pair = elims.matched_pairs[0]
    assert (pair.outflow.id, pair.inflow.id) == ("a-1", "mirror-a-1")
    assert pair.amount == Decimal("100")
    assert elims.transfers_eliminated == Decimal("100")
    assert elims.unmatched_transfers == ()

    cf = result.consolidated.cash_flow
    # External movements only: revenue 400 and hosting 60.
    assert cf.operating_cash_flow == Decimal("340")
    assert cf.ending_cash == Decimal("1340")
    assert result.is_valid


def test_transfer_only_portfolio_nets_to_zero():
    alpha = CompanyInput(
        id="a",
        name="Alpha",
        transactions=(
            _tx("a-1", "a", "intercompany_transfer", "transfer_out", -100, "Transfer to Beta"),
        ),
    )
    beta = CompanyInput(
        id="b",
        name="Beta",
        transactions=(
            _tx("b-1", "b", "intercompany_transfer", "transfer_in", 100, "Transfer from Alpha"),
        ),
    )
    result = consolidate([alpha, beta])

    assert result.per_company[0].statements.cash_flow.operating_cash_flow == Decimal("-100")
    assert result.per_company[1].statements.cash_flow.operating_cash_flow == Decimal("100")
    assert result.consolidated.cash_flow.operating_cash_flow == Decimal("0")
    assert len(result.eliminations.matched_pairs) == 1
    assert result.is_valid


def test_consolidation_does_not_depend_on_company_order():
    first = consolidate([_alpha(), _beta(), _gamma()])
    second = consolidate([_gamma(), _alpha(), _beta()])

    assert first.consolidated == second.consolidated
    assert first.eliminations == second.eliminations
    assert first.is_valid and second.is_valid
    assert sorted(c.company_id for c in second.per_company) == ["a", "b", "c"]


def test_summed_totals_and_equity():
    result = consolidate([_alpha(), _beta(), _gamma()])
    bs = result.consolidated.balance_sheet

    assert result.consolidated.pl.revenue == Decimal("400")
    assert result.consolidated.pl.net_profit == Decimal("340")
    assert bs.fixed_assets == Decimal("1500")
    assert bs.cash_equivalents == result.consolidated.cash_flow.ending_cash
    assert bs.total_equity == sum(
        (c.statements.balance_sheet.total_equity for c in result.per_company), Decimal("0")
    )
    assert bs.balances


def test_unmatched_transfer_is_reported_and_kept():
    alpha = CompanyInput(
        id="a",
        name="Alpha",
        transactions=(
            _tx("a-1", "a", "intercompany_transfer", "transfer_out", -100, "Transfer to Beta"),
        ),
    )
    beta = CompanyInput(
        id="b",
        name="Beta",
        transactions=(
            _tx(
                "b-1",
                "b",
                "intercompany_transfer",
                "transfer_in",
                90,
                "Transfer from Alpha",
            ),
        ),
    )
    result = consolidate([alpha, beta])

    elims = result.eliminations
    assert elims.matched_pairs == ()
    assert [t.id for t in elims.unmatched_transfers] == ["a-1", "b-1"]
    assert result.consolidated.cash_flow.operating_cash_flow == Decimal("-10")
    assert result.is_valid


def test_one_sided_cash_leg_is_not_paired():
    """An outflow moving cash never pairs with an inflow that does not."""
    alpha = CompanyInput(
        id="a",
        name="Alpha",
        transactions=(
            _tx("a-1", "a", "intercompany_transfer", "transfer_out", -100, "Transfer to Beta"),
        ),
        opening_cash=Decimal("500"),
    )
    beta = CompanyInput(
        id="b",
        name="Beta",
        transactions=(
            _tx(
                "b-1",
                "b",
                "intercompany_transfer",
                "transfer_in",
                100,
                "Transfer from Alpha",
                affects_cash_flow=False,
            ),
        ),
    )
    result = consolidate([alpha, beta])

    elims = result.eliminations
    assert elims.matched_pairs == ()
    assert [t.id for t in elims.unmatched_transfers] == ["a-1", "b-1"]

    # The group holds what Alpha holds; no cash is made up by elimination.
    bs = result.consolidated.balance_sheet
    assert bs.cash_equivalents == Decimal("400")
    assert bs.balances
    assert result.is_valid


def test_counterparty_mismatch_prevents_matching():
    companies = [
        CompanyInput(
            id="a",
            name="Alpha",
            transactions=(
                _tx("a-1", "a", "intercompany_transfer", "", -100, "Transfer to Gamma"),
            ),
        ),
        CompanyInput(
            id="b",
            name="Beta",
            transactions=(
                _tx("b-1", "b", "intercompany_transfer", "", 100, "Transfer from Alpha"),
            ),
        ),
        CompanyInput(id="c", name="Gamma", transactions=()),
    ]
    pairs, unmatched = match_transfers(companies)
    assert pairs == []
    assert [t.id for t in unmatched] == ["a-1", "b-1"]


def test_intercompany_balances_are_eliminated():
    alpha = CompanyInput(
        id="a",
        name="Alpha",
        transactions=(_tx("a-1", "a", "asset", "intercompany_receivable", 200),),
    )
    beta = CompanyInput(
        id="b",
        name="Beta",
        transactions=(_tx("b-1", "b", "liability", "intercompany_payable", 150),),
    )
    result = consolidate([alpha, beta])

    elims = result.eliminations
    assert elims.receivables == Decimal("200")
    assert elims.payables == Decimal("150")
    assert elims.balances_eliminated == Decimal("150")
    assert elims.unmatched_balances == Decimal("50")

    bs = result.consolidated.balance_sheet
    assert bs.accounts_receivable == Decimal("50")
    assert bs.accounts_payable == Decimal("0")
    assert bs.balances
    assert not result.is_valid
    assert result.errors == (
        "Unmatched intercompany transactions: 50.00 (Receivables: 200.00, Payables: 150.00)",
    )


def test_intercompany_loan_is_eliminated_against_a_receivable():
    alpha = CompanyInput(
        id="a",
        name="Alpha",
        transactions=(_tx("a-1", "a", "asset", "intercompany_receivable", 200),),
    )
    beta = CompanyInput(
        id="b",
        name="Beta",
        transactions=(
            _tx("b-1", "b", "liability", "intercompany_loan", 200, "Intercompany loan from Alpha"),
        ),
    )
    result = consolidate([alpha, beta])

    elims = result.eliminations
    assert (elims.receivables, elims.payables) == (Decimal("200"), Decimal("200"))
    assert elims.balances_eliminated == Decimal("200")
    assert elims.unmatched_balances == Decimal("0")

    # The loan sits on long term debt, so that is the line reduced.
    bs = result.consolidated.balance_sheet
    assert bs.accounts_receivable == Decimal("0")
    assert bs.long_term_debt == Decimal("0")
    assert bs.accounts_payable == Decimal("0")
    assert result.is_valid


def test_one_sided_intercompany_balance_is_an_error():
    company = CompanyInput(
        id="a",
        name="Alpha",
        transactions=(_tx("a-1", "a", "asset", "intercompany_receivable", 200),),
    )
    result = consolidate([company])

    assert result.eliminations.unmatched_balances == Decimal("200")
    assert result.consolidated.balance_sheet.accounts_receivable == Decimal("200")
    assert not result.is_valid
    assert result.errors[0].startswith("Unmatched intercompany transactions: 200.00")


def test_empty_portfolio_is_valid():
    result = consolidate([])
    assert result.per_company == ()
    assert result.consolidated.cash_flow.ending_cash == Decimal("0")
    assert result.is_valid
