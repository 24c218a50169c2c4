from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from venture_finsight import db, services
from venture_finsight.config import AppConfig, DisplayConfig, StatementsConfig
from venture_finsight.db import DatabaseConfig
from venture_finsight.models import (
    BudgetCategory,
    BudgetLine,
    BudgetPeriod,
    Company,
    make_transaction,
)


def make_app_config(tmp_path: Path, period_type: str = "month") -> AppConfig:
    """AppConfig backed by an initialized temporary database."""
    database = DatabaseConfig(engine="sqlite", path=tmp_path / "test_db.sqlite")
    db.init_database(database)
    return AppConfig(
        database=database,
        statements=StatementsConfig(period_type=period_type, default_opening_cash=Decimal("0")),
        balance_tolerance=Decimal("0.01"),
        display=DisplayConfig(mode="table", output_dir=tmp_path / "out"),
        log_level="INFO",
    )


def _tx(tx_id, company_id, day, tx_type, category, amount, description=""):
    return make_transaction(
        id=tx_id,
        company_id=company_id,
        date=day,
        type=tx_type,
        category=category,
        amount=Decimal(str(amount)),
        description=description,
    )


def _portfolio(app_config):
    cfg = app_config.database
    db.upsert_company(cfg, Company(id="a", user_id="u1", name="Alpha", opening_cash=Decimal("1000")))
    db.upsert_company(cfg, Company(id="b", user_id="u1", name="Beta LLC"))
    db.upsert_company(cfg, Company(id="z", user_id="u1", name="Zombie", status="archived"))
    db.upsert_company(cfg, Company(id="x", user_id="u2", name="Elsewhere"))
    return cfg


def test_recompute_company_without_transactions(tmp_path):
    app_config = make_app_config(tmp_path)
    _portfolio(app_config)

    (period,) = services.recompute_company(app_config, "a")
    assert period.label == "all"
    assert period.ending_cash == Decimal("1000")
    assert period.statements.is_valid


def test_recalculate_company_stores_every_period(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    db.insert_transactions(
        cfg,
        [
            _tx("t1", "a", date(2025, 1, 10), "revenue", "saas", 100),
            _tx("t2", "a", date(2025, 2, 10), "expense", "rent", -30),
        ],
    )

    written = services.recalculate_company(app_config, "a")
    stored = db.load_statements(cfg, "a")
    assert written == len(stored)
    assert sorted(set(stored["period_label"])) == ["2025-01", "2025-02"]

    ending = stored[(stored["statement"] == "cash_flow") & (stored["line"] == "ending_cash")]
    assert ending.sort_values("period_label")["amount"].tolist() == [
        Decimal("1100"),
        Decimal("1070"),
    ]

    # Quarterly recalculation replaces the monthly set entirely.
    services.recalculate_company(app_config, "a", period_type="quarter")
    assert set(db.load_statements(cfg, "a")["period_label"]) == {"2025-Q1"}


def test_unknown_company_is_rejected(tmp_path):
    app_config = make_app_config(tmp_path)
    with pytest.raises(ValueError, match="Unknown company"):
        services.recompute_company(app_config, "ghost")


def test_consolidate_portfolio_uses_active_companies_of_the_user(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    db.insert_transactions(
        cfg,
        [
            _tx("a-1", "a", date(2025, 3, 1), "intercompany_transfer", "", -100, "Transfer to Beta LLC"),
            _tx("b-1", "b", date(2025, 3, 1), "intercompany_transfer", "", 100, "Transfer from Alpha"),
            _tx("z-1", "z", date(2025, 3, 1), "revenue", "saas", 999),
            _tx("x-1", "x", date(2025, 3, 1), "revenue", "saas", 999),
        ],
    )

    result = services.consolidate_portfolio(app_config, "u1")
    assert [c.company_id for c in result.per_company] == ["a", "b"]
    assert result.consolidated.pl.revenue == Decimal("0")
    assert result.consolidated.cash_flow.operating_cash_flow == Decimal("0")
    assert result.consolidated.cash_flow.ending_cash == Decimal("1000")
    assert len(result.eliminations.matched_pairs) == 1
    assert result.is_valid


def test_normalize_intercompany_dry_run_then_apply(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    db.insert_transactions(
        cfg,
        [_tx("a-1", "a", date(2025, 3, 1), "intercompany_transfer", "misc", 250, "Wire to Beta LLC")],
    )

    preview = services.normalize_intercompany(app_config, "a", dry_run=True)
    assert preview.updated == 1
    assert db.load_transactions(cfg, "a")[0].amount == Decimal("250")

    applied = services.normalize_intercompany(app_config, "a")
    assert applied.updated == 1
    (tx,) = db.load_transactions(cfg, "a")
    assert tx.amount == Decimal("-250")
    assert tx.category == "transfer_out"
    assert tx.direction == "outflow"
    assert tx.counterparty_company_id == "b"

    assert services.normalize_intercompany(app_config, "a").updated == 0


def test_cleanup_intercompany_duplicates_keeps_one_row(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    db.insert_transactions(
        cfg,
        [
            _tx("d1", "a", date(2025, 3, 1), "intercompany_transfer", "transfer_out", -50, "Transfer to Beta LLC"),
            _tx("d2", "a", date(2025, 3, 1), "intercompany_transfer", "transfer_out", -50, "Transfer to Beta LLC"),
        ],
    )

    preview = services.cleanup_intercompany_duplicates(app_config, "a", dry_run=True)
    assert preview.duplicate_ids == ("d2",)
    assert preview.deleted == 0
    assert len(db.load_transactions(cfg, "a")) == 2

    result = services.cleanup_intercompany_duplicates(app_config, "a")
    assert result.deleted == 1
    assert [t.id for t in db.load_transactions(cfg, "a")] == ["d1"]


def test_allocate_intercompany_mirrors_creates_missing_inflows_once(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    db.insert_transactions(
        cfg,
        [_tx("a-1", "a", date(2025, 3, 1), "intercompany_transfer", "transfer_out", -75, "Transfer to Beta LLC")],
    )

    plan = services.allocate_intercompany_mirrors(app_config, "u1")
    assert [t.id for t in plan.created] == ["mirror-a-1"]
    (mirror,) = db.load_transactions(cfg, "b")
    assert mirror.amount == Decimal("75")

    again = services.allocate_intercompany_mirrors(app_config, "u1")
    assert again.created == ()
    assert len(db.load_transactions(cfg, "b")) == 1

    result = services.consolidate_portfolio(app_config, "u1")
    assert result.eliminations.unmatched_transfers == ()


def _seed_period(cfg, period_type="ACTUALS"):
    db.insert_budget_period(
        cfg, BudgetPeriod(id="p1", company_id="a", name="January", type=period_type)
    )
    db.insert_budget_category(cfg, BudgetCategory(id="inc", name="Consulting", type="INCOME"))
    db.insert_budget_category(cfg, BudgetCategory(id="exp", name="Office Rent", type="EXPENSE"))
    db.insert_budget_lines(
        cfg,
        [
            BudgetLine(
                id="l1",
                period_id="p1",
                company_id="a",
                category_id="inc",
                date=date(2025, 1, 1),
                amount=Decimal("50"),
            ),
            BudgetLine(
                id="l2",
                period_id="p1",
                company_id="a",
                category_id="exp",
                date=date(2025, 1, 1),
                amount=Decimal("-20"),
            ),
            BudgetLine(
                id="l3",
                period_id="p1",
                company_id="a",
                category_id="inc",
                date=date(2025, 1, 2),
                amount=Decimal("10"),
            ),
        ],
    )


def test_refresh_running_balances_stores_date_level_totals(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    _seed_period(cfg, "BUDGET")

    services.refresh_running_balances(app_config, "p1")
    assert [line.balance for line in db.load_budget_lines(cfg, "p1")] == [
        Decimal("30"),
        Decimal("30"),
        Decimal("40"),
    ]


def test_actuals_summary_before_approval(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    _seed_period(cfg)

    summary = services.actuals_summary(app_config, "p1")
    assert summary["unapproved_count"] == 3
    assert summary["total_income"] == Decimal("60")
    assert summary["total_expense"] == Decimal("20")
    assert summary["net"] == Decimal("40")


def test_approve_actuals_posts_and_recalculates(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    _seed_period(cfg)

    result = services.approve_actuals(app_config, "p1", approved_by="alice")
    assert result.summary["approved"] == 3
    assert result.statements_written > 0

    txs = db.load_transactions(cfg, "a")
    assert len(txs) == 3
    assert {t.type for t in txs} == {"revenue", "expense"}

    stored = db.load_statements(cfg, "a")
    profit = stored[(stored["statement"] == "pl") & (stored["line"] == "net_profit")]
    assert profit["amount"].tolist() == [Decimal("40")]

    with pytest.raises(ValueError, match="No lines to approve"):
        services.approve_actuals(app_config, "p1")


def test_approve_actuals_rejects_non_actuals_and_unknown_periods(tmp_path):
    app_config = make_app_config(tmp_path)
    cfg = _portfolio(app_config)
    _seed_period(cfg, "BUDGET")

    with pytest.raises(ValueError, match="Only ACTUALS"):
        services.approve_actuals(app_config, "p1")
    with pytest.raises(ValueError, match="Unknown budget period"):
        services.approve_actuals(app_config, "missing")
    assert db.load_transactions(cfg, "a") == []
