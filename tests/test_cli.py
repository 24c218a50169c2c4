from decimal import Decimal

import pytest

from venture_finsight import db
from venture_finsight.cli import main
from venture_finsight.config import load_app_config


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "venture_finsight_config.toml"
    path.write_text(
        """
[database]
path = "db/test.sqlite"

[statements]
period_type = "month"

[display]
mode = "table"
output_dir = "out"

[logging]
level = "WARNING"
""",
        encoding="utf-8",
    )
    return str(path)


def _run(config_path, *args):
    main(["--config", config_path, *args])


def test_version_flag(capsys):
    main(["--version"])
    assert "venture_finsight version" in capsys.readouterr().out


def test_company_import_and_statements(tmp_path, config_path, capsys):
    _run(config_path, "company", "add", "a", "--user", "u1", "--name", "Alpha", "--opening-cash", "1000")
    ledger = tmp_path / "alpha.csv"
    ledger.write_text(
        "id,date,type,category,amount,description\n"
        "t1,2025-01-10,revenue,saas,100,Invoice\n"
        "t2,2025-02-10,expense,rent,-30,Office\n",
        encoding="utf-8",
    )
    _run(config_path, "import", str(ledger), "--company", "a")
    _run(config_path, "import", str(ledger), "--company", "a")
    out = capsys.readouterr().out
    assert "Imported 2 transactions, 0 already present." in out
    assert "Imported 0 transactions, 2 already present." in out

    _run(config_path, "statements", "--company", "a", "--from-date", "2025-02-01")
    out = capsys.readouterr().out
    assert "=== Statements of a ===" in out
    assert "2025-02" in out
    assert "2025-01" not in out.split("===")[-1]

    _run(config_path, "recalculate", "--company", "a")
    assert "Recalculated a:" in capsys.readouterr().out

    cfg = load_app_config(config_path).database
    assert set(db.load_statements(cfg, "a")["period_label"]) == {"2025-01", "2025-02"}


def test_consolidate_writes_csv_in_csv_mode(tmp_path, config_path, capsys):
    _run(config_path, "company", "add", "a", "--user", "u1", "--name", "Alpha")
    _run(config_path, "company", "add", "b", "--user", "u1", "--name", "Beta")
    capsys.readouterr()

    _run(config_path, "--display-mode", "csv", "consolidate", "--user", "u1")
    out = capsys.readouterr().out
    assert "Consolidation is valid." in out
    assert list((tmp_path / "out").glob("consolidated_u1_*.csv"))


def test_budget_approval_flow(tmp_path, config_path, capsys):
    _run(config_path, "company", "add", "a", "--user", "u1", "--name", "Alpha")
    _run(config_path, "budget", "add-period", "p1", "--company", "a", "--name", "Jan", "--type", "ACTUALS")
    _run(config_path, "budget", "add-category", "inc", "--name", "Consulting", "--type", "INCOME")
    lines = tmp_path / "lines.csv"
    lines.write_text(
        "date,category_id,amount\n2025-01-01,inc,50\n2025-01-01,inc,-20\n2025-01-02,inc,10\n",
        encoding="utf-8",
    )
    _run(config_path, "budget", "import-lines", str(lines), "--period-id", "p1")
    assert "Imported 3 budget line(s)" in capsys.readouterr().out

    cfg = load_app_config(config_path).database
    balances = [line.balance for line in db.load_budget_lines(cfg, "p1")]
    assert balances == [Decimal("30"), Decimal("30"), Decimal("40")]

    _run(config_path, "budget", "approve", "--period-id", "p1")
    assert "Approved 3 line(s), created 3 transaction(s)." in capsys.readouterr().out

    with pytest.raises(SystemExit, match="No lines to approve"):
        _run(config_path, "budget", "approve", "--period-id", "p1")


def test_errors_exit_with_a_message(config_path):
    with pytest.raises(SystemExit, match="Unknown company"):
        _run(config_path, "statements", "--company", "ghost")
