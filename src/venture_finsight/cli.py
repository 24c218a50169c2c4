# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for Venture FinSight.

This module wires together the main building blocks of Venture FinSight:

- global configuration (database, statements, consolidation, display),
- the database layer (companies, ledgers, stored statements, budgets),
- the services layer (recalculation, consolidation, intercompany
  maintenance, budget approval),
- view helpers (tabular rendering and CSV export).

The CLI is intentionally thin: it does not implement financial logic
itself. It orchestrates the underlying modules based on command-line
arguments and the configuration file.


Commands
--------

company add|list
    Register a company of a portfolio, list companies.

import CSV_PATH --company ID
    Import ledger transactions from a CSV file.

statements --company ID
    Compute and display the statements of a company, period by period.

recalculate --company ID | --user ID
    Recompute and atomically replace the stored statements.

consolidate --user ID
    Consolidate the active companies of a user, with eliminations.

intercompany normalize|dedupe|mirror [--dry-run]
    Explicit maintenance of intercompany transfers.

budget add-period|add-category|import-lines|balances|summary|approve
    Planning domain and approval of actuals.


Display modes
-------------

Tabular outputs honour ``display.mode`` from the configuration, which can
be overridden with ``--display-mode``:

- 'table': print to stdout,
- 'csv':   write CSV files to the output directory,
- 'both':  do both.
"""

import argparse
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__, db, services
from .config import AppConfig, load_app_config
from .io import budget_lines_from_frame, read_budget_lines_csv, read_transactions_csv
from .models import BudgetCategory, BudgetPeriod, Company, to_decimal
from .periods import STATEMENT_PERIOD_TYPES, determine_period_from_args, period_overlaps
from .views import (
    budget_lines_to_frame,
    consolidated_to_frame,
    eliminations_to_frame,
    period_statements_to_frame,
)

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="venture-finsight",
        description=(
            "Venture FinSight - Financial statements & consolidation engine for "
            "venture portfolios. Computes per-company statements, consolidates "
            "portfolios with intercompany elimination, and posts budget actuals."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of venture_finsight and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. If omitted, "
            "'venture_finsight_config.toml' in the current directory is used."
        ),
    )

    # Display options
    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=["table", "csv", "both"],
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints results to stdout, "
            "'csv' writes CSV files only, "
            "'both' does both."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory where CSV files will be written when display "
            "mode includes 'csv'. If omitted, display.output_dir is used."
        ),
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # ------------------------------------------------------------------
    # company
    # ------------------------------------------------------------------
    company_parser = subparsers.add_parser("company", help="Manage companies.")
    company_sub = company_parser.add_subparsers(
        dest="company_command", metavar="company-command"
    )

    company_add = company_sub.add_parser("add", help="Register or update a company.")
    company_add.add_argument("company_id", help="Company identifier.")
    company_add.add_argument("--user", required=True, help="Owning user id.")
    company_add.add_argument("--name", required=True, help="Company name.")
    company_add.add_argument(
        "--opening-cash",
        dest="opening_cash",
        help="Opening cash (defaults to statements.default_opening_cash).",
    )
    company_add.add_argument(
        "--status", choices=["active", "archived"], default="active"
    )

    company_list = company_sub.add_parser("list", help="List companies.")
    company_list.add_argument("--user", help="Only list the companies of this user.")

    # ------------------------------------------------------------------
    # import
    # ------------------------------------------------------------------
    import_parser = subparsers.add_parser(
        "import", help="Import ledger transactions from a CSV file."
    )
    import_parser.add_argument("csv_path", metavar="CSV_PATH")
    import_parser.add_argument(
        "--company",
        help="Company assigned to every row (else the CSV needs company_id).",
    )

    # ------------------------------------------------------------------
    # statements / recalculate
    # ------------------------------------------------------------------
    statements_parser = subparsers.add_parser(
        "statements", help="Compute and display the statements of a company."
    )
    statements_parser.add_argument("--company", required=True)
    statements_parser.add_argument(
        "--period-type",
        dest="period_type",
        choices=list(STATEMENT_PERIOD_TYPES),
        help="Override statements.period_type from the configuration.",
    )
    statements_parser.add_argument(
        "--from-date", dest="from_date", help="Only show periods from (YYYY-MM-DD)."
    )
    statements_parser.add_argument(
        "--to-date", dest="to_date", help="Only show periods up to (YYYY-MM-DD)."
    )

    recalc_parser = subparsers.add_parser(
        "recalculate", help="Recompute and replace the stored statements."
    )
    target = recalc_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--company", help="Recalculate one company.")
    target.add_argument("--user", help="Recalculate every company of a user.")
    recalc_parser.add_argument(
        "--period-type", dest="period_type", choices=list(STATEMENT_PERIOD_TYPES)
    )

    # ------------------------------------------------------------------
    # consolidate
    # ------------------------------------------------------------------
    consolidate_parser = subparsers.add_parser(
        "consolidate", help="Consolidate the active companies of a user."
    )
    consolidate_parser.add_argument("--user", required=True)
    consolidate_parser.add_argument(
        "--tolerance", help="Override consolidation.balance_tolerance."
    )
    consolidate_parser.add_argument(
        "--show-eliminations",
        dest="show_eliminations",
        action="store_true",
        help="Also list matched and unmatched intercompany transfers.",
    )

    # ------------------------------------------------------------------
    # intercompany
    # ------------------------------------------------------------------
    ic_parser = subparsers.add_parser(
        "intercompany", help="Maintenance of intercompany transfers."
    )
    ic_sub = ic_parser.add_subparsers(dest="ic_command", metavar="intercompany-command")

    ic_normalize = ic_sub.add_parser(
        "normalize", help="Fix signs, categories and structured fields."
    )
    ic_normalize.add_argument("--company", required=True)

    ic_dedupe = ic_sub.add_parser("dedupe", help="Delete duplicate transfer rows.")
    ic_dedupe.add_argument("--company", required=True)

    ic_mirror = ic_sub.add_parser(
        "mirror", help="Create missing inflows in target companies."
    )
    ic_mirror.add_argument("--user", required=True)

    for sub in (ic_normalize, ic_dedupe, ic_mirror):
        sub.add_argument(
            "--dry-run",
            dest="dry_run",
            action="store_true",
            help="Report what would change without writing anything.",
        )

    # ------------------------------------------------------------------
    # budget
    # ------------------------------------------------------------------
    budget_parser = subparsers.add_parser("budget", help="Budget planning and actuals.")
    budget_sub = budget_parser.add_subparsers(dest="budget_command", metavar="budget-command")

    add_period = budget_sub.add_parser("add-period", help="Create a budget period.")
    add_period.add_argument("period_id")
    add_period.add_argument("--company", required=True)
    add_period.add_argument("--name", required=True)
    add_period.add_argument(
        "--type", dest="period_kind", choices=["BUDGET", "FORECAST", "ACTUALS"], required=True
    )
    add_period.add_argument("--start-date", dest="start_date")
    add_period.add_argument("--end-date", dest="end_date")

    add_category = budget_sub.add_parser("add-category", help="Create a budget category.")
    add_category.add_argument("category_id")
    add_category.add_argument("--name", required=True)
    add_category.add_argument(
        "--type", dest="category_kind", choices=["INCOME", "EXPENSE"], required=True
    )
    add_category.add_argument("--account-code", dest="account_code")

    import_lines = budget_sub.add_parser(
        "import-lines", help="Import budget lines of a period from a CSV file."
    )
    import_lines.add_argument("csv_path", metavar="CSV_PATH")
    import_lines.add_argument("--period-id", dest="period_id", required=True)

    balances = budget_sub.add_parser(
        "balances", help="Recompute and show the running balances of a period."
    )
    balances.add_argument("--period-id", dest="period_id", required=True)
    balances.add_argument("--starting-balance", dest="starting_balance", default="0")

    summary = budget_sub.add_parser(
        "summary", help="Summarize the unapproved lines of a period."
    )
    summary.add_argument("--period-id", dest="period_id", required=True)

    approve = budget_sub.add_parser(
        "approve", help="Post the lines of an ACTUALS period to the ledger."
    )
    approve.add_argument("--period-id", dest="period_id", required=True)
    approve.add_argument(
        "--lines", nargs="+", dest="line_ids", help="Only approve these line ids."
    )
    approve.add_argument("--approved-by", dest="approved_by", default="system")

    return ap


def _parse_optional_date(value: Optional[str]) -> Optional[date]:
    """
    Parse an optional CLI date argument (YYYY-MM-DD).

    Raises
    ------
    SystemExit
        If the date format is invalid.
    """
    if value is None:
        return None

    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        msg = f"Invalid date format: {value!r}. Expected YYYY-MM-DD."
        raise SystemExit(msg) from exc


def _render(
    df: pd.DataFrame,
    title: str,
    file_stem: str,
    args: argparse.Namespace,
    config: AppConfig,
) -> None:
    """Print a frame and/or write it as CSV according to the display mode."""
    display_mode = args.display_mode or config.display.mode

    if display_mode in {"table", "both"}:
        print()
        print(f"=== {title} ===")
        if df.empty:
            print("(no rows)")
        else:
            print(df.to_string(index=False))

    if display_mode in {"csv", "both"}:
        output_dir = Path(args.output_dir) if args.output_dir else config.display.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
        path = output_dir / f"{file_stem}_{timestamp}.csv"
        df.to_csv(path, index=False)
        print(f"Wrote {path} ({len(df)} rows)")


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _handle_company(args: argparse.Namespace, config: AppConfig) -> None:
    subcmd = getattr(args, "company_command", None)

    if subcmd == "add":
        opening = (
            to_decimal(args.opening_cash)
            if args.opening_cash is not None
            else config.statements.default_opening_cash
        )
        company = Company(
            id=args.company_id,
            user_id=args.user,
            name=args.name,
            opening_cash=opening,
            status=args.status,
        )
        db.upsert_company(config.database, company)
        print(f"Company {company.id} ({company.name}) saved for user {company.user_id}.")
    elif subcmd == "list":
        companies = db.list_companies(config.database, user_id=args.user)
        if not companies:
            print("No companies found.")
            return
        df = pd.DataFrame(
            [
                {
                    "id": c.id,
                    "user_id": c.user_id,
                    "name": c.name,
                    "status": c.status,
                    "opening_cash": c.opening_cash,
                }
                for c in companies
            ]
        )
        print(df.to_string(index=False))
    else:
        print("No company subcommand specified. Available subcommands: 'add', 'list'.")


def _handle_import(args: argparse.Namespace, config: AppConfig) -> None:
    csv_path = Path(args.csv_path)
    if not csv_path.is_file():
        raise SystemExit(f"CSV file for import not found: {csv_path}")

    print(f"Importing transactions from {csv_path} into the database...")
    df_import = read_transactions_csv(csv_path, company_id=args.company)
    stats = db.import_transactions(df_import, config.database)
    print(
        f"Imported {stats.rows_inserted} transactions, "
        f"{stats.duplicates_detected} already present."
    )


def _handle_statements(args: argparse.Namespace, config: AppConfig) -> None:
    window = determine_period_from_args(args)
    periods = services.recompute_company(config, args.company, args.period_type)
    periods = [p for p in periods if period_overlaps(p.start, p.end, window)]

    print(f"Applied period: {window.label}")
    _render(
        period_statements_to_frame(periods),
        f"Statements of {args.company}",
        f"statements_{args.company}",
        args,
        config,
    )
    for p in periods:
        for err in p.statements.errors:
            print(f"Warning [{p.label}]: {err}")
        if p.statements.unclassified:
            print(
                f"Warning [{p.label}]: {len(p.statements.unclassified)} "
                "transaction(s) fell into an unclassified bucket."
            )


def _handle_recalculate(args: argparse.Namespace, config: AppConfig) -> None:
    if args.company:
        company_ids = [args.company]
    else:
        company_ids = [c.id for c in db.list_companies(config.database, user_id=args.user)]

    for company_id in company_ids:
        written = services.recalculate_company(config, company_id, args.period_type)
        print(f"Recalculated {company_id}: {written} statement rows stored.")


def _handle_consolidate(args: argparse.Namespace, config: AppConfig) -> None:
    tolerance = to_decimal(args.tolerance) if args.tolerance else None
    result = services.consolidate_portfolio(config, args.user, tolerance)

    if not result.per_company:
        print(f"No active companies found for user {args.user}.")
        return

    _render(
        consolidated_to_frame(result),
        f"Consolidated statements of {args.user}",
        f"consolidated_{args.user}",
        args,
        config,
    )

    elim = result.eliminations
    print()
    print(
        f"Eliminated {len(elim.matched_pairs)} intercompany pair(s) "
        f"({elim.transfers_eliminated:.2f}); "
        f"{len(elim.unmatched_transfers)} unmatched transfer(s)."
    )
    if elim.balances_eliminated or elim.unmatched_balances:
        print(
            f"Intercompany balances eliminated: {elim.balances_eliminated:.2f} "
            f"(unmatched: {elim.unmatched_balances:.2f})"
        )

    if args.show_eliminations:
        _render(
            eliminations_to_frame(elim),
            "Intercompany eliminations",
            f"eliminations_{args.user}",
            args,
            config,
        )

    if result.is_valid:
        print("Consolidation is valid.")
    else:
        print("Consolidation is NOT valid:")
        for err in result.errors:
            print(f"  - {err}")


def _handle_intercompany(args: argparse.Namespace, config: AppConfig) -> None:
    subcmd = getattr(args, "ic_command", None)
    suffix = " (dry run, nothing written)" if getattr(args, "dry_run", False) else ""

    if subcmd == "normalize":
        report = services.normalize_intercompany(config, args.company, args.dry_run)
        print(
            f"Processed {report.processed} transfer(s): {report.updated} updated, "
            f"{report.skipped} already normalized, "
            f"{len(report.unresolved)} with unknown direction{suffix}."
        )
        for change in report.changes:
            print(
                f"  {change.before.id}: {change.before.amount} -> {change.after.amount} "
                f"({change.direction}, {change.after.category})"
            )
        for tx in report.unresolved:
            print(f"  unresolved: {tx.id} {tx.description!r}")
    elif subcmd == "dedupe":
        result = services.cleanup_intercompany_duplicates(config, args.company, args.dry_run)
        print(
            f"Examined {result.examined} transfer(s): "
            f"{len(result.duplicate_ids)} duplicate(s), {result.deleted} deleted{suffix}."
        )
        for tx_id in result.duplicate_ids:
            print(f"  duplicate: {tx_id}")
    elif subcmd == "mirror":
        plan = services.allocate_intercompany_mirrors(config, args.user, args.dry_run)
        print(
            f"Processed {plan.outflows_processed} outflow(s): "
            f"{len(plan.created)} mirror(s) created, {len(plan.skipped)} skipped, "
            f"{len(plan.missing_targets)} without target{suffix}."
        )
        for missing in plan.missing_targets:
            print(f"  missing target: {missing.source_id} {missing.description!r}")
    else:
        print(
            "No intercompany subcommand specified. "
            "Available subcommands: 'normalize', 'dedupe', 'mirror'."
        )


def _handle_budget(args: argparse.Namespace, config: AppConfig) -> None:
    subcmd = getattr(args, "budget_command", None)

    if subcmd == "add-period":
        period = BudgetPeriod(
            id=args.period_id,
            company_id=args.company,
            name=args.name,
            type=args.period_kind,
            start_date=_parse_optional_date(args.start_date),
            end_date=_parse_optional_date(args.end_date),
        )
        db.insert_budget_period(config.database, period)
        print(f"Budget period {period.id} ({period.type}) created.")
    elif subcmd == "add-category":
        category = BudgetCategory(
            id=args.category_id,
            name=args.name,
            type=args.category_kind,
            account_code=args.account_code,
        )
        db.insert_budget_category(config.database, category)
        print(f"Budget category {category.id} ({category.type}) created.")
    elif subcmd == "import-lines":
        period = db.get_budget_period(config.database, args.period_id)
        if period is None:
            raise SystemExit(f"Unknown budget period: {args.period_id}")
        lines = budget_lines_from_frame(
            read_budget_lines_csv(args.csv_path), period.id, period.company_id
        )
        count = db.insert_budget_lines(config.database, lines)
        projected = services.refresh_running_balances(config, period.id)
        print(f"Imported {count} budget line(s); {len(projected)} balance(s) refreshed.")
    elif subcmd == "balances":
        lines = services.refresh_running_balances(
            config, args.period_id, to_decimal(args.starting_balance)
        )
        _render(
            budget_lines_to_frame(lines),
            f"Budget lines of {args.period_id}",
            f"budget_lines_{args.period_id}",
            args,
            config,
        )
    elif subcmd == "summary":
        summary = services.actuals_summary(config, args.period_id)
        print(f"Unapproved lines: {summary['unapproved_count']}")
        if summary["categories"]:
            print(pd.DataFrame(summary["categories"]).to_string(index=False))
        print(
            f"Total income: {summary['total_income']} | "
            f"Total expense: {summary['total_expense']} | "
            f"Net: {summary['net']}"
        )
    elif subcmd == "approve":
        result = services.approve_actuals(
            config, args.period_id, args.line_ids, args.approved_by
        )
        s = result.summary
        print(
            f"Approved {s['approved']} line(s), created {s['transactions']} "
            f"transaction(s). Income: {s['total_income']} | "
            f"Expense: {s['total_expense']}"
        )
        if result.plan.skipped_zero:
            print(f"Skipped {len(result.plan.skipped_zero)} zero-amount line(s).")
    else:
        print(
            "No budget subcommand specified. Available subcommands: 'add-period', "
            "'add-category', 'import-lines', 'balances', 'summary', 'approve'."
        )


HANDLERS = {
    "company": _handle_company,
    "import": _handle_import,
    "statements": _handle_statements,
    "recalculate": _handle_recalculate,
    "consolidate": _handle_consolidate,
    "intercompany": _handle_intercompany,
    "budget": _handle_budget,
}


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the Venture FinSight CLI.

    Parses command-line arguments, loads the configuration, configures
    logging, initializes the database once, and dispatches to the requested
    command. Invalid input and rolled-back operations end the program with
    an error message.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"venture_finsight version {__version__}")
        return

    if args.command is None:
        parser.print_help()
        return

    # 1) Load application configuration
    config = load_app_config(args.config_path)

    # 2) Configure logging once for the whole process
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 3) Initialize the database (create file and schema if needed)
    schema = db.init_database(config.database)
    logger.debug("Database schema version %d", schema.version)

    # 4) Dispatch
    try:
        HANDLERS[args.command](args, config)
    except (ValueError, db.AtomicOperationError) as exc:
        raise SystemExit(f"Error: {exc}") from exc


if __name__ == "__main__":
    main()
