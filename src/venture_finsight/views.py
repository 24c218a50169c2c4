# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for Venture FinSight.

This module turns the statement dataclasses produced by the engine into
tabular "views" for display or CSV export, and into JSON-ready
dictionaries.

All frames are long format with a ``display_order`` column numbered
10, 20, 30, ... so that rows keep the order in which statement lines are
declared (P&L, then balance sheet, then cash flow).

Amounts stay ``Decimal`` in the frames; ``statements_to_dict`` renders
them as strings so no precision is lost when serialized.
"""

from collections.abc import Iterable, Sequence
from dataclasses import fields
from decimal import Decimal
from typing import Any

import pandas as pd

from .consolidation import ConsolidatedResult, Eliminations
from .engine import FinancialStatements
from .models import BudgetLine
from .multi_periods import PeriodStatements

STATEMENT_LABELS: dict[str, str] = {
    "pl": "Profit & Loss",
    "balance_sheet": "Balance Sheet",
    "cash_flow": "Cash Flow",
}


def _statement_lines(statements: FinancialStatements) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for section in STATEMENT_LABELS:
        statement = getattr(statements, section)
        for f in fields(statement):
            value = getattr(statement, f.name)
            if isinstance(value, Decimal):
                rows.append({"statement": section, "line": f.name, "amount": value})
    return rows


def _renumber_display_order(df: pd.DataFrame) -> pd.DataFrame:
    """Renumber display_order as 10, 20, 30, ... in the current row order."""
    df = df.reset_index(drop=True)
    df.insert(0, "display_order", (df.index + 1) * 10)
    return df


def statements_to_frame(statements: FinancialStatements) -> pd.DataFrame:
    """Return one statement set as a long DataFrame (statement, line, amount)."""
    df = pd.DataFrame(
        _statement_lines(statements), columns=["statement", "line", "amount"]
    )
    return _renumber_display_order(df)


def period_statements_to_frame(periods: Sequence[PeriodStatements]) -> pd.DataFrame:
    """
    Return the statements of several periods side by side.

    Columns: display_order, statement, line, then one column per period
    label in chronological order.
    """
    if not periods:
        return pd.DataFrame(columns=["display_order", "statement", "line"])

    base = statements_to_frame(periods[0].statements)[["display_order", "statement", "line"]]
    for period in periods:
        amounts = [row["amount"] for row in _statement_lines(period.statements)]
        base[period.label] = amounts
    return base


def consolidated_to_frame(result: ConsolidatedResult) -> pd.DataFrame:
    """
    Return the consolidated statements next to each company.

    Columns: display_order, statement, line, one column per company name,
    then ``consolidated``.
    """
    df = statements_to_frame(result.consolidated)
    consolidated = df.pop("amount")
    for company in result.per_company:
        df[company.name] = [r["amount"] for r in _statement_lines(company.statements)]
    df["consolidated"] = consolidated
    return df


def eliminations_to_frame(eliminations: Eliminations) -> pd.DataFrame:
    """
    Return one row per intercompany transfer considered for elimination.

    ``status`` is "matched" for eliminated pairs and "unmatched" for rows
    left in the aggregate.
    """
    rows: list[dict[str, Any]] = []
    for pair in eliminations.matched_pairs:
        for leg in (pair.outflow, pair.inflow):
            rows.append(
                {
                    "status": "matched",
                    "transaction_id": leg.id,
                    "company_id": leg.company_id,
                    "date": leg.date,
                    "amount": leg.amount,
                    "description": leg.description,
                }
            )
    for tx in eliminations.unmatched_transfers:
        rows.append(
            {
                "status": "unmatched",
                "transaction_id": tx.id,
                "company_id": tx.company_id,
                "date": tx.date,
                "amount": tx.amount,
                "description": tx.description,
            }
        )
    return pd.DataFrame(
        rows,
        columns=["status", "transaction_id", "company_id", "date", "amount", "description"],
    )


def budget_lines_to_frame(lines: Iterable[BudgetLine]) -> pd.DataFrame:
    """Return budget lines with their running balance and approval state."""
    return pd.DataFrame(
        [
            {
                "id": line.id,
                "date": line.date,
                "category_id": line.category_id,
                "amount": line.amount,
                "balance": line.balance,
                "is_approved": line.is_approved,
                "transaction_id": line.transaction_id,
            }
            for line in lines
        ],
        columns=[
            "id",
            "date",
            "category_id",
            "amount",
            "balance",
            "is_approved",
            "transaction_id",
        ],
    )


def statements_to_dict(statements: FinancialStatements) -> dict[str, Any]:
    """Return a JSON-ready dict; decimals are rendered as strings."""
    out: dict[str, Any] = {}
    for section in STATEMENT_LABELS:
        statement = getattr(statements, section)
        out[section] = {
            f.name: str(v) if isinstance(v, Decimal) else v
            for f in fields(statement)
            for v in (getattr(statement, f.name),)
        }
    out["unclassified"] = list(statements.unclassified)
    out["errors"] = list(statements.errors)
    out["is_valid"] = statements.is_valid
    return out
