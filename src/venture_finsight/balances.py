# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Running balance projection for planning lines.

The balance of a budget line is a *date-level* running total: all lines of
a period are grouped by calendar date, same-day amounts are summed into a
daily net, and the dates are walked in ascending order. Every line sharing
a date receives the same post-accumulation balance.

Example: +50 and -20 on day 1, +10 on day 2 (starting at 0) gives a
balance of 30 for both day-1 lines and 40 for the day-2 line.

The projection is a full recomputation: it must be re-run on the whole
period whenever any of its lines changes.
"""

from collections.abc import Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal

from .models import ZERO, BudgetLine, to_decimal


def daily_running_totals(
    lines: Sequence[BudgetLine], starting_balance=ZERO
) -> dict[date, Decimal]:
    """Return {date -> running balance after that date}, dates ascending."""
    daily: dict[date, Decimal] = {}
    for line in lines:
        daily[line.date] = daily.get(line.date, ZERO) + line.amount

    running = to_decimal(starting_balance)
    totals: dict[date, Decimal] = {}
    for day in sorted(daily):
        running += daily[day]
        totals[day] = running
    return totals


def project_running_balances(
    lines: Sequence[BudgetLine], starting_balance=ZERO
) -> list[BudgetLine]:
    """Annotate every line with the running balance of its date.

    The returned list preserves the input order; input lines are not
    modified.
    """
    totals = daily_running_totals(lines, starting_balance)
    return [replace(line, balance=totals[line.date]) for line in lines]
