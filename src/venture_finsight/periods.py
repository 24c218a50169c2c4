# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for Venture FinSight.

This module defines a Period value object and helpers to group ledger
transactions into reporting periods (month, quarter, year) and to derive a
custom reporting window from CLI arguments.
"""

from calendar import monthrange
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from .models import Transaction

StatementPeriodType = Literal["month", "quarter", "year", "all"]
STATEMENT_PERIOD_TYPES: tuple[str, ...] = ("month", "quarter", "year", "all")


@dataclass
class Period:
    """Represents a reporting period with a human-readable label."""

    start: Optional[date]
    end: Optional[date]
    label: str


def period_key(day: date, period_type: str) -> str:
    """Return the grouping key of a date: '2025-01', '2025-Q1', '2025' or 'all'."""
    if period_type == "month":
        return f"{day.year}-{day.month:02d}"
    if period_type == "quarter":
        return f"{day.year}-Q{(day.month - 1) // 3 + 1}"
    if period_type == "year":
        return str(day.year)
    if period_type == "all":
        return "all"
    raise ValueError(f"Unknown period type: {period_type!r}")


def period_from_key(key: str, period_type: str) -> Period:
    """Return the Period (first and last day) described by a grouping key."""
    if period_type == "all":
        return Period(start=None, end=None, label="all")

    if period_type == "month":
        year, month = (int(p) for p in key.split("-"))
        start = date(year, month, 1)
        end = date(year, month, monthrange(year, month)[1])
    elif period_type == "quarter":
        year_raw, quarter_raw = key.split("-")
        year = int(year_raw)
        first_month = (int(quarter_raw.lstrip("Q")) - 1) * 3 + 1
        start = date(year, first_month, 1)
        last_month = first_month + 2
        end = date(year, last_month, monthrange(year, last_month)[1])
    elif period_type == "year":
        year = int(key)
        start = date(year, 1, 1)
        end = date(year, 12, 31)
    else:
        raise ValueError(f"Unknown period type: {period_type!r}")

    return Period(start=start, end=end, label=key)


def group_by_period(
    transactions: Iterable[Transaction], period_type: str
) -> dict[str, list[Transaction]]:
    """Group transactions by period key, keys in chronological order."""
    groups: dict[str, list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(period_key(tx.date, period_type), []).append(tx)
    # Keys are zero-padded so lexical order is chronological order.
    return {key: groups[key] for key in sorted(groups)}


def determine_period_from_args(args) -> Period:
    """
    Determine the reporting window from CLI args.

    ``args.from_date`` / ``args.to_date`` are optional ISO dates. Without
    either, the whole ledger is used.
    """
    from_raw: Optional[str] = getattr(args, "from_date", None)
    to_raw: Optional[str] = getattr(args, "to_date", None)

    if not from_raw and not to_raw:
        return Period(start=None, end=None, label="All dates")

    start = date.fromisoformat(from_raw) if from_raw else None
    end = date.fromisoformat(to_raw) if to_raw else None

    if start is not None and end is not None and end < start:
        raise ValueError("Custom period end date cannot be before start date.")

    label = f"Custom period ({start or '…'} → {end or '…'})"
    return Period(start=start, end=end, label=label)


def period_overlaps(
    start: Optional[date], end: Optional[date], window: Period
) -> bool:
    """
    Return True if [start, end] intersects the window (bounds inclusive).

    A missing bound, on either side, is open-ended.
    """
    if window.start is not None and end is not None and end < window.start:
        return False
    if window.end is not None and start is not None and start > window.end:
        return False
    return True
