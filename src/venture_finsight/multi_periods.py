# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Multi-period orchestration of the statement calculator.

``engine.calculate()`` produces the statements of one company over one
set of transactions. This module chains it across consecutive reporting
periods (months, quarters or years):

- the beginning cash of period n+1 is the ending cash of period n,
- balance sheet lines (receivables, fixed assets, debts, ...) carry
  forward, so each period's balance sheet is a point-in-time snapshot
  through the end of that period,
- P&L and cash flow figures only cover the period's own transactions.

Only periods that contain at least one transaction are produced.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .engine import FinancialStatements, calculate
from .models import ZERO, Transaction, to_decimal
from .periods import group_by_period, period_from_key


@dataclass(frozen=True)
class PeriodStatements:
    """
    Statements of one reporting period.

    Attributes
    ----------
    label :
        Period key (e.g. '2025-01', '2025-Q1', '2025' or 'all').
    start, end :
        First and last day of the period (None for 'all').
    transactions :
        Transactions folded into this period.
    statements :
        Result of ``engine.calculate`` for the period.
    """

    label: str
    start: Optional[date]
    end: Optional[date]
    transactions: tuple[Transaction, ...]
    statements: FinancialStatements

    @property
    def beginning_cash(self):
        return self.statements.cash_flow.beginning_cash

    @property
    def ending_cash(self):
        return self.statements.cash_flow.ending_cash


def calculate_by_period(
    transactions: Iterable[Transaction],
    period_type: str = "month",
    initial_cash=ZERO,
) -> list[PeriodStatements]:
    """Calculate statements period by period with cash and balance carry-forward.

    Args:
        transactions: Ledger rows of one company, in any order.
        period_type: 'month', 'quarter', 'year' or 'all'.
        initial_cash: Cash before the first period.

    Returns:
        One PeriodStatements per non-empty period, in chronological order.
    """
    results: list[PeriodStatements] = []
    carry_cash = to_decimal(initial_cash)
    carry_balance = None

    for key, period_txs in group_by_period(transactions, period_type).items():
        period = period_from_key(key, period_type)
        statements = calculate(period_txs, carry_cash, carry_balance)

        results.append(
            PeriodStatements(
                label=key,
                start=period.start,
                end=period.end,
                transactions=tuple(period_txs),
                statements=statements,
            )
        )

        carry_cash = statements.cash_flow.ending_cash
        carry_balance = statements.balance_sheet

    return results
