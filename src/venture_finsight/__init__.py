# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Venture FinSight
----------------

A financial engine for venture studios and holding portfolios: several
companies owned by one user, each with its own signed-amount ledger.

Main capabilities:
- transaction classification into P&L, cash flow and balance sheet lines,
- per-company statements (P&L, Cash Flow, Balance Sheet) with cash chaining
  across months, quarters or years,
- running balance projection for budget lines,
- intercompany transfer normalization, deduplication and auto-mirroring,
- multi-entity consolidation with intercompany elimination and balance
  validation,
- atomic posting of approved budget actuals into the ledger,
- a SQLite storage layer with atomic statement replacement.

Venture FinSight separates computation (engine), configuration (TOML), and
presentation (CLI), making it suitable for scripting and automation.


Version: 0.1.0

Usage:
    venture-finsight --help
"""

__all__ = [
    "balances",
    "budget",
    "classifier",
    "consolidation",
    "engine",
    "intercompany",
    "models",
    "views",
    "io",
]

__version__ = "0.1.0"
