# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for Venture FinSight.

This module is responsible for:
- loading the application configuration from a TOML file,
- validating its values,
- exposing typed dataclasses used by the rest of the application.
"""

import logging
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from .db import DatabaseConfig
from .models import to_decimal
from .periods import STATEMENT_PERIOD_TYPES

DEFAULT_CONFIG_FILE = "venture_finsight_config.toml"
DISPLAY_MODES: tuple[str, ...] = ("table", "csv", "both")


@dataclass(frozen=True)
class StatementsConfig:
    """Options of the statement calculator."""

    period_type: str
    default_opening_cash: Decimal


@dataclass(frozen=True)
class DisplayConfig:
    """Options of the CLI output."""

    mode: str
    output_dir: Path


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for Venture FinSight.

    This aggregates:
    - the database configuration (where ledgers and statements are stored),
    - the statement options (period granularity, default opening cash),
    - the consolidation balance tolerance,
    - display options for the CLI,
    - the logging level.
    """

    database: DatabaseConfig
    statements: StatementsConfig
    balance_tolerance: Decimal
    display: DisplayConfig
    log_level: str


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config entry [{name}] must be a table.")
    return section


def _decimal_option(section: Mapping[str, Any], key: str, default: str, table: str) -> Decimal:
    raw_value = section.get(key, default)
    try:
        # TOML floats go through their repr, so 0.01 stays exact.
        return to_decimal(raw_value)
    except ValueError as exc:
        raise ValueError(
            f"Invalid value for '{table}.{key}' in the configuration. "
            "Expected a number."
        ) from exc


def _parse_statements(raw: Mapping[str, Any]) -> StatementsConfig:
    section = _section(raw, "statements")

    period_type = str(section.get("period_type", "month")).lower()
    if period_type not in STATEMENT_PERIOD_TYPES:
        raise ValueError(
            f"Invalid value for 'statements.period_type': {period_type!r}. "
            f"Expected one of: {', '.join(STATEMENT_PERIOD_TYPES)}."
        )

    opening_cash = _decimal_option(section, "default_opening_cash", "0", "statements")
    return StatementsConfig(period_type=period_type, default_opening_cash=opening_cash)


def _parse_display(raw: Mapping[str, Any], base_dir: Path) -> DisplayConfig:
    section = _section(raw, "display")

    mode = str(section.get("mode", "table")).lower()
    if mode not in DISPLAY_MODES:
        raise ValueError(
            f"Invalid value for 'display.mode': {mode!r}. "
            f"Expected one of: {', '.join(DISPLAY_MODES)}."
        )

    output_dir = (base_dir / str(section.get("output_dir", "data/output"))).resolve()
    return DisplayConfig(mode=mode, output_dir=output_dir)


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the Venture FinSight application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [database]
        Database engine ("sqlite") and SQLite file path.

    [statements]
        `period_type` ("month", "quarter", "year" or "all") used when
        statements are recalculated, and `default_opening_cash` for
        companies created without an explicit opening cash.

    [consolidation]
        `balance_tolerance`: accepted difference between assets and
        liabilities + equity (default 0.01).

    [display]
        `mode` ("table", "csv" or "both") and `output_dir` for CSV exports.

    [logging]
        `level`: root logging level (default "INFO").

    Every section is optional. All file paths are resolved relative to the
    directory of the TOML file itself.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the file cannot be parsed or a value is invalid.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or "data/db/venture_finsight.sqlite"
    database_config = DatabaseConfig(
        engine=db_engine, path=(base_dir / str(db_path_raw)).resolve()
    )

    # 2) Statements
    statements = _parse_statements(raw)

    # 3) Consolidation
    tolerance = _decimal_option(
        _section(raw, "consolidation"), "balance_tolerance", "0.01", "consolidation"
    )
    if tolerance < 0:
        raise ValueError("'consolidation.balance_tolerance' cannot be negative.")

    # 4) Display options
    display = _parse_display(raw, base_dir)

    # 5) Logging
    log_level = str(_section(raw, "logging").get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Invalid value for 'logging.level': {log_level!r}.")

    return AppConfig(
        database=database_config,
        statements=statements,
        balance_tolerance=tolerance,
        display=display,
        log_level=log_level,
    )
