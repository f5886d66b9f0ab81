# ETB Engine - Extended Trial Balance ingestion & rollup engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for ETB Engine.

This module is responsible for:
- loading the application configuration from a TOML file,
- exposing typed dataclasses used by the rest of the application,
- providing defaults so that the engine can run without any file.
"""

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Optional

DEFAULT_CONFIG_FILENAME = "etb_engine_config.toml"

# 10 MiB, the ceiling enforced on uploads before parsing.
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for ETB Engine.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    busy_timeout_seconds:
        How long a writer waits for another engagement upload holding the
        write lock before giving up.
    """

    engine: str
    path: Path
    busy_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class ImportConfig:
    """Options applied while reading and normalizing an upload."""

    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    csv_encoding: str = "utf-8-sig"
    parentheses_negative: bool = False


@dataclass(frozen=True)
class ProfitAndLossEntry:
    """One entry of the profit and loss layout.

    A line entry sums the subtree of ``label`` and applies ``sign`` (+1 or
    -1). A subtotal entry shows the running total of every line above it.
    """

    label: str
    sign: int = 1
    subtotal: bool = False


DEFAULT_PROFIT_AND_LOSS_ENTRIES: tuple[ProfitAndLossEntry, ...] = (
    ProfitAndLossEntry("Revenue"),
    ProfitAndLossEntry("Cost of sales", -1),
    ProfitAndLossEntry("Gross Profit", subtotal=True),
    ProfitAndLossEntry("Sales and marketing expenses", -1),
    ProfitAndLossEntry("Administrative expenses", -1),
    ProfitAndLossEntry("Other operating income"),
    ProfitAndLossEntry("Operating Profit", subtotal=True),
    ProfitAndLossEntry("Investment income"),
    ProfitAndLossEntry("Investment losses", -1),
    ProfitAndLossEntry("Finance costs", -1),
    ProfitAndLossEntry("Share of profit of subsidiary"),
    ProfitAndLossEntry("PBT Expenses", -1),
    ProfitAndLossEntry("Net Profit Before Tax", subtotal=True),
    ProfitAndLossEntry("Income tax expense", -1),
    ProfitAndLossEntry("Net Profit After Tax", subtotal=True),
)


@dataclass(frozen=True)
class ProfitAndLossConfig:
    """Layout of the profit and loss view.

    ``path`` is the classification node whose children are the P&L lines.
    """

    path: tuple[str, ...] = ("Equity", "Current Year Profits & Losses")
    entries: tuple[ProfitAndLossEntry, ...] = DEFAULT_PROFIT_AND_LOSS_ENTRIES


@dataclass(frozen=True)
class StatementsConfig:
    """Depth-1 classification labels feeding each statement."""

    assets: str = "Assets"
    liabilities: str = "Liabilities"
    equity: str = "Equity"
    revenue: tuple[str, ...] = ("Income", "Revenue")
    expenses: tuple[str, ...] = ("Expenses",)
    profit_and_loss: ProfitAndLossConfig = field(default_factory=ProfitAndLossConfig)


@dataclass(frozen=True)
class ClassificationConfig:
    """Automatic classification options."""

    auto_classify: bool = False
    rules_file: Optional[Path] = None


@dataclass(frozen=True)
class FiscalYear:
    """Year end of the engagement, used to label statement columns."""

    end_date: Optional[date] = None


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for ETB Engine.

    This aggregates:
    - the engagement fiscal year (column labels),
    - the database configuration (where datasets are stored),
    - the import options (size ceiling, CSV encoding, sign convention),
    - the statement label sets,
    - the automatic classification options.
    """

    fiscal_year: FiscalYear
    database: DatabaseConfig
    imports: ImportConfig = field(default_factory=ImportConfig)
    statements: StatementsConfig = field(default_factory=StatementsConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _parse_fiscal_year(raw: Mapping[str, Any]) -> FiscalYear:
    engagement = _section(raw, "engagement")
    end_raw = engagement.get("year_end_date")
    if end_raw is None or end_raw == "":
        return FiscalYear()
    if isinstance(end_raw, date):
        return FiscalYear(end_date=end_raw)
    try:
        return FiscalYear(end_date=date.fromisoformat(str(end_raw)))
    except ValueError as exc:
        raise ValueError(
            "Invalid [engagement].year_end_date, expected YYYY-MM-DD format."
        ) from exc


def _parse_bool(value: Any, default: bool, key: str) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Invalid value for '{key}', expected true or false.")
    return value


def _parse_labels(value: Any, default: tuple[str, ...], key: str) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"Invalid value for '{key}', expected a list of strings.")
    labels = tuple(v.strip() for v in value if v.strip())
    if not labels:
        raise ValueError(f"'{key}' must contain at least one label.")
    return labels


_SIGNS = {"+": 1, "-": -1}


def _parse_profit_and_loss_entry(item: Any, key: str) -> ProfitAndLossEntry:
    if not isinstance(item, Mapping):
        raise ValueError(f"Invalid entry in '{key}', expected a table.")
    if "subtotal" in item:
        label = item["subtotal"]
        if not isinstance(label, str) or not label.strip():
            raise ValueError(f"Invalid subtotal in '{key}', expected a label.")
        return ProfitAndLossEntry(label.strip(), subtotal=True)

    label = item.get("label")
    if not isinstance(label, str) or not label.strip():
        raise ValueError(f"Invalid entry in '{key}', 'label' is required.")
    sign = item.get("sign", "+")
    if not isinstance(sign, str) or sign not in _SIGNS:
        raise ValueError(
            f"Invalid sign {sign!r} for {label.strip()!r} in '{key}', "
            "expected '+' or '-'."
        )
    return ProfitAndLossEntry(label.strip(), _SIGNS[sign])


def _parse_profit_and_loss(section: Mapping[str, Any]) -> ProfitAndLossConfig:
    key = "statements.profit_and_loss"
    raw = section.get("profit_and_loss") or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Invalid [{key}] section, expected a table.")
    defaults = ProfitAndLossConfig()

    path = _parse_labels(raw.get("path"), defaults.path, f"{key}.path")

    items = raw.get("items")
    if items is None:
        return ProfitAndLossConfig(path=path)
    if not isinstance(items, list) or not items:
        raise ValueError(f"'{key}.items' must be a non-empty list of tables.")
    entries = tuple(
        _parse_profit_and_loss_entry(item, f"{key}.items") for item in items
    )
    return ProfitAndLossConfig(path=path, entries=entries)


def _parse_statements(raw: Mapping[str, Any]) -> StatementsConfig:
    section = _section(raw, "statements")
    defaults = StatementsConfig()
    return StatementsConfig(
        assets=str(section.get("assets", defaults.assets)),
        liabilities=str(section.get("liabilities", defaults.liabilities)),
        equity=str(section.get("equity", defaults.equity)),
        revenue=_parse_labels(
            section.get("revenue"), defaults.revenue, "statements.revenue"
        ),
        expenses=_parse_labels(
            section.get("expenses"), defaults.expenses, "statements.expenses"
        ),
        profit_and_loss=_parse_profit_and_loss(section),
    )


def _parse_imports(raw: Mapping[str, Any]) -> ImportConfig:
    section = _section(raw, "import")
    try:
        max_upload_bytes = int(
            section.get("max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES)
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'import.max_upload_bytes'. Expected an integer."
        ) from exc
    if max_upload_bytes <= 0:
        raise ValueError("'import.max_upload_bytes' must be positive.")

    return ImportConfig(
        max_upload_bytes=max_upload_bytes,
        csv_encoding=str(section.get("csv_encoding") or "utf-8-sig"),
        parentheses_negative=_parse_bool(
            section.get("parentheses_negative"),
            False,
            "import.parentheses_negative",
        ),
    )


def _parse_database(raw: Mapping[str, Any], base_dir: Path) -> DatabaseConfig:
    section = _section(raw, "database")
    engine = str(section.get("engine") or "sqlite")
    path_raw = section.get("path") or "data/db/etb_engine.sqlite"
    try:
        busy_timeout = float(section.get("busy_timeout_seconds", 5.0))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'database.busy_timeout_seconds'. Expected a number."
        ) from exc
    return DatabaseConfig(
        engine=engine,
        path=(base_dir / str(path_raw)).resolve(),
        busy_timeout_seconds=busy_timeout,
    )


def _parse_classification(
    raw: Mapping[str, Any], base_dir: Path
) -> ClassificationConfig:
    section = _section(raw, "classification")
    rules_raw = section.get("rules_file")
    rules_file = (base_dir / str(rules_raw)).resolve() if rules_raw else None
    return ClassificationConfig(
        auto_classify=_parse_bool(
            section.get("auto_classify"), False, "classification.auto_classify"
        ),
        rules_file=rules_file,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the ETB Engine configuration from a TOML file.

    Expected top-level sections in the TOML file (all optional)
    ------------------------------------------------------------
    [engagement]
        year_end_date: ISO date used to label the current/prior columns.

    [database]
        engine, path (relative to the TOML file), busy_timeout_seconds.

    [import]
        max_upload_bytes, csv_encoding, parentheses_negative.

    [statements]
        assets, liabilities, equity (depth-1 labels) and revenue,
        expenses (lists of depth-1 labels).

    [statements.profit_and_loss]
        path (classification path holding the P&L lines) and items, an
        ordered list of { label, sign = "+" | "-" } and { subtotal } tables.

    [classification]
        auto_classify (bool), rules_file (CSV, relative to the TOML file).

    When ``config_path`` is None, ``etb_engine_config.toml`` is looked up
    in the current working directory; if it does not exist, defaults are
    used. An explicit path that does not exist raises FileNotFoundError.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILENAME).resolve()
        if not config_file.is_file():
            return default_app_config(config_file.parent)
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    return AppConfig(
        fiscal_year=_parse_fiscal_year(raw),
        database=_parse_database(raw, base_dir),
        imports=_parse_imports(raw),
        statements=_parse_statements(raw),
        classification=_parse_classification(raw, base_dir),
    )


def default_app_config(base_dir: Optional[Path] = None) -> AppConfig:
    """Configuration used when no TOML file is available."""
    return AppConfig(
        fiscal_year=FiscalYear(),
        database=_parse_database({}, base_dir or Path.cwd()),
    )
