from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against the JSON schema shipped next to this module
- Apply defaults for every optional key
"""

SCHEMA_PATH = Path(__file__).with_name("schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Fallback connection settings; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class AmountFormat:
    """How currency cells are written in a given export.

    Symbols and the thousands separator are stripped, then the decimal
    separator is turned into a dot.
    """
    thousands_separator: str | None = None
    decimal_separator: str = ","
    symbols: str = "$"


@dataclass(frozen=True)
class CaseImportSettings:
    date_order: str = "dmy"
    # plain dot decimals, as the case export writes them
    amount_format: AmountFormat = field(
        default_factory=lambda: AmountFormat(thousands_separator=None, decimal_separator=".")
    )
    prescription_years: int = 3
    create_missing_taxpayers: bool = True
    min_year: int = 2000
    max_year: int = 2100


@dataclass(frozen=True)
class AgreementImportSettings:
    date_order: str = "dmy"
    amount_format: AmountFormat = field(
        default_factory=lambda: AmountFormat(thousands_separator=".", decimal_separator=",")
    )
    prescription_months: int = 37
    default_percentage: float = 30.0
    default_billing_day: int = 15
    max_installments: int = 12


@dataclass(frozen=True)
class ImportConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    batch_size: int = 100
    preview_sample_limit: int = 100
    max_error_messages: int = 50
    delimiter: str = ";"
    error_log_directory: str = "logs"
    cases: CaseImportSettings = field(default_factory=CaseImportSettings)
    agreements: AgreementImportSettings = field(default_factory=AgreementImportSettings)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: the schema file is missing or invalid, or the data
            fails validation (unknown keys, wrong types, out-of-range values).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _amount_format(raw: dict[str, Any] | None, default: AmountFormat) -> AmountFormat:
    if not raw:
        return default
    return AmountFormat(
        thousands_separator=raw.get("thousands_separator", default.thousands_separator),
        decimal_separator=raw.get("decimal_separator", default.decimal_separator),
        symbols=raw.get("symbols", default.symbols),
    )


def build_config(data: dict[str, Any]) -> ImportConfig:
    """Build an ImportConfig from already-validated raw data."""
    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    imports = data.get("imports", {})
    case_raw = imports.get("procesos", {})
    agreement_raw = imports.get("acuerdos", {})
    case_defaults = CaseImportSettings()
    agreement_defaults = AgreementImportSettings()

    cases = CaseImportSettings(
        date_order=case_raw.get("date_order", case_defaults.date_order),
        amount_format=_amount_format(case_raw.get("amount_format"), case_defaults.amount_format),
        prescription_years=case_raw.get("prescription_years", case_defaults.prescription_years),
        create_missing_taxpayers=case_raw.get(
            "create_missing_taxpayers", case_defaults.create_missing_taxpayers
        ),
        min_year=case_raw.get("min_year", case_defaults.min_year),
        max_year=case_raw.get("max_year", case_defaults.max_year),
    )
    agreements = AgreementImportSettings(
        date_order=agreement_raw.get("date_order", agreement_defaults.date_order),
        amount_format=_amount_format(
            agreement_raw.get("amount_format"), agreement_defaults.amount_format
        ),
        prescription_months=agreement_raw.get(
            "prescription_months", agreement_defaults.prescription_months
        ),
        default_percentage=agreement_raw.get(
            "default_percentage", agreement_defaults.default_percentage
        ),
        default_billing_day=agreement_raw.get(
            "default_billing_day", agreement_defaults.default_billing_day
        ),
        max_installments=agreement_raw.get(
            "max_installments", agreement_defaults.max_installments
        ),
    )
    defaults = ImportConfig()
    return ImportConfig(
        database=db,
        batch_size=data.get("batch_size", defaults.batch_size),
        preview_sample_limit=data.get("preview_sample_limit", defaults.preview_sample_limit),
        max_error_messages=data.get("max_error_messages", defaults.max_error_messages),
        delimiter=data.get("delimiter", defaults.delimiter),
        error_log_directory=data.get("error_log_directory", defaults.error_log_directory),
        cases=cases,
        agreements=agreements,
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)
    return build_config(data)
