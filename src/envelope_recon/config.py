"""Configuration loader and validation for engine settings."""

from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class CsvColumnAliases(BaseModel):
    """Header-name fragments that identify each CSV column role."""

    date: list[str] = Field(default_factory=lambda: ["date"])
    amount: list[str] = Field(default_factory=lambda: ["amount"])
    unique_id: list[str] = Field(
        default_factory=lambda: ["unique id", "unique_id", "uniqueid"]
    )
    tran_type: list[str] = Field(
        default_factory=lambda: ["tran type", "tran_type", "trantype", "transaction type"]
    )
    merchant: list[str] = Field(default_factory=lambda: ["payee", "merchant"])
    memo: list[str] = Field(default_factory=lambda: ["memo", "description", "reference"])


class CsvImportConfig(BaseModel):
    """Configuration for bank CSV parsing."""

    encoding: str = "utf-8-sig"
    delimiter: str = ","
    header_scan_lines: int = Field(default=10, ge=1)
    columns: CsvColumnAliases = Field(default_factory=CsvColumnAliases)


class SyncSettings(BaseModel):
    """Duplicate detection settings applied to bank-sourced candidates."""

    duplicate_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    date_tolerance_days: int = Field(default=2, ge=0)
    amount_tolerance: Decimal = Decimal("0.01")
    similarity: str = "sequence"


class LedgerConfig(BaseModel):
    """Settings for balance arithmetic."""

    epsilon: Decimal = Decimal("0.01")


class StorageConfig(BaseModel):
    """Where engine state lives between runs."""

    state_file: Optional[str] = None
    seed_demo_data: bool = True


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    envelopes: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Envelopes"))
    transactions: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Transactions")
    )
    duplicates: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Potential Duplicates")
    )
    journal: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Ledger Journal"))


class OutputConfig(BaseModel):
    """Configuration for report output."""

    filename_template: str = "envelope_report_{date}_{time}.xlsx"
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class EngineConfig(BaseModel):
    """Main configuration model for the reconciliation engine."""

    csv: CsvImportConfig = Field(default_factory=CsvImportConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "csv": {
            "encoding": "utf-8-sig",
            "delimiter": ",",
            "header_scan_lines": 10,
            "columns": {
                "date": ["date"],
                "amount": ["amount"],
                "unique_id": ["unique id", "unique_id", "uniqueid"],
                "tran_type": ["tran type", "tran_type", "trantype", "transaction type"],
                "merchant": ["payee", "merchant"],
                "memo": ["memo", "description", "reference"],
            },
        },
        "sync": {
            "duplicate_threshold": 0.9,
            "date_tolerance_days": 2,
            "amount_tolerance": "0.01",
            "similarity": "sequence",
        },
        "ledger": {
            "epsilon": "0.01",
        },
        "storage": {
            "state_file": None,
            "seed_demo_data": True,
        },
        "output": {
            "filename_template": "envelope_report_{date}_{time}.xlsx",
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "envelopes": {"enabled": True, "name": "Envelopes"},
                "transactions": {"enabled": True, "name": "Transactions"},
                "duplicates": {"enabled": True, "name": "Potential Duplicates"},
                "journal": {"enabled": True, "name": "Ledger Journal"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
        },
    }


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        EngineConfig object with loaded or default settings
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        with open(config_path, "r") as f:
            user_config = yaml.safe_load(f) or {}

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    return EngineConfig(**config_dict)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()

    yaml_content = """# Envelope reconciliation engine configuration
# Generated configuration file - customize as needed
#
# sync.duplicate_threshold: merchant similarity (0-1) required to flag a
#   bank transaction as a possible duplicate of an existing one
# storage.state_file: JSON file the CLI loads and persists engine state to

"""
    yaml_content += yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
