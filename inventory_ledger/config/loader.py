"""
Configuration Loader (``inventory_ledger.config.loader``).

Responsibility
--------------
Loads the ledger's YAML settings file and parses it into the frozen
``LedgerSettings`` dataclass.  Packaged defaults live next to this module in
``defaults.yaml``; a deployment overrides them with a second YAML file named
by the ``INVENTORY_LEDGER_CONFIG`` environment variable (or passed in).
Keys missing from the override keep their default.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or out-of-range value  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

CONFIG_ENV_VAR = "INVENTORY_LEDGER_CONFIG"
DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")


@dataclass(frozen=True)
class LedgerSettings:
    """
    Tunables of the ledger engine.

    Attributes:
        max_write_retries: Attempts of the re-check/insert sequence before a
            consuming write gives up with RetryExhaustedError.
        backoff_base_seconds: Sleep before retry ``n`` is ``base * 2**n``.
        max_cascade_days: Hard cap on dates visited by one propagation walk.
        database_url: SQLAlchemy URL for the SQL movement store.
        log_level: Level for the ``inventory_ledger`` logger hierarchy.
        default_low_stock_threshold: Threshold for items that set none.
    """

    max_write_retries: int = 3
    backoff_base_seconds: float = 0.1
    max_cascade_days: int = 366
    database_url: str = "sqlite:///inventory_ledger.db"
    log_level: str = "INFO"
    default_low_stock_threshold: Decimal = Decimal("10")

    def __post_init__(self) -> None:
        if self.max_write_retries < 1:
            raise ValueError(
                f"max_write_retries must be >= 1, got {self.max_write_retries}"
            )
        if self.backoff_base_seconds < 0:
            raise ValueError(
                f"backoff_base_seconds must be >= 0, got {self.backoff_base_seconds}"
            )
        if self.max_cascade_days < 1:
            raise ValueError(
                f"max_cascade_days must be >= 1, got {self.max_cascade_days}"
            )
        if self.default_low_stock_threshold < 0:
            raise ValueError(
                "default_low_stock_threshold must be >= 0, "
                f"got {self.default_low_stock_threshold}"
            )
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"log_level is not a logging level, got {self.log_level!r}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Build settings from a parsed ``ledger:`` mapping."""
    known = {f.name for f in fields(LedgerSettings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown ledger settings: {sorted(unknown)}")
    return LedgerSettings(
        max_write_retries=int(data.get("max_write_retries", 3)),
        backoff_base_seconds=float(data.get("backoff_base_seconds", 0.1)),
        max_cascade_days=int(data.get("max_cascade_days", 366)),
        database_url=str(data.get("database_url", "sqlite:///inventory_ledger.db")),
        log_level=str(data.get("log_level", "INFO")).upper(),
        default_low_stock_threshold=Decimal(
            str(data.get("default_low_stock_threshold", "10"))
        ),
    )


def load_settings(path: Path | str | None = None) -> LedgerSettings:
    """
    Load packaged defaults, then overlay the override file if any.

    The override is ``path`` when given, else the file named by
    ``INVENTORY_LEDGER_CONFIG``, else nothing.
    """
    merged: dict[str, Any] = dict(load_yaml_file(DEFAULTS_PATH).get("ledger") or {})

    override = path or os.getenv(CONFIG_ENV_VAR)
    if override:
        merged.update(load_yaml_file(Path(override)).get("ledger") or {})

    return parse_settings(merged)
