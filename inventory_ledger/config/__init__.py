"""Ledger settings loaded from YAML."""

from inventory_ledger.config.loader import (
    CONFIG_ENV_VAR,
    LedgerSettings,
    load_settings,
    parse_settings,
)

__all__ = ["CONFIG_ENV_VAR", "LedgerSettings", "load_settings", "parse_settings"]
