"""Configuration package."""

from budget_ledger.config.settings import (
    MONTH_KEY_PATTERN,
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "MONTH_KEY_PATTERN",
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
