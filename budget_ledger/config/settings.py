"""
Configuration Management for Budget Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Category names that carry ledger semantics ("Savings", "Money Recovered", ...)
live here too, so a household that names them differently only changes env vars.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class LedgerSettings(BaseSettings):
    """Ledger semantics: special category names and migration defaults."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    savings_category: str = Field(
        default="Savings",
        description="Category whose transactions trigger a savings deposit"
    )
    recovered_category: str = Field(
        default="Money Recovered",
        description="Category treated as an inflow in analysis"
    )
    lost_category: str = Field(
        default="Money Lost",
        description="Category tracked as an informational loss"
    )
    excess_category: str = Field(
        default="Miscellaneous",
        description="Category used for excess amounts split off by the chama migration"
    )
    excess_budget_month: str = Field(
        default="2026-01",
        description="Budget month that receives excess correction transactions"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Document store backend"
    )

    @field_validator('excess_budget_month')
    @classmethod
    def validate_month_key(cls, v: str) -> str:
        if not MONTH_KEY_PATTERN.match(v):
            raise ValueError(f"Budget month must look like YYYY-MM, got {v!r}")
        return v


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per collection, e.g. "ledger_savings_ledger"
    worksheet_prefix: str = Field(
        default="ledger_",
        description="Prefix for collection worksheet names"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )

    # Sanity limit, not a business rule
    max_amount: float = Field(
        default=100000000.0,
        gt=0,
        description="Largest amount accepted for a single ledger write"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings(require_storage: Optional[bool] = None) -> dict[str, bool]:
    """
    Validate settings sections and report which ones load.

    Google Sheets settings are only checked when the configured backend
    needs them (or when require_storage is True).
    """
    results = {}

    settings = get_settings()

    try:
        ledger = settings.ledger
        results["ledger"] = True
    except Exception as e:
        ledger = None
        results["ledger"] = False
        results["ledger_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    if require_storage is None:
        require_storage = ledger is not None and ledger.storage_backend == "google_sheets"

    if require_storage:
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
