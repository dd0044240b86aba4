"""
Configuration Management for Fintrack

Every setting comes from environment variables (or .env) via pydantic-settings.

DESIGN DECISION: Settings are read in exactly one place.
Components receive plain values through their constructors; only the
composition root (fintrack.orchestrator) reads settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _normalize_currency_code(value: str) -> str:
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Currency code must be 3 letters, got '{value}'")
    return code


class RateSettings(BaseSettings):
    """Exchange rate source and cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATES_",
        extra="ignore"
    )

    endpoint: str = Field(
        default="https://api.frankfurter.app/latest",
        description="Latest-rates endpoint, queried as {endpoint}?from={BASE}"
    )
    base_currency: str = Field(
        default="EUR",
        description="Pivot currency all cached rates are expressed against"
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="How long a fetched rate table stays fresh"
    )
    max_fetch_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per live fetch before giving up"
    )

    @field_validator("base_currency")
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        return _normalize_currency_code(v)


class LedgerSettings(BaseSettings):
    """Balance reconciliation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    default_currency: str = Field(
        default="INR",
        description="Reporting currency conversion audit records are expressed in"
    )
    compensate_on_failure: bool = Field(
        default=True,
        description="Undo completed steps when a multi-step mutation fails"
    )

    @field_validator("default_currency")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        return _normalize_currency_code(v)


class StorageSettings(BaseSettings):
    """Selects the record store backend."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Record store implementation"
    )


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet id and service account for the Sheets record store."""

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

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing key file only warns; the memory store still works without it."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Runtime environment and logging switches.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )


class Settings(BaseSettings):
    """
    Everything the composition root needs.

    Sub-settings are built on first access, so an unused group never validates.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a missing Google Sheets
    # configuration does not break the in-memory backend.

    @property
    def rates(self) -> RateSettings:
        return RateSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Return the process-wide Settings instance.

    Tests call get_settings.cache_clear() after changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool | str]:
    """
    Check each settings group independently.

    Returns {group_name: is_valid} so startup can report every bad group at once.
    """
    settings = get_settings()
    results = {}

    for name in ("rates", "ledger", "storage", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValidationError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
