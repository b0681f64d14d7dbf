"""
Configuration Management for Ledger Sync

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here, one settings class per concern.
Sections are loaded lazily so a missing Google Sheets setup does not
prevent the app from running against the local cache only.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Local cache and remote sync behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    debounce_seconds: float = Field(
        default=0.4,
        ge=0.0,
        le=10.0,
        description="Quiet period before a debounced remote write is sent"
    )
    cache_path: str = Field(
        default="ledger_cache.json",
        description="File backing the local key-value cache"
    )
    cache_key: str = Field(
        default="ledger_document",
        min_length=1,
        description="Key the document is cached under"
    )


class AuthSettings(BaseSettings):
    """Credential rules checked before contacting the auth provider."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    min_password_length: int = Field(
        default=6,
        ge=1,
        le=128,
        description="Minimum password length for sign-in and sign-up"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote document storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
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
    documents_sheet_name: str = Field(
        default="Documents",
        description="Worksheet holding one document row per user"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (might be mounted later)."""
        if not Path(v).exists():
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before syncing."
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
    default_currency: str = Field(
        default="CNY",
        min_length=3,
        max_length=3,
        description="Display currency for fresh documents"
    )
    note_max_length: int = Field(
        default=60,
        ge=1,
        description="Maximum length of a transaction note"
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

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

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


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {section_name: is_valid}, plus
    `<section>_error` entries for sections that failed to load.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    for name in ("sync", "auth", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
