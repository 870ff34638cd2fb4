"""
Configuration Management for the Finance Tracker

Deployment settings read by pydantic-settings from APP_* and
GOOGLE_SHEETS_* environment variables or a .env file.

DESIGN DECISION: Only deployment concerns live here.
Per-user preferences (auto VAT, currency display) are NOT configuration:
they live in UserSettings and are passed explicitly into the calculator.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file (JSON)"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Key of the spreadsheet that holds the books"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    categories_sheet_name: str = Field(
        default="Categories",
        description="Name of the sheet for categories"
    )
    settings_sheet_name: str = Field(
        default="Settings",
        description="Name of the sheet for per-user settings"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Worksheet holding the audit trail"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn about a missing key file; it may be mounted after startup."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Google Sheets storage will not connect until it exists."
            )
        return v


class AppSettings(BaseSettings):
    """
    Application settings (APP_ prefix).

    Covers the VAT rate, dashboard window and storage backend.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # VAT
    vat_rate: float = Field(
        default=0.19,
        ge=0.0,
        le=1.0,
        description="Standard German VAT rate applied in auto mode"
    )

    # Dashboard
    dashboard_months: int = Field(
        default=6,
        ge=1,
        le=36,
        description="Number of monthly buckets shown on the dashboard"
    )

    # Storage
    default_user_id: str = Field(
        default="local-user",
        description="User id used when no authentication layer is present"
    )
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which storage backend to use"
    )


class Settings(BaseSettings):
    """
    Root settings object.

    Each section is built on access, so a missing Google section only
    fails when Sheets storage is actually requested.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings instance.

    Call get_settings.cache_clear() after changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check which settings sections load.

    Returns {section: ok} plus a "<section>_error" message for each
    section that failed. Shown on the settings page.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
