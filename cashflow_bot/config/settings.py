"""
Configuration Management for the Cash Flow Bot

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Sheet names, ranges and ledger columns live in settings rather than in code
because the spreadsheet layout is owned by the accounting team, not by us.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudinarySettings(BaseSettings):
    """Cloudinary receipt storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    folder: str = Field(
        default="receipts",
        description="Folder receipts are uploaded into"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger and directory configuration."""

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
        description="ID of the spreadsheet holding the ledger and directories"
    )

    # Sheet names within the spreadsheet
    ledger_sheet_name: str = Field(default="ДДС: месяц")
    users_sheet_name: str = Field(default="Пользователи")
    directions_sheet_name: str = Field(default="Справочники")
    wallets_sheet_name: str = Field(default="ДДС: настройки (для ввода сальдо)")
    categories_sheet_name: str = Field(default="ДДС: статьи")
    audit_sheet_name: str = Field(default="Журнал бота")

    # Reference list ranges
    users_range: str = Field(default="A2:D")
    wallets_range: str = Field(default="A3:A")
    directions_range: str = Field(default="A2:A")
    categories_range: str = Field(default="A2:B")

    # Ledger columns. first_column doubles as the primary key column
    # used to find the next free row.
    first_column: str = Field(default="C")
    last_core_column: str = Field(default="I")
    submitter_name_column: str = Field(default="L")
    submitter_id_column: str = Field(default="M")
    attachment_column: str = Field(default="N")

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

    @field_validator(
        'first_column',
        'last_core_column',
        'submitter_name_column',
        'submitter_id_column',
        'attachment_column',
    )
    @classmethod
    def validate_column_letter(cls, v: str) -> str:
        v = v.strip().upper()
        if not v.isalpha() or not v.isascii():
            raise ValueError(f"Not a column letter: {v!r}")
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Every field has a default so the conversation engine can run without
    any environment configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Receipt upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt size in MB"
    )

    # External calls
    external_call_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Timeout for directory/ledger/attachment calls (None = wait forever)"
    )

    # Duplicate message protection
    processed_message_cache_size: int = Field(
        default=100,
        ge=1,
        description="How many recent (user, message) pairs to remember"
    )

    # Categories containing this marker are reserved for transfers
    transfer_marker: str = Field(
        default="Перевод между счетами",
        min_length=1,
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("cloudinary", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
