"""
Configuration Management for the PFMT Data Layer

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every component accepts its settings as an optional constructor argument
and falls back to get_settings(), so tests can inject their own values.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PFMT_STORE_",
        extra="ignore"
    )

    db_path: Path = Field(
        default=Path("db.json"),
        description="Path to the JSON document that holds the whole store"
    )
    backup_path: Path = Field(
        default=Path("db_backup.json"),
        description="Where the migration script writes its pre-migration backup"
    )

    # File I/O retry policy
    io_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a document read/write before giving up"
    )
    io_retry_max_wait: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Upper bound (seconds) of the exponential wait between attempts"
    )

    indent: int = Field(
        default=2,
        ge=0,
        le=8,
        description="JSON indentation used when flushing the document"
    )
    enforce_foreign_keys: bool = Field(
        default=True,
        description="Reject writes whose belongsTo references are dangling"
    )


class MigrationSettings(BaseSettings):
    """Legacy-to-relational migration defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PFMT_MIGRATION_",
        extra="ignore"
    )

    default_owner_id: int = Field(
        default=1,
        ge=1,
        description="Owner assigned to legacy projects that carry none"
    )
    default_fiscal_year: str = Field(
        default="2024-25",
        description="Fiscal year for legacy funding lines that carry none"
    )
    default_funding_type: str = Field(
        default="Capital",
        description="Funding type for legacy funding lines that carry none"
    )
    default_performance_rating: float = Field(
        default=4.0,
        ge=0.0,
        le=5.0,
        description="Initial rating for migrated project-vendor links"
    )
    validate_after_migration: bool = Field(
        default=True,
        description="Run post-condition checks in the migration script"
    )

    @field_validator('default_fiscal_year')
    @classmethod
    def validate_fiscal_year(cls, v: str) -> str:
        """Fiscal years look like 2024-25."""
        parts = v.split("-")
        if len(parts) != 2 or not all(part.isdigit() for part in parts):
            raise ValueError(f"Fiscal year must look like 2024-25, got {v!r}")
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

    # Environment
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

    default_page_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Projects per page when the caller does not ask"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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
    def store(self) -> StoreSettings:
        return StoreSettings()

    @property
    def migration(self) -> MigrationSettings:
        return MigrationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("store", "migration", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
