"""Configuration package."""

from pfmt.config.settings import (
    AppSettings,
    MigrationSettings,
    Settings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "MigrationSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "validate_all_settings",
]
