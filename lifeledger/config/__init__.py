"""Configuration package."""

from lifeledger.config.settings import (
    AppSettings,
    LocalStoreSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "LocalStoreSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
