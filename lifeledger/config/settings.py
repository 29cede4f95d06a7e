"""
Configuration Management for Life Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The Supabase settings double as the mode switch: when they are missing
or still hold the template placeholders, the app runs in demo mode
against the local JSON store.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Values shipped in the example .env file; treated as "not configured"
PLACEHOLDER_SUPABASE_URL = "https://your-project.supabase.co"
PLACEHOLDER_SUPABASE_ANON_KEY = "your-anon-key-here"


class SupabaseSettings(BaseSettings):
    """Supabase (remote backend) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: Optional[str] = Field(
        default=None,
        description="Supabase project URL"
    )
    anon_key: Optional[str] = Field(
        default=None,
        description="Supabase anonymous (public) API key"
    )

    @field_validator('url', 'anon_key')
    @classmethod
    def strip_blank(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank values as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def is_configured(self) -> bool:
        """
        True when both URL and key are present and not placeholders.

        This is the single demo-vs-remote decision for the process.
        """
        if not self.url or not self.anon_key:
            return False
        if self.url == PLACEHOLDER_SUPABASE_URL:
            return False
        if self.anon_key == PLACEHOLDER_SUPABASE_ANON_KEY:
            return False
        return True


class LocalStoreSettings(BaseSettings):
    """Local (demo mode) JSON store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path(".lifeledger"),
        description="Directory holding one JSON document per storage key"
    )
    seed_admin_password: str = Field(
        default="admin",
        min_length=1,
        description="Password for the seeded demo admin (stored hashed)"
    )
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=16,
        description="bcrypt cost factor for demo passwords"
    )


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

    # Dashboard
    dashboard_window_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="How many days of expenses the dashboard totals"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


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
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def local_store(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    @property
    def is_demo_mode(self) -> bool:
        """Demo mode whenever the remote backend is not configured."""
        return not self.supabase.is_configured


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
    Useful for startup checks and the settings page.
    """
    results = {}

    settings = get_settings()

    try:
        results["supabase"] = settings.supabase.is_configured
        if not results["supabase"]:
            results["supabase_error"] = "Not configured - running in demo mode"
    except Exception as e:
        results["supabase"] = False
        results["supabase_error"] = str(e)

    try:
        _ = settings.local_store
        results["local_store"] = True
    except Exception as e:
        results["local_store"] = False
        results["local_store_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
