"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup, so a malformed value fails fast with a clear error message.

Usage:
    from livestock_escrow.config import get_settings
    settings = get_settings()
    print(settings.escrow_hold_hours)
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the livestock escrow pipeline."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database ---
    # Any SQLAlchemy async URL works; tests and the simulation use sqlite+aiosqlite.
    database_url: str = (
        "postgresql+asyncpg://livestock:livestock_dev"
        "@localhost:5432/livestock_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Escrow ---
    escrow_hold_hours: int = 24
    payment_provider_name: str = "dummy"
    # Empty disables signature checks on the provider webhook.
    payment_webhook_secret: str = ""

    # --- Auto-release scheduler ---
    auto_release_enabled: bool = True
    auto_release_interval_seconds: int = 300

    # --- Offer listing ---
    offers_page_size_default: int = 20
    offers_page_size_max: int = 100

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def escrow_hold_window(self) -> timedelta:
        """Delay between delivery confirmation and automatic release."""
        return timedelta(hours=self.escrow_hold_hours)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
