from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loan checkout tracker settings, read from the environment and `.env`."""

    ENV: Literal["development", "staging", "production"] = "development"
    """Production switches logs to JSON lines."""

    DEBUG: bool = True

    LOG_LEVEL: Optional[str] = None
    """Overrides the per-environment default level (DEBUG, or INFO in production)."""

    DATABASE_URL: Optional[str] = None
    """Loan transaction store. Falls back to a local SQLite file."""

    # Processor status endpoint
    STATUS_API_BASE_URL: str = "https://kopa-mobile-to-mpesa.vercel.app"
    STATUS_CLIENT_TYPE: Literal["http", "mock"] = "http"
    """'mock' answers every check locally without network access."""

    # Polling cadence and retry budget
    POLL_INTERVAL_SECONDS: float = 10.0
    MAX_POLLING_DURATION_SECONDS: float = 300.0
    SESSION_RETENTION_SECONDS: float = 600.0
    """Ended sessions stay readable (snapshot, retry) this long, then are evicted."""
    STATUS_MAX_TRIES: int = 3
    STATUS_INITIAL_TIMEOUT_SECONDS: float = 20.0
    STATUS_TIMEOUT_INCREMENT_SECONDS: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, parsed once."""
    return Settings()
