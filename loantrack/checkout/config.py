"""
Checkout status poller configuration.

Defines the polling cadence, session deadline, per-attempt retry
budget and status client settings.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from loantrack.core.config import get_settings


class RetryConfig(BaseModel):
    """Configuration for one logical status check (an attempt)."""

    max_tries: int = Field(default=3, ge=1, description="Tries per attempt")
    initial_timeout: float = Field(
        default=20.0, gt=0, description="Timeout of the first try in seconds"
    )
    timeout_increment: float = Field(
        default=5.0, ge=0, description="Seconds added to the timeout after each failed try"
    )

    def get_timeouts(self) -> List[float]:
        """Per-try timeouts in the order they are used."""
        return [
            self.initial_timeout + self.timeout_increment * i
            for i in range(self.max_tries)
        ]


class PollerConfig(BaseModel):
    """Status poller configuration."""

    # Polling behavior
    poll_interval_seconds: float = Field(
        default=10.0, gt=0, description="Seconds between ticks"
    )
    max_polling_duration_seconds: float = Field(
        default=300.0, gt=0, description="Session deadline measured from session start"
    )
    session_retention_seconds: float = Field(
        default=600.0,
        ge=0,
        description="How long an ended session stays readable before the registry drops it",
    )

    # API client settings
    client_type: Literal["http", "mock"] = Field(
        default="http", description="Type of status client (http, mock)"
    )
    api_base_url: Optional[str] = Field(
        default=None, description="Base URL for the transaction status API"
    )

    # Retry
    retry: RetryConfig = Field(default_factory=RetryConfig)


def get_poller_config() -> PollerConfig:
    """Build the poller configuration from application settings."""
    settings = get_settings()
    return PollerConfig(
        poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
        max_polling_duration_seconds=settings.MAX_POLLING_DURATION_SECONDS,
        session_retention_seconds=settings.SESSION_RETENTION_SECONDS,
        client_type=settings.STATUS_CLIENT_TYPE,
        api_base_url=settings.STATUS_API_BASE_URL,
        retry=RetryConfig(
            max_tries=settings.STATUS_MAX_TRIES,
            initial_timeout=settings.STATUS_INITIAL_TIMEOUT_SECONDS,
            timeout_increment=settings.STATUS_TIMEOUT_INCREMENT_SECONDS,
        ),
    )
