"""
Retry policy for status checks.

One attempt is a bounded run of back-to-back tries with a growing
per-try timeout. The policy never sleeps between tries and never lets
a client error escape: the caller always gets an Outcome.
"""

from typing import Optional
import structlog

from loantrack.checkout.clients.base import BaseStatusClient, StatusCheckError
from loantrack.checkout.config import RetryConfig
from loantrack.checkout.models import (
    GIVE_UP_MESSAGES,
    FailureKind,
    GiveUp,
    Outcome,
    StatusKnown,
    TransactionStatus,
)

logger = structlog.get_logger()


class RetryPolicy:
    """Wraps one logical status check with a fixed retry budget."""

    def __init__(self, client: BaseStatusClient, config: Optional[RetryConfig] = None):
        self.client = client
        self.config = config or RetryConfig()

    async def attempt(self, reference: str) -> Outcome:
        """
        Run one attempt against the status endpoint.

        Args:
            reference: Transaction reference

        Returns:
            StatusKnown on the first successful try, otherwise GiveUp
            classified by the last failure
        """
        last_error: Optional[StatusCheckError] = None
        timeouts = self.config.get_timeouts()

        for try_num, timeout in enumerate(timeouts, 1):
            try:
                status = await self.client.check_status(reference, timeout)
                return StatusKnown(status=status)
            except StatusCheckError as e:
                last_error = e
            except Exception as e:
                # Unclassified client failures spend a try like any OTHER
                logger.error(
                    "retry_unexpected_error",
                    reference=reference,
                    attempt=try_num,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                last_error = StatusCheckError(f"{type(e).__name__}: {e}")

            if try_num < len(timeouts):
                logger.warning(
                    "retry_attempt",
                    reference=reference,
                    attempt=try_num,
                    max_attempts=len(timeouts),
                    timeout_seconds=timeout,
                    error_kind=last_error.kind.value,
                    error=str(last_error),
                )

        kind = last_error.kind if last_error else FailureKind.OTHER
        logger.error(
            "retry_exhausted",
            reference=reference,
            attempts=len(timeouts),
            error_kind=kind.value,
            status_code=last_error.status_code if last_error else None,
            error=str(last_error) if last_error else None,
        )
        return give_up(kind, detail=str(last_error) if last_error else "")


def give_up(kind: FailureKind, detail: str = "") -> GiveUp:
    """Build the GiveUp outcome for a failure kind."""
    status_override = None
    if kind == FailureKind.NOT_FOUND:
        # Not yet visible upstream: keep waiting
        status_override = TransactionStatus.QUEUED.value
    return GiveUp(
        kind=kind,
        message=GIVE_UP_MESSAGES[kind],
        status_override=status_override,
        detail=detail,
    )
