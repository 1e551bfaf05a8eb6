"""
Base transaction status client interface.

Defines the contract that all status endpoint clients must implement:
one request per call, bounded by the caller's timeout, failures
raised as classified StatusCheckError subclasses.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from loantrack.checkout.models import FailureKind


class BaseStatusClient(ABC):
    """
    Abstract base class for transaction status clients.

    Subclasses implement `_request_status`; callers use `check_status`,
    which enforces the timeout so that no call can block longer than
    the caller allowed. Clients never retry.
    """

    def __init__(self, base_url: Optional[str] = None):
        """
        Initialize the client.

        Args:
            base_url: Base URL for the status API
        """
        self.base_url = base_url

    async def check_status(self, reference: str, timeout: float) -> str:
        """
        Ask the processor for the current status of a transaction.

        Args:
            reference: Transaction reference
            timeout: Upper bound for the request in seconds

        Returns:
            Status string as reported (may be outside TransactionStatus)

        Raises:
            StatusCheckError: Classified failure (never a raw transport error)
        """
        try:
            return await asyncio.wait_for(
                self._request_status(reference, timeout), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise StatusTimeoutError(
                f"Status request exceeded {timeout:g}s"
            ) from e

    @abstractmethod
    async def _request_status(self, reference: str, timeout: float) -> str:
        """Issue exactly one status request."""
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """
        Get the name of this status source.

        Returns:
            Source identifier (e.g., 'payhero', 'mock')
        """
        pass

    async def aclose(self) -> None:
        """Release any pooled connections."""
        return None


class StatusCheckError(Exception):
    """Base exception for status client failures."""

    kind: FailureKind = FailureKind.OTHER

    def __init__(self, detail: str = "", status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class StatusNotFoundError(StatusCheckError):
    """Raised when the processor has no record of the reference yet (HTTP 404)."""

    kind = FailureKind.NOT_FOUND


class StatusBadRequestError(StatusCheckError):
    """Raised when the processor rejects the reference (HTTP 400)."""

    kind = FailureKind.BAD_REQUEST


class StatusTimeoutError(StatusCheckError):
    """Raised when the bounded wait elapses."""

    kind = FailureKind.TIMEOUT
