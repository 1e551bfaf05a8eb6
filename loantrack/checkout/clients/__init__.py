"""Transaction status client implementations."""

from loantrack.checkout.clients.base import (
    BaseStatusClient,
    StatusBadRequestError,
    StatusCheckError,
    StatusNotFoundError,
    StatusTimeoutError,
)
from loantrack.checkout.clients.http_client import HttpStatusClient
from loantrack.checkout.clients.mock_client import MockStatusClient

__all__ = [
    "BaseStatusClient",
    "StatusCheckError",
    "StatusNotFoundError",
    "StatusBadRequestError",
    "StatusTimeoutError",
    "HttpStatusClient",
    "MockStatusClient",
]
