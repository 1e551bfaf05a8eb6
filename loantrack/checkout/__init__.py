"""
Checkout status tracking module.

This module follows a submitted loan disbursement from hand-off to the
payment processor until a terminal outcome is known: it seeds the
checkout from the persisted record, polls the processor's status
endpoint with bounded retries, and publishes session snapshots.
"""

from loantrack.checkout.clients.base import BaseStatusClient
from loantrack.checkout.clients.http_client import HttpStatusClient
from loantrack.checkout.clients.mock_client import MockStatusClient
from loantrack.checkout.models import SessionSnapshot, TransactionRecord, TransactionStatus
from loantrack.checkout.scheduler import PollScheduler, PollSession, SessionRegistry
from loantrack.checkout.service import CheckoutTracker

__all__ = [
    "BaseStatusClient",
    "HttpStatusClient",
    "MockStatusClient",
    "SessionSnapshot",
    "TransactionRecord",
    "TransactionStatus",
    "PollScheduler",
    "PollSession",
    "SessionRegistry",
    "CheckoutTracker",
]
