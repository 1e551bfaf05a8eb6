"""
Checkout domain models.

Transaction records, lifecycle statuses, retry outcomes and the
read-only session snapshot handed to the presentation layer.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, computed_field


class TransactionStatus(str, Enum):
    """Lifecycle status reported by the payment processor."""

    QUEUED = "QUEUED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


KNOWN_STATUSES = frozenset(s.value for s in TransactionStatus)
TERMINAL_STATUSES = frozenset(
    {
        TransactionStatus.SUCCESS.value,
        TransactionStatus.FAILED.value,
        TransactionStatus.CANCELLED.value,
    }
)
UNFAVORABLE_STATUSES = frozenset(
    {TransactionStatus.FAILED.value, TransactionStatus.CANCELLED.value}
)


def is_terminal_status(status: Optional[str]) -> bool:
    """True for SUCCESS, FAILED and CANCELLED."""
    return status in TERMINAL_STATUSES


class FailureKind(str, Enum):
    """Classification of a failed status request."""

    NOT_FOUND = "not_found"  # Processor has no record yet
    BAD_REQUEST = "bad_request"  # Reference malformed or unknown upstream
    TIMEOUT = "timeout"
    OTHER = "other"


class SessionErrorKind(str, Enum):
    """What the current session error message refers to."""

    PROCESSING = "processing"
    INVALID_REFERENCE = "invalid_reference"
    REQUEST_TIMEOUT = "request_timeout"
    RETRYING = "retrying"
    TRANSACTION_FAILED = "transaction_failed"
    TIMED_OUT = "timed_out"


class WarningKind(str, Enum):
    """Non-fatal problems reported by the record loader."""

    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"


# User-facing messages
MSG_PROCESSING = "Transaction is being processed. Please wait..."
MSG_INVALID_REFERENCE = "Invalid transaction reference. Please contact support."
MSG_REQUEST_TIMEOUT = "Request timed out. Retrying..."
MSG_RETRYING = "Error checking transaction status. Retrying..."
MSG_TRANSACTION_FAILED = "Transaction failed or was cancelled. Please try again."
MSG_TIMED_OUT = "Transaction timed out. Please contact support."
MSG_MISSING_REFERENCE = "Missing transaction reference."
MSG_RECORD_NOT_FOUND = "Transaction data not found. Using provided details."
MSG_RECORD_FETCH_FAILED = (
    "Failed to fetch transaction data from server. Displaying provided details."
)
MSG_INVALID_RECORD = "Invalid loan details. Please try again or contact support."

# Progress listing messages
MSG_PROGRESS_INVALID_ACCESS = "Invalid access. Please track your loan from the home page."
MSG_PROGRESS_NOT_FOUND = "No loan applications found for the provided details."
MSG_PROGRESS_FETCH_FAILED = (
    "An error occurred while fetching loan data. Please try again."
)
MSG_PROGRESS_UNAVAILABLE = (
    "Server is temporarily unavailable. Please try again later."
)

GIVE_UP_MESSAGES: Dict[FailureKind, str] = {
    FailureKind.NOT_FOUND: MSG_PROCESSING,
    FailureKind.BAD_REQUEST: MSG_INVALID_REFERENCE,
    FailureKind.TIMEOUT: MSG_REQUEST_TIMEOUT,
    FailureKind.OTHER: MSG_RETRYING,
}

GIVE_UP_ERROR_KINDS: Dict[FailureKind, SessionErrorKind] = {
    FailureKind.NOT_FOUND: SessionErrorKind.PROCESSING,
    FailureKind.BAD_REQUEST: SessionErrorKind.INVALID_REFERENCE,
    FailureKind.TIMEOUT: SessionErrorKind.REQUEST_TIMEOUT,
    FailureKind.OTHER: SessionErrorKind.RETRYING,
}


class TransactionRecord(BaseModel):
    """Snapshot of a loan disbursement transaction."""

    loan_amount: float = 0
    service_fee: float = 0
    tracking_number: str = ""
    reference: str = ""
    phone_number: str = ""
    national_id: str = ""
    full_name: str = ""
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def amount_to_receive(self) -> float:
        """Amount disbursed to the customer after the service fee."""
        return self.loan_amount - self.service_fee

    @property
    def initial_status(self) -> str:
        return self.status or TransactionStatus.QUEUED.value

    def missing_fields(self) -> List[str]:
        """Required fields that are empty (a zero amount counts as empty)."""
        required = {
            "loan_amount": self.loan_amount,
            "tracking_number": self.tracking_number,
            "reference": self.reference,
            "phone_number": self.phone_number,
        }
        return [name for name, value in required.items() if not value]

    def is_valid(self) -> bool:
        return not self.missing_fields()

    def merged_over(self, defaults: "TransactionRecord") -> "TransactionRecord":
        """
        Overlay this (stored) record on caller-supplied defaults.

        A stored value wins only when it is present and non-empty.
        """
        merged: Dict[str, Any] = {}
        for name in type(self).model_fields:
            stored = getattr(self, name)
            merged[name] = stored if stored else getattr(defaults, name)
        merged["status"] = self.initial_status
        return TransactionRecord(**merged)


@dataclass(frozen=True)
class StatusKnown:
    """An attempt reached the endpoint and got a status back."""

    status: str


@dataclass(frozen=True)
class GiveUp:
    """Every try of an attempt failed."""

    kind: FailureKind
    message: str
    status_override: Optional[str] = None
    detail: str = ""


Outcome = Union[StatusKnown, GiveUp]


@dataclass(frozen=True)
class LoadWarning:
    """Non-fatal record loader warning; the session continues on defaults."""

    kind: WarningKind
    message: str
    detail: str = ""


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of one polling session, swapped atomically on every update."""

    reference: str
    status: str = TransactionStatus.QUEUED.value
    session_error: Optional[str] = None
    error_kind: Optional[SessionErrorKind] = None
    session_terminal: bool = False
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["error_kind"] = self.error_kind.value if self.error_kind else None
        data["updated_at"] = self.updated_at.isoformat()
        return data
