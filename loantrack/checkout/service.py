"""
Checkout tracking service.

Entry point used by the presentation layer: opens a checkout (record
load, validation, polling), exposes snapshots, and maps the retry and
navigate-away actions onto session operations. Also serves the loan
progress listing.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
import structlog

from loantrack.checkout.clients.base import BaseStatusClient
from loantrack.checkout.clients.http_client import HttpStatusClient
from loantrack.checkout.clients.mock_client import MockStatusClient
from loantrack.checkout.config import PollerConfig, get_poller_config
from loantrack.checkout.loader import (
    InvalidRecordError,
    MissingReferenceError,
    RecordLoader,
    validate_record,
)
from loantrack.checkout.models import (
    MSG_INVALID_RECORD,
    MSG_PROGRESS_FETCH_FAILED,
    MSG_PROGRESS_INVALID_ACCESS,
    MSG_PROGRESS_NOT_FOUND,
    MSG_PROGRESS_UNAVAILABLE,
    LoadWarning,
    SessionSnapshot,
    TransactionRecord,
)
from loantrack.checkout.scheduler import (
    Clock,
    PollScheduler,
    PollSession,
    SessionRegistry,
    UpdateCallback,
)
from loantrack.checkout.state import PresentationView, present
from loantrack.checkout.store import RecordStore, RecordStoreError, SqlRecordStore

logger = structlog.get_logger()


@dataclass
class CheckoutResult:
    """What the presentation layer needs right after opening a checkout."""

    record: TransactionRecord
    view: PresentationView
    snapshot: Optional[SessionSnapshot] = None
    warning: Optional[LoadWarning] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.model_dump(mode="json"),
            "view": self.view.value,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "warning": (
                {
                    "kind": self.warning.kind.value,
                    "message": self.warning.message,
                    "detail": self.warning.detail,
                }
                if self.warning
                else None
            ),
            "error": self.error,
        }


class ProgressErrorKind(str, Enum):
    INVALID_ACCESS = "invalid_access"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"


class ProgressError(Exception):
    """Raised when the loan progress listing cannot be shown."""

    def __init__(self, kind: ProgressErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class CheckoutTracker:
    """
    Checkout status tracking service.

    Owns the record loader and the session registry; one tracker serves
    any number of references concurrently.
    """

    def __init__(
        self,
        store: RecordStore,
        client: Optional[BaseStatusClient] = None,
        config: Optional[PollerConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the tracker.

        Args:
            store: Persisted record store
            client: Status client (defaults to the configured client type)
            config: Poller configuration (defaults to loaded config)
            clock: Time source for sessions
        """
        self.config = config or get_poller_config()
        self.store = store
        self.client = client or self._create_default_client()
        self.loader = RecordLoader(store)
        self.scheduler = PollScheduler(self.client, self.config, clock)
        self.registry = SessionRegistry(self.scheduler)

        logger.info(
            "tracker.initialized",
            client_type=self.client.get_source_name(),
            poll_interval_seconds=self.config.poll_interval_seconds,
            max_polling_duration_seconds=self.config.max_polling_duration_seconds,
        )

    def _create_default_client(self) -> BaseStatusClient:
        """Create default status client based on config."""
        if self.config.client_type == "http" and self.config.api_base_url:
            return HttpStatusClient(self.config.api_base_url)
        if self.config.client_type != "mock":
            logger.warning(
                "tracker.no_api_base_url",
                type=self.config.client_type,
                falling_back="mock",
            )
        return MockStatusClient()

    async def open(
        self,
        reference: str,
        defaults: Optional[TransactionRecord] = None,
        on_update: Optional[UpdateCallback] = None,
    ) -> CheckoutResult:
        """
        Open a checkout: load the record, validate it, start polling.

        An empty reference or an invalid record yields the INVALID_STATE
        view and no polling. Re-opening a reference that is still being
        polled returns the live session with its own state (the freshly
        loaded status is not applied); `on_update` replaces its callback.
        """
        defaults = defaults or TransactionRecord(reference=reference)

        try:
            record, warning = await self.loader.load(reference, defaults)
        except MissingReferenceError as e:
            return CheckoutResult(
                record=defaults, view=PresentationView.INVALID_STATE, error=str(e)
            )

        try:
            validate_record(record)
        except InvalidRecordError as e:
            logger.warning(
                "checkout.invalid_record",
                reference=reference,
                missing_fields=e.missing_fields,
            )
            # An earlier session for this reference must not survive to be retried
            self.registry.discard(reference)
            return CheckoutResult(
                record=record,
                view=PresentationView.INVALID_STATE,
                warning=warning,
                error=MSG_INVALID_RECORD,
            )

        session = self.registry.start(reference, record.initial_status, on_update)
        logger.info(
            "checkout.opened",
            reference=reference,
            status=session.snapshot.status,
            polling=session.running,
            warning=warning.kind.value if warning else None,
        )
        return CheckoutResult(
            record=record,
            view=present(session.snapshot),
            snapshot=session.snapshot,
            warning=warning,
        )

    def snapshot(self, reference: str) -> Optional[SessionSnapshot]:
        """Latest snapshot for a reference, None if it was never opened."""
        session = self.registry.get(reference)
        return session.snapshot if session else None

    def retry(
        self, reference: str, on_update: Optional[UpdateCallback] = None
    ) -> Optional[PollSession]:
        """
        User retry: clear the error and poll again under a fresh deadline.

        Returns:
            The new session, or None when the reference was never opened
            as a valid checkout (or its ended session has been evicted)
        """
        logger.info("checkout.retry", reference=reference)
        return self.registry.restart(reference, on_update)

    def cancel(self, reference: str) -> bool:
        """User navigated away: stop polling the reference."""
        return self.registry.cancel(reference)

    async def progress(
        self, phone_number: str, national_id: str
    ) -> List[TransactionRecord]:
        """
        List an applicant's loan applications.

        Raises:
            ProgressError: Missing identifiers, no applications, or store failure
        """
        if not phone_number or not national_id:
            raise ProgressError(
                ProgressErrorKind.INVALID_ACCESS, MSG_PROGRESS_INVALID_ACCESS
            )

        try:
            records = await self.store.query_by_phone_and_id(phone_number, national_id)
        except RecordStoreError as e:
            message = (
                MSG_PROGRESS_UNAVAILABLE if e.unavailable else MSG_PROGRESS_FETCH_FAILED
            )
            raise ProgressError(ProgressErrorKind.FETCH_FAILED, message) from e

        if not records:
            raise ProgressError(ProgressErrorKind.NOT_FOUND, MSG_PROGRESS_NOT_FOUND)

        logger.info("progress.viewed", loan_count=len(records))
        return records

    async def shutdown(self) -> None:
        await self.registry.shutdown()
        await self.client.aclose()


# Global tracker instance
_tracker_instance: Optional[CheckoutTracker] = None


def get_tracker() -> CheckoutTracker:
    """
    Get or create the global tracker instance.

    Returns:
        CheckoutTracker singleton backed by the SQL record store
    """
    global _tracker_instance
    if _tracker_instance is None:
        _tracker_instance = CheckoutTracker(store=SqlRecordStore())
    return _tracker_instance


def set_tracker(tracker: Optional[CheckoutTracker]) -> None:
    """Replace the global tracker (used by tests and app shutdown)."""
    global _tracker_instance
    _tracker_instance = tracker
