"""
Transaction state machine.

Holds the lifecycle status of one transaction together with the
orthogonal session error, and publishes both as a single immutable
SessionSnapshot. Readers only ever see whole snapshots.
"""

from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import structlog

from loantrack.checkout.models import (
    GIVE_UP_ERROR_KINDS,
    KNOWN_STATUSES,
    MSG_TIMED_OUT,
    MSG_TRANSACTION_FAILED,
    UNFAVORABLE_STATUSES,
    GiveUp,
    Outcome,
    SessionErrorKind,
    SessionSnapshot,
    StatusKnown,
    TransactionStatus,
    is_terminal_status,
)

logger = structlog.get_logger()


class TransactionStateMachine:
    """
    Single-owner container for a transaction's session state.

    All writes go through `_commit`, which swaps in a fresh snapshot in
    one assignment. Once the snapshot is terminal every further input
    is ignored.
    """

    def __init__(
        self, reference: str, initial_status: str = TransactionStatus.QUEUED.value
    ):
        self.reference = reference
        self._snapshot = SessionSnapshot(
            reference=reference,
            status=initial_status,
            session_terminal=is_terminal_status(initial_status),
        )

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def is_queued(self) -> bool:
        return self._snapshot.status == TransactionStatus.QUEUED.value

    def apply(self, outcome: Outcome) -> SessionSnapshot:
        """Fold a retry policy outcome into the state."""
        if self._snapshot.session_terminal:
            logger.debug(
                "state.ignored_after_terminal",
                reference=self.reference,
                outcome=type(outcome).__name__,
            )
            return self._snapshot

        if isinstance(outcome, StatusKnown):
            return self._apply_status(outcome.status)
        if isinstance(outcome, GiveUp):
            return self._apply_give_up(outcome)
        raise TypeError(f"Unsupported outcome: {outcome!r}")

    def apply_deadline(self) -> SessionSnapshot:
        """Session deadline passed; the transaction itself stays as it is."""
        if self._snapshot.session_terminal or not self.is_queued:
            return self._snapshot
        return self._commit(
            session_error=MSG_TIMED_OUT,
            error_kind=SessionErrorKind.TIMED_OUT,
            session_terminal=True,
        )

    def reset(self) -> SessionSnapshot:
        """Clear the session error and re-enter QUEUED for a fresh session."""
        return self._commit(
            status=TransactionStatus.QUEUED.value,
            session_error=None,
            error_kind=None,
            session_terminal=False,
        )

    def _apply_status(self, status: str) -> SessionSnapshot:
        if status == TransactionStatus.SUCCESS.value:
            return self._commit(
                status=status, session_error=None, error_kind=None, session_terminal=True
            )
        if status in UNFAVORABLE_STATUSES:
            return self._commit(
                status=status,
                session_error=MSG_TRANSACTION_FAILED,
                error_kind=SessionErrorKind.TRANSACTION_FAILED,
                session_terminal=True,
            )
        if status not in KNOWN_STATUSES:
            logger.warning(
                "state.unrecognized_status", reference=self.reference, status=status
            )
        return self._commit(status=status, session_error=None, error_kind=None)

    def _apply_give_up(self, outcome: GiveUp) -> SessionSnapshot:
        if not self.is_queued:
            return self._snapshot
        return self._commit(
            status=outcome.status_override or self._snapshot.status,
            session_error=outcome.message,
            error_kind=GIVE_UP_ERROR_KINDS[outcome.kind],
        )

    def _commit(self, **changes) -> SessionSnapshot:
        previous = self._snapshot
        self._snapshot = replace(
            previous, updated_at=datetime.now(timezone.utc), **changes
        )
        if previous.status != self._snapshot.status:
            logger.info(
                "state.transition",
                reference=self.reference,
                from_status=previous.status,
                to_status=self._snapshot.status,
                terminal=self._snapshot.session_terminal,
            )
        return self._snapshot


class PresentationView(str, Enum):
    """What the presentation layer should show for a snapshot."""

    WAITING = "waiting"
    SUCCESS_DIALOG = "success_dialog"
    ERROR_DIALOG = "error_dialog"
    INVALID_STATE = "invalid_state"


def present(snapshot: Optional[SessionSnapshot]) -> PresentationView:
    """Map a snapshot onto a presentation view."""
    if snapshot is None:
        return PresentationView.INVALID_STATE
    if snapshot.status == TransactionStatus.SUCCESS.value:
        return PresentationView.SUCCESS_DIALOG
    if snapshot.status in UNFAVORABLE_STATUSES:
        return PresentationView.ERROR_DIALOG
    if snapshot.session_terminal and snapshot.error_kind == SessionErrorKind.TIMED_OUT:
        return PresentationView.ERROR_DIALOG
    return PresentationView.WAITING
