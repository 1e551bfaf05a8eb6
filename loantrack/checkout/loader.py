"""
Record loader.

Fetches the persisted transaction record once, before polling starts,
to seed the values shown during checkout. A missing or unreadable
record is not fatal: the caller-supplied values are used instead.
"""

from typing import Optional, Tuple
import structlog

from loantrack.checkout.models import (
    MSG_MISSING_REFERENCE,
    MSG_RECORD_FETCH_FAILED,
    MSG_RECORD_NOT_FOUND,
    LoadWarning,
    TransactionRecord,
    WarningKind,
)
from loantrack.checkout.store import RecordStore, RecordStoreError

logger = structlog.get_logger()


class RecordLoader:
    """One-shot loader of a transaction record by reference."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def load(
        self, reference: str, defaults: TransactionRecord
    ) -> Tuple[TransactionRecord, Optional[LoadWarning]]:
        """
        Load the record for a reference, falling back to defaults.

        Args:
            reference: Transaction reference
            defaults: Caller-supplied values

        Returns:
            (record, warning); warning is None when the stored record was found

        Raises:
            MissingReferenceError: If the reference is empty (no lookup is made)
        """
        if not reference:
            logger.warning("record.missing_reference")
            raise MissingReferenceError(MSG_MISSING_REFERENCE)

        try:
            stored = await self.store.get_by_reference(reference)
        except RecordStoreError as e:
            logger.warning("record.fetch_failed", reference=reference, error=str(e))
            return defaults, LoadWarning(
                kind=WarningKind.FETCH_FAILED,
                message=MSG_RECORD_FETCH_FAILED,
                detail=str(e),
            )

        if stored is None:
            logger.info("record.not_found", reference=reference)
            return defaults, LoadWarning(
                kind=WarningKind.NOT_FOUND, message=MSG_RECORD_NOT_FOUND
            )

        record = stored.merged_over(defaults)
        logger.info(
            "record.loaded",
            reference=reference,
            tracking_number=record.tracking_number,
            status=record.status,
        )
        return record, None


class MissingReferenceError(Exception):
    """Raised when a checkout is opened without a transaction reference."""

    pass


class InvalidRecordError(Exception):
    """Raised when a record lacks amount, tracking number, reference or phone."""

    def __init__(self, record: TransactionRecord):
        self.record = record
        self.missing_fields = record.missing_fields()
        super().__init__(
            "Invalid transaction record, missing: " + ", ".join(self.missing_fields)
        )


def validate_record(record: TransactionRecord) -> TransactionRecord:
    """
    Ensure a record can drive a checkout session.

    Raises:
        InvalidRecordError: If a required field is empty
    """
    if not record.is_valid():
        raise InvalidRecordError(record)
    return record
