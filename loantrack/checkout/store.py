"""
Transaction record store.

The checkout core only needs two read capabilities from persistence:
lookup by reference and listing by applicant. `RecordStore` is that
contract; `SqlRecordStore` implements it on the SQLAlchemy models.
"""

from typing import List, Optional, Protocol
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from loantrack.checkout.models import TransactionRecord
from loantrack.db.models.loan_transaction import LoanTransaction
from loantrack.db.unit_of_work import UnitOfWork

logger = structlog.get_logger()


class RecordStore(Protocol):
    """Read access to persisted transaction records."""

    async def get_by_reference(self, reference: str) -> Optional[TransactionRecord]:
        """Return the record for a reference, None if there is none."""
        ...

    async def query_by_phone_and_id(
        self, phone_number: str, national_id: str
    ) -> List[TransactionRecord]:
        """Return every record of one applicant."""
        ...


class RecordStoreError(Exception):
    """Raised when the backing store cannot be read."""

    def __init__(self, message: str, unavailable: bool = False):
        super().__init__(message)
        self.unavailable = unavailable


def to_record(loan: LoanTransaction) -> TransactionRecord:
    """Convert an ORM row into a TransactionRecord."""
    return TransactionRecord(
        loan_amount=loan.loan_amount or 0,
        service_fee=loan.service_fee or 0,
        tracking_number=loan.tracking_number or "",
        reference=loan.reference or "",
        phone_number=loan.phone_number or "",
        national_id=loan.national_id or "",
        full_name=loan.full_name or "",
        status=loan.status,
        created_at=loan.created_at,
    )


class SqlRecordStore:
    """RecordStore backed by the loan_transactions table."""

    def __init__(self, session: Optional[AsyncSession] = None):
        """
        Args:
            session: Optional existing session (useful for testing)
        """
        self._session = session

    async def get_by_reference(self, reference: str) -> Optional[TransactionRecord]:
        try:
            async with UnitOfWork(session=self._session, read_only=True) as uow:
                loan = await uow.loans.get_by_reference(reference)
                return to_record(loan) if loan else None
        except SQLAlchemyError as e:
            raise self._wrap(e, "get_by_reference") from e

    async def query_by_phone_and_id(
        self, phone_number: str, national_id: str
    ) -> List[TransactionRecord]:
        try:
            async with UnitOfWork(session=self._session, read_only=True) as uow:
                loans = await uow.loans.query_by_phone_and_id(phone_number, national_id)
                return [to_record(loan) for loan in loans]
        except SQLAlchemyError as e:
            raise self._wrap(e, "query_by_phone_and_id") from e

    def _wrap(self, error: SQLAlchemyError, operation: str) -> RecordStoreError:
        logger.error(
            "record_store.failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        return RecordStoreError(
            str(error), unavailable=isinstance(error, OperationalError)
        )
