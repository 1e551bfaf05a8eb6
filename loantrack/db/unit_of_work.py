"""Transaction boundary around the loan transaction repositories."""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from loantrack.db import base
from loantrack.db.models import LoanTransaction
from loantrack.db.repositories import LoanTransactionRepository


class UnitOfWork:
    """
    One session, one transaction, shared by every repository inside it.

    When the unit opens its own session it also ends the transaction:
    commit on a clean exit, rollback on an exception, and always rollback
    for a read-only unit. A session passed in by the caller is never
    committed or closed here, only rolled back on error.

    Usage:
        async with UnitOfWork(read_only=True) as uow:
            loan = await uow.loans.get_by_reference("REF123")
    """

    def __init__(self, session: Optional[AsyncSession] = None, read_only: bool = False):
        self._session = session
        self._owns_session = session is None
        self.read_only = read_only
        self.loans: LoanTransactionRepository = None  # type: ignore

    @property
    def session(self) -> AsyncSession:
        assert self._session is not None, "UnitOfWork used outside its context"
        return self._session

    async def __aenter__(self) -> "UnitOfWork":
        if self._owns_session:
            self._session = base.AsyncSessionLocal()
        self.loans = LoanTransactionRepository(LoanTransaction, self.session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                await self.rollback()
            elif self._owns_session:
                if self.read_only:
                    await self.rollback()
                else:
                    await self.commit()
        finally:
            if self._owns_session:
                await self.session.close()
                self._session = None

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
