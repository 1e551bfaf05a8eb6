"""Loan transaction repository with lookup queries."""

from typing import List, Optional

from loantrack.db.models.loan_transaction import LoanTransaction
from loantrack.db.repository import BaseRepository


class LoanTransactionRepository(BaseRepository[LoanTransaction]):
    """Repository for LoanTransaction with reference and applicant lookups."""

    async def get_by_reference(self, reference: str) -> Optional[LoanTransaction]:
        """Get a loan transaction by its processor reference."""
        return await self.get_by_field("reference", reference)

    async def query_by_phone_and_id(
        self, phone_number: str, national_id: str
    ) -> List[LoanTransaction]:
        """
        Get every loan transaction of one applicant, newest first.

        Args:
            phone_number: Applicant phone number
            national_id: Applicant national ID

        Returns:
            List of loan transactions
        """
        return await self.filter(
            order_by=("-created_at", "-id"),
            phone_number=phone_number,
            national_id=national_id,
        )
