"""Repository exports."""

from .loan_transaction_repository import LoanTransactionRepository

__all__ = ["LoanTransactionRepository"]
