"""Database models for loantrack."""

from .loan_transaction import LoanTransaction

__all__ = ["LoanTransaction"]
