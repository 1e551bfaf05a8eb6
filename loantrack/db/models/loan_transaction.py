"""Loan transaction model: the persisted record of a disbursement request."""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, DateTime, Numeric, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from loantrack.db.base import Base


class LoanTransaction(Base):
    """
    Stores one loan disbursement request handed off to the processor.

    Written when the client submits the loan; read once per checkout
    session by reference, and listed by phone number and national ID
    on the progress page.
    """

    __tablename__ = "loan_transactions"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identification
    reference: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Processor transaction reference",
    )
    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, comment="Loan application tracking number"
    )

    # Amounts
    loan_amount: Mapped[Optional[float]] = mapped_column(
        Numeric(precision=18, scale=2, asdecimal=False),
        nullable=True,
        comment="Requested loan amount",
    )
    service_fee: Mapped[Optional[float]] = mapped_column(
        Numeric(precision=18, scale=2, asdecimal=False),
        nullable=True,
        comment="Service fee charged up front",
    )

    # Applicant
    phone_number: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True, comment="Applicant phone number"
    )
    national_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, comment="Applicant national ID"
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Applicant display name"
    )

    # Status
    status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        default="QUEUED",
        comment="Processor status (QUEUED, SUCCESS, FAILED, CANCELLED)",
    )

    # Audit fields
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_loan_phone_national_id", "phone_number", "national_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<LoanTransaction(id={self.id}, reference={self.reference}, "
            f"amount={self.loan_amount}, status={self.status})>"
        )
