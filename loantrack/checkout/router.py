"""
Checkout API routes.

Presentation adapter over CheckoutTracker: open a checkout, read its
snapshot, retry, navigate away, and list loan progress.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
import structlog

from loantrack.checkout.models import TransactionRecord
from loantrack.checkout.service import (
    CheckoutTracker,
    ProgressError,
    ProgressErrorKind,
    get_tracker,
)
from loantrack.checkout.state import present

logger = structlog.get_logger()

router = APIRouter(tags=["checkout"])


class OpenCheckoutRequest(BaseModel):
    """Values the client already holds when it hands off to checkout."""

    reference: str = ""
    loan_amount: float = Field(default=0, ge=0)
    service_fee: float = Field(default=0, ge=0)
    tracking_number: str = ""
    phone_number: str = ""
    national_id: str = ""
    full_name: str = ""

    def to_defaults(self) -> TransactionRecord:
        return TransactionRecord(**self.model_dump())


class SnapshotResponse(BaseModel):
    """Current session snapshot and the view it maps to."""

    reference: str
    status: str
    session_error: Optional[str]
    error_kind: Optional[str]
    session_terminal: bool
    updated_at: str
    view: str
    polling: bool


class ProgressResponse(BaseModel):
    loans: List[Dict[str, Any]]
    count: int


def _snapshot_response(tracker: CheckoutTracker, reference: str) -> SnapshotResponse:
    session = tracker.registry.get(reference)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No checkout session for reference {reference}",
        )
    snapshot = session.snapshot
    return SnapshotResponse(
        **snapshot.to_dict(),
        view=present(snapshot).value,
        polling=session.running,
    )


@router.post("/checkout/sessions", status_code=status.HTTP_201_CREATED)
async def open_checkout(
    request: OpenCheckoutRequest,
    tracker: CheckoutTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """
    Open a checkout for a submitted loan.

    Loads the stored record (falling back to the submitted values),
    validates it and starts polling the processor while the
    transaction is QUEUED.
    """
    result = await tracker.open(request.reference, request.to_defaults())
    return result.to_dict()


@router.get("/checkout/sessions/{reference}", response_model=SnapshotResponse)
async def get_checkout(
    reference: str, tracker: CheckoutTracker = Depends(get_tracker)
) -> SnapshotResponse:
    return _snapshot_response(tracker, reference)


@router.post("/checkout/sessions/{reference}/retry", response_model=SnapshotResponse)
async def retry_checkout(
    reference: str, tracker: CheckoutTracker = Depends(get_tracker)
) -> SnapshotResponse:
    """Retry action from the error dialog: fresh session, fresh deadline."""
    if tracker.retry(reference) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No checkout session for reference {reference}",
        )
    return _snapshot_response(tracker, reference)


@router.delete("/checkout/sessions/{reference}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_checkout(
    reference: str, tracker: CheckoutTracker = Depends(get_tracker)
) -> None:
    """Navigate away: stop polling."""
    if not tracker.cancel(reference):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No checkout session for reference {reference}",
        )


@router.get("/loans/progress", response_model=ProgressResponse)
async def loan_progress(
    phone_number: str = Query(default=""),
    national_id: str = Query(default=""),
    tracker: CheckoutTracker = Depends(get_tracker),
) -> ProgressResponse:
    """List an applicant's loan applications."""
    try:
        records = await tracker.progress(phone_number, national_id)
    except ProgressError as e:
        status_codes = {
            ProgressErrorKind.INVALID_ACCESS: status.HTTP_400_BAD_REQUEST,
            ProgressErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
            ProgressErrorKind.FETCH_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
        }
        raise HTTPException(status_code=status_codes[e.kind], detail=e.message)

    return ProgressResponse(
        loans=[r.model_dump(mode="json") for r in records], count=len(records)
    )
