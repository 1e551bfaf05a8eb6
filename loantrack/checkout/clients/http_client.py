"""
HTTP status client for the payment processor's transaction-status API.

GET {base_url}/api/transaction-status?reference={ref} answers with
{"success": true, "status": "..."} when the processor knows the
transaction. Everything else is classified into a StatusCheckError.
"""

from typing import Optional

import httpx
import structlog

from loantrack.checkout.clients.base import (
    BaseStatusClient,
    StatusBadRequestError,
    StatusCheckError,
    StatusNotFoundError,
    StatusTimeoutError,
)

logger = structlog.get_logger()

STATUS_PATH = "/api/transaction-status"


class HttpStatusClient(BaseStatusClient):
    """Status client backed by httpx."""

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP client.

        Args:
            base_url: Processor API base URL
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        super().__init__(base_url.rstrip("/"))
        self._transport = transport

    def get_source_name(self) -> str:
        return "payhero"

    async def _request_status(self, reference: str, timeout: float) -> str:
        url = f"{self.base_url}{STATUS_PATH}"
        logger.debug("status_client.request", reference=reference, timeout=timeout)

        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport
            ) as client:
                response = await client.get(url, params={"reference": reference})
        except httpx.TimeoutException as e:
            raise StatusTimeoutError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise StatusCheckError(f"Transport error: {e}") from e

        if response.status_code == 404:
            raise StatusNotFoundError(
                f"HTTP 404: {response.text[:200]}", status_code=404
            )
        if response.status_code == 400:
            raise StatusBadRequestError(
                f"HTTP 400: {response.text[:200]}", status_code=400
            )
        if response.status_code == 408:
            raise StatusTimeoutError("HTTP 408: request timeout", status_code=408)
        if response.status_code >= 300:
            raise StatusCheckError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise StatusCheckError(
                "Status response is not JSON", status_code=response.status_code
            ) from e

        if not isinstance(data, dict) or not data.get("success"):
            raise StatusCheckError(
                "Failed to check transaction status",
                status_code=response.status_code,
            )

        status = data.get("status")
        if not isinstance(status, str) or not status:
            raise StatusCheckError(
                "Status response has no status field",
                status_code=response.status_code,
            )
        return status
