"""
Mock status client for testing and development.

Replays a script of statuses and failures so the poller can be
exercised without a real payment processor.
"""

import asyncio
import random
from typing import List, Optional, Sequence, Tuple, Union

from loantrack.checkout.clients.base import (
    BaseStatusClient,
    StatusBadRequestError,
    StatusCheckError,
    StatusNotFoundError,
    StatusTimeoutError,
)
from loantrack.checkout.models import FailureKind, TransactionStatus

ScriptStep = Union[str, FailureKind, StatusCheckError]

_FAILURES = {
    FailureKind.NOT_FOUND: StatusNotFoundError,
    FailureKind.BAD_REQUEST: StatusBadRequestError,
    FailureKind.TIMEOUT: StatusTimeoutError,
    FailureKind.OTHER: StatusCheckError,
}


class MockStatusClient(BaseStatusClient):
    """
    Mock client that replays scripted responses.

    Each call consumes one step of the script. A step is a status string
    (returned), a FailureKind (raised as the matching error) or a
    StatusCheckError instance (raised as is). Once the script runs out the
    last step repeats; an empty script always answers QUEUED.
    """

    def __init__(
        self,
        script: Optional[Sequence[ScriptStep]] = None,
        failure_rate: float = 0.0,
        latency_ms: int = 0,
    ):
        """
        Initialize mock client.

        Args:
            script: Responses to replay in order
            failure_rate: Probability of a simulated OTHER failure (0.0 to 1.0)
            latency_ms: Simulated network latency in milliseconds
        """
        super().__init__(base_url=None)
        self.script: List[ScriptStep] = list(script or [])
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self.calls: List[Tuple[str, float]] = []
        self._position = 0

    def get_source_name(self) -> str:
        """Return source identifier."""
        return "mock"

    @property
    def timeouts(self) -> List[float]:
        """Timeouts of every call made so far."""
        return [timeout for _, timeout in self.calls]

    async def _request_status(self, reference: str, timeout: float) -> str:
        self.calls.append((reference, timeout))
        await self._simulate_latency()

        if random.random() < self.failure_rate:
            raise StatusCheckError("Simulated API connection failure")

        step = self._next_step()
        if isinstance(step, StatusCheckError):
            raise step
        if isinstance(step, FailureKind):
            raise _FAILURES[step](f"Simulated {step.value} failure")
        return step

    def _next_step(self) -> ScriptStep:
        if not self.script:
            return TransactionStatus.QUEUED.value
        index = min(self._position, len(self.script) - 1)
        self._position += 1
        return self.script[index]

    async def _simulate_latency(self):
        """Simulate network latency."""
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)
