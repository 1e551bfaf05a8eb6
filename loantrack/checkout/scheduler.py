"""
Checkout status poll scheduler.

Runs one retrying status attempt per tick for a transaction reference,
enforces a session-wide deadline, and folds every outcome into the
transaction state machine. Sessions are keyed by reference in a
registry so each reference has at most one live poll loop.
"""

import asyncio
import inspect
import time
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Union
import structlog

from loantrack.checkout.clients.base import BaseStatusClient
from loantrack.checkout.config import PollerConfig, get_poller_config
from loantrack.checkout.models import FailureKind, SessionSnapshot, TransactionStatus
from loantrack.checkout.retry import RetryPolicy, give_up
from loantrack.checkout.state import TransactionStateMachine
from loantrack.core.logging import bind_session_context

logger = structlog.get_logger()

UpdateCallback = Callable[[SessionSnapshot], Union[None, Awaitable[None]]]


class Clock(Protocol):
    """Monotonic time source used by poll sessions."""

    def monotonic(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Clock backed by time.monotonic and asyncio.sleep."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class PollSession:
    """
    One bounded polling lifetime for a reference.

    The session owns its ticking task and is the only writer of its
    state machine while it runs. Cancelling stops future ticks at once;
    an attempt already in flight finishes but its result is dropped.
    """

    def __init__(
        self,
        reference: str,
        state: TransactionStateMachine,
        policy: RetryPolicy,
        config: PollerConfig,
        clock: Clock,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.reference = reference
        self.state = state
        self.policy = policy
        self.config = config
        self.clock = clock
        self.on_update = on_update

        self.started_at = clock.monotonic()
        self.deadline = self.started_at + config.max_polling_duration_seconds
        self.ticks = 0
        self.ended_at: Optional[float] = None

        self._cancelled = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.state.snapshot

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def should_poll(self) -> bool:
        """Polling only happens for a known reference that is still QUEUED."""
        return (
            bool(self.reference)
            and self.state.is_queued
            and not self.snapshot.session_terminal
            and not self.cancelled
        )

    def start(self) -> "PollSession":
        """Start ticking in the background; a no-op when polling is not allowed."""
        if self._task is not None:
            return self
        if not self.should_poll():
            logger.debug(
                "session.not_started",
                reference=self.reference,
                status=self.snapshot.status,
            )
            self.ended_at = self.clock.monotonic()
            return self

        self._task = asyncio.create_task(
            self._run(), name=f"poll-session:{self.reference}"
        )
        logger.info(
            "session.started",
            reference=self.reference,
            interval_seconds=self.config.poll_interval_seconds,
            max_duration_seconds=self.config.max_polling_duration_seconds,
        )
        return self

    def cancel(self) -> None:
        """Stop future ticks immediately."""
        if self.cancelled:
            return
        self._cancelled.set()
        logger.info("session.cancelled", reference=self.reference, ticks=self.ticks)

    async def wait(self) -> SessionSnapshot:
        """Wait for the session to end and return the final snapshot."""
        if self._task is not None:
            await self._task
        return self.snapshot

    async def _run(self):
        """Main polling loop: one tick per interval, never overlapping."""
        bind_session_context(self.reference)
        due = self.started_at
        try:
            while not self.cancelled:
                # A tick that overran the cadence makes the next one late
                due = max(
                    due + self.config.poll_interval_seconds, self.clock.monotonic()
                )
                await self._sleep_until(due)
                if self.cancelled:
                    break
                if not await self._tick():
                    break
        finally:
            self.ended_at = self.clock.monotonic()
            logger.info(
                "session.ended",
                reference=self.reference,
                ticks=self.ticks,
                status=self.snapshot.status,
                terminal=self.snapshot.session_terminal,
                cancelled=self.cancelled,
            )

    async def _tick(self) -> bool:
        """
        Run a single tick.

        Returns:
            True if the session should keep ticking
        """
        if not self.state.is_queued or self.snapshot.session_terminal:
            logger.debug(
                "poll.tick_skipped",
                reference=self.reference,
                status=self.snapshot.status,
            )
            return False

        elapsed = self.clock.monotonic() - self.started_at
        if elapsed > self.config.max_polling_duration_seconds:
            snapshot = self.state.apply_deadline()
            logger.warning(
                "session.timed_out",
                reference=self.reference,
                elapsed_seconds=round(elapsed, 3),
                ticks=self.ticks,
            )
            await self._notify(snapshot)
            return False

        self.ticks += 1
        logger.debug("poll.tick", reference=self.reference, tick=self.ticks)

        try:
            outcome = await self.policy.attempt(self.reference)
        except Exception as e:
            logger.error(
                "poll.tick_error",
                reference=self.reference,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            outcome = give_up(FailureKind.OTHER, detail=str(e))

        if self.cancelled:
            logger.info(
                "poll.result_discarded",
                reference=self.reference,
                outcome=type(outcome).__name__,
            )
            return False

        snapshot = self.state.apply(outcome)
        await self._notify(snapshot)
        return not snapshot.session_terminal

    async def _sleep_until(self, due: float) -> None:
        """Sleep until `due` on the session clock, waking early on cancel."""
        delay = due - self.clock.monotonic()
        if delay <= 0:
            return

        sleeper = asyncio.ensure_future(self.clock.sleep(delay))
        stopper = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait(
                {sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in (sleeper, stopper):
                if not waiter.done():
                    waiter.cancel()

    async def _notify(self, snapshot: SessionSnapshot) -> None:
        if self.on_update is None:
            return
        try:
            result = self.on_update(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "session.update_callback_failed",
                reference=self.reference,
                error=str(e),
                exc_info=True,
            )


class PollScheduler:
    """Creates and starts poll sessions sharing one client, config and clock."""

    def __init__(
        self,
        client: BaseStatusClient,
        config: Optional[PollerConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            client: Status endpoint client
            config: Poller configuration (defaults to loaded config)
            clock: Time source (defaults to the system monotonic clock)
        """
        self.config = config or get_poller_config()
        self.client = client
        self.clock = clock or SystemClock()
        self.policy = RetryPolicy(client, self.config.retry)

    def run(
        self,
        reference: str,
        on_update: Optional[UpdateCallback] = None,
        state: Optional[TransactionStateMachine] = None,
    ) -> PollSession:
        """
        Start polling a reference.

        Args:
            reference: Transaction reference (empty means nothing to poll)
            on_update: Called with every new snapshot
            state: State machine to drive (defaults to a fresh QUEUED one)

        Returns:
            The session; call `cancel()` on it to stop polling
        """
        session = PollSession(
            reference=reference,
            state=state or TransactionStateMachine(reference),
            policy=self.policy,
            config=self.config,
            clock=self.clock,
            on_update=on_update,
        )
        return session.start()


class SessionRegistry:
    """
    Keyed registry of poll sessions: at most one live session per reference.

    Ended sessions stay registered for `session_retention_seconds` so
    their final snapshot can still be read and retried, then they are
    dropped on the next registry access.
    """

    def __init__(self, scheduler: PollScheduler):
        self.scheduler = scheduler
        self._sessions: Dict[str, PollSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def start(
        self,
        reference: str,
        initial_status: str = TransactionStatus.QUEUED.value,
        on_update: Optional[UpdateCallback] = None,
    ) -> PollSession:
        """
        Start a session for a reference, or return the one still polling it.

        A live session keeps its own state; `initial_status` only seeds a
        new session. A new `on_update` replaces the live session's callback.
        """
        self._prune()
        existing = self._sessions.get(reference)
        if existing is not None and existing.running and not existing.cancelled:
            if on_update is not None:
                existing.on_update = on_update
            logger.debug("registry.session_reused", reference=reference)
            return existing

        session = self.scheduler.run(
            reference,
            on_update=on_update,
            state=TransactionStateMachine(reference, initial_status),
        )
        if reference:
            self._sessions[reference] = session
        return session

    def restart(
        self, reference: str, on_update: Optional[UpdateCallback] = None
    ) -> Optional[PollSession]:
        """
        Discard the current session and poll again with a new deadline.

        Returns:
            The new session, or None if the reference has no registered
            session (only an opened, validated checkout can be retried)
        """
        self._prune()
        existing = self._sessions.get(reference)
        if existing is None:
            logger.warning("registry.restart_unknown", reference=reference)
            return None

        existing.cancel()
        state = existing.state
        state.reset()
        session = self.scheduler.run(
            reference, on_update=on_update or existing.on_update, state=state
        )
        self._sessions[reference] = session
        logger.info("registry.session_restarted", reference=reference)
        return session

    def get(self, reference: str) -> Optional[PollSession]:
        self._prune()
        return self._sessions.get(reference)

    def cancel(self, reference: str) -> bool:
        """Cancel the session for a reference; False if there is none."""
        session = self._sessions.get(reference)
        if session is None:
            return False
        session.cancel()
        return True

    def discard(self, reference: str) -> bool:
        """Cancel and unregister a reference; False if there was none."""
        session = self._sessions.pop(reference, None)
        if session is None:
            return False
        session.cancel()
        logger.info("registry.session_discarded", reference=reference)
        return True

    def _prune(self) -> None:
        now = self.scheduler.clock.monotonic()
        retention = self.scheduler.config.session_retention_seconds
        expired = [
            ref
            for ref, session in self._sessions.items()
            if session.ended_at is not None and now - session.ended_at > retention
        ]
        for ref in expired:
            del self._sessions[ref]
        if expired:
            logger.debug("registry.pruned", sessions=len(expired))

    def active_references(self) -> List[str]:
        return [ref for ref, s in self._sessions.items() if s.running]

    async def shutdown(self) -> None:
        """Cancel every session and wait for in-flight attempts to finish."""
        sessions = list(self._sessions.values())
        for session in sessions:
            session.cancel()
        await asyncio.gather(*(s.wait() for s in sessions), return_exceptions=True)
        logger.info("registry.shutdown", sessions=len(sessions))
