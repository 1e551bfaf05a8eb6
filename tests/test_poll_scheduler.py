"""
Tests for the poll scheduler and session registry.

Sessions run on a fake monotonic clock, so a five-minute session
completes instantly while keeping exact tick times.
"""

import asyncio

import pytest

from loantrack.checkout.clients.mock_client import MockStatusClient
from loantrack.checkout.config import PollerConfig
from loantrack.checkout.models import (
    MSG_INVALID_REFERENCE,
    MSG_PROCESSING,
    MSG_RETRYING,
    MSG_TIMED_OUT,
    FailureKind,
    SessionErrorKind,
)
from loantrack.checkout.scheduler import PollScheduler, SessionRegistry
from loantrack.checkout.state import TransactionStateMachine


class CancellingClient(MockStatusClient):
    """Cancels its session while the request is in flight."""

    session = None

    async def _request_status(self, reference: str, timeout: float) -> str:
        self.session.cancel()
        return await super()._request_status(reference, timeout)


class SlowClient(MockStatusClient):
    """Takes 25 seconds of session time per request."""

    def __init__(self, clock, **kwargs):
        super().__init__(**kwargs)
        self.clock = clock
        self.started_at = []

    async def _request_status(self, reference: str, timeout: float) -> str:
        self.started_at.append(self.clock.now)
        self.clock.advance(25)
        return await super()._request_status(reference, timeout)


class BrokenClient(MockStatusClient):
    async def _request_status(self, reference: str, timeout: float) -> str:
        raise RuntimeError("unexpected client bug")


class GatedClient(MockStatusClient):
    """Holds requests until the gate opens."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def _request_status(self, reference: str, timeout: float) -> str:
        if not self.gate.is_set():
            self.entered.set()
            await self.gate.wait()
        return await super()._request_status(reference, timeout)


@pytest.mark.asyncio
class TestPollSession:
    """Tests for a single polling session."""

    async def test_success_on_first_tick(self, clock, poller_config):
        """Test SUCCESS on the first try ends the session after one tick."""
        client = MockStatusClient(script=["SUCCESS"])
        updates = []

        session = PollScheduler(client, poller_config, clock).run("REF1", updates.append)
        snapshot = await session.wait()

        assert snapshot.status == "SUCCESS"
        assert snapshot.session_terminal is True
        assert snapshot.session_error is None
        assert client.calls == [("REF1", 20.0)]
        assert session.ticks == 1
        assert clock.now == 10
        assert updates == [snapshot]

    async def test_not_found_until_deadline(self, clock, poller_config):
        """Test sustained 404s keep the transaction QUEUED until the session times out."""
        client = MockStatusClient(script=[FailureKind.NOT_FOUND])
        updates = []

        session = PollScheduler(client, poller_config, clock).run("REF1", updates.append)
        snapshot = await session.wait()

        # Ticks at 10, 20, ..., 300; the check at 310 is past the deadline
        assert session.ticks == 30
        assert len(client.calls) == 90
        assert clock.now == 310

        assert all(u.status == "QUEUED" for u in updates)
        assert all(u.session_error == MSG_PROCESSING for u in updates[:-1])

        assert snapshot.status == "QUEUED"
        assert snapshot.session_error == MSG_TIMED_OUT
        assert snapshot.error_kind == SessionErrorKind.TIMED_OUT
        assert snapshot.session_terminal is True

    async def test_no_ticks_after_deadline(self, clock, poller_config):
        """Test a timed-out session performs no further calls."""
        client = MockStatusClient(script=[FailureKind.OTHER])
        session = PollScheduler(client, poller_config, clock).run("REF1")
        await session.wait()
        calls = len(client.calls)

        await session.wait()

        assert len(client.calls) == calls
        assert session.running is False

    async def test_bad_request_keeps_polling(self, clock, poller_config):
        """Test a tick of 400s surfaces the error but polling continues."""
        client = MockStatusClient(script=[FailureKind.BAD_REQUEST] * 3 + ["SUCCESS"])
        updates = []

        session = PollScheduler(client, poller_config, clock).run("REF1", updates.append)
        snapshot = await session.wait()

        assert updates[0].status == "QUEUED"
        assert updates[0].session_error == MSG_INVALID_REFERENCE
        assert updates[0].session_terminal is False
        assert snapshot.status == "SUCCESS"
        assert session.ticks == 2

    async def test_empty_reference_never_polls(self, clock, poller_config):
        """Test an empty reference makes no call and changes no status."""
        client = MockStatusClient(script=["SUCCESS"])

        session = PollScheduler(client, poller_config, clock).run("")
        snapshot = await session.wait()

        assert client.calls == []
        assert snapshot.status == "QUEUED"
        assert session.running is False

    @pytest.mark.parametrize("status", ["SUCCESS", "FAILED", "CANCELLED"])
    async def test_terminal_status_never_polls(self, clock, poller_config, status):
        client = MockStatusClient()
        state = TransactionStateMachine("REF1", initial_status=status)

        session = PollScheduler(client, poller_config, clock).run("REF1", state=state)
        await session.wait()

        assert client.calls == []
        assert session.snapshot.status == status

    async def test_failed_status_stops_polling(self, clock, poller_config):
        """Test FAILED is terminal and later ticks never happen."""
        client = MockStatusClient(script=[FailureKind.OTHER] * 3 + ["FAILED", "SUCCESS"])

        session = PollScheduler(client, poller_config, clock).run("REF1")
        snapshot = await session.wait()

        assert snapshot.status == "FAILED"
        assert snapshot.session_terminal is True
        assert len(client.calls) == 4

    async def test_unrecognized_status_ends_polling(self, clock, poller_config):
        """Test a pass-through status is stored and stops the QUEUED-gated loop."""
        client = MockStatusClient(script=["AWAITING_PIN"])

        session = PollScheduler(client, poller_config, clock).run("REF1")
        snapshot = await session.wait()

        assert snapshot.status == "AWAITING_PIN"
        assert snapshot.session_terminal is False
        assert len(client.calls) == 1
        assert session.ticks == 1

    async def test_cancel_before_first_tick(self, clock, poller_config):
        client = MockStatusClient(script=["SUCCESS"])

        session = PollScheduler(client, poller_config, clock).run("REF1")
        session.cancel()
        snapshot = await session.wait()

        assert client.calls == []
        assert snapshot.status == "QUEUED"

    async def test_cancel_discards_in_flight_result(self, clock, poller_config):
        """Test a result arriving after cancel never mutates the state."""
        client = CancellingClient(script=["SUCCESS"])
        updates = []

        session = PollScheduler(client, poller_config, clock).run("REF1", updates.append)
        client.session = session
        snapshot = await session.wait()

        assert len(client.calls) == 1
        assert snapshot.status == "QUEUED"
        assert snapshot.session_terminal is False
        assert updates == []

    async def test_long_attempt_delays_next_tick(self, clock, poller_config):
        """Test ticks never overlap when an attempt outlasts the cadence."""
        client = SlowClient(clock, script=[FailureKind.OTHER] * 3 + ["SUCCESS"])

        session = PollScheduler(client, poller_config, clock).run("REF1")
        await session.wait()

        # Tick 1 at 10 runs three 25s tries; tick 2 fires late at 85
        assert client.started_at == [10, 35, 60, 85]
        assert session.ticks == 2

    async def test_unexpected_client_error_is_absorbed(self, clock, poller_config):
        """Test a raw exception from a client surfaces only as a session error."""
        updates = []
        session = PollScheduler(BrokenClient(), poller_config, clock).run(
            "REF1", updates.append
        )
        snapshot = await session.wait()

        assert updates[0].session_error == MSG_RETRYING
        assert snapshot.error_kind == SessionErrorKind.TIMED_OUT

    async def test_async_update_callback(self, clock, poller_config):
        client = MockStatusClient(script=["SUCCESS"])
        seen = []

        async def on_update(snapshot):
            seen.append(snapshot.status)

        session = PollScheduler(client, poller_config, clock).run("REF1", on_update)
        await session.wait()

        assert seen == ["SUCCESS"]

    async def test_failing_update_callback_does_not_stop_session(
        self, clock, poller_config
    ):
        client = MockStatusClient(script=["QUEUED", "SUCCESS"])

        def on_update(snapshot):
            raise ValueError("renderer crashed")

        session = PollScheduler(client, poller_config, clock).run("REF1", on_update)
        snapshot = await session.wait()

        assert snapshot.status == "SUCCESS"
        assert session.ticks == 2


@pytest.mark.asyncio
class TestSessionRegistry:
    """Tests for the keyed session registry."""

    async def test_single_session_per_reference(self, clock, poller_config):
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), poller_config, clock)
        )

        first = registry.start("REF1")
        second = registry.start("REF1")

        assert first is second
        assert registry.active_references() == ["REF1"]
        await registry.shutdown()

    async def test_sessions_are_independent(self, clock, poller_config):
        """Test two references poll side by side without sharing state."""
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=["SUCCESS"]), poller_config, clock)
        )

        one = registry.start("REF1")
        two = registry.start("REF2")
        await one.wait()
        await two.wait()

        assert one is not two
        assert one.snapshot.reference == "REF1"
        assert two.snapshot.reference == "REF2"
        assert registry.get("REF1").snapshot.status == "SUCCESS"

    async def test_restart_uses_fresh_deadline(self, clock, poller_config):
        """Test retry after a timeout starts a new session with a new deadline."""
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), poller_config, clock)
        )
        first = registry.start("REF1")
        await first.wait()
        assert first.snapshot.error_kind == SessionErrorKind.TIMED_OUT

        second = registry.restart("REF1")

        assert second is not first
        assert second.started_at == clock.now
        assert second.deadline == clock.now + 300
        assert second.snapshot.status == "QUEUED"
        assert second.snapshot.session_error is None
        assert second.snapshot.session_terminal is False
        assert registry.get("REF1") is second

        await second.wait()
        assert clock.now == 620

    async def test_restart_cancels_running_session(self, clock, poller_config):
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), poller_config, clock)
        )
        first = registry.start("REF1")

        second = registry.restart("REF1")

        assert first.cancelled is True
        assert second.running is True
        await registry.shutdown()

    async def test_cancel_unknown_reference(self, clock, poller_config):
        registry = SessionRegistry(PollScheduler(MockStatusClient(), poller_config, clock))
        assert registry.cancel("NOPE") is False

    async def test_shutdown_stops_everything(self, clock, poller_config):
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), poller_config, clock)
        )
        sessions = [registry.start(ref) for ref in ("REF1", "REF2", "REF3")]

        await registry.shutdown()

        assert all(s.cancelled for s in sessions)
        assert registry.active_references() == []

    async def test_restart_unknown_reference_does_not_poll(self, clock, poller_config):
        """Test only a registered checkout can be retried."""
        client = MockStatusClient(script=["SUCCESS"])
        registry = SessionRegistry(PollScheduler(client, poller_config, clock))

        assert registry.restart("REF1") is None
        assert registry.get("REF1") is None
        assert client.calls == []

    async def test_discard_unregisters_reference(self, clock, poller_config):
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), poller_config, clock)
        )
        session = registry.start("REF1")

        assert registry.discard("REF1") is True
        assert session.cancelled is True
        assert registry.get("REF1") is None
        assert registry.restart("REF1") is None
        assert registry.discard("REF1") is False

    async def test_reopen_after_cancel_with_attempt_in_flight(self, clock, poller_config):
        """Test a cancelled session still finishing its attempt is never reused."""
        client = GatedClient(script=["SUCCESS"])
        registry = SessionRegistry(PollScheduler(client, poller_config, clock))
        first = registry.start("REF1")
        await client.entered.wait()

        registry.cancel("REF1")
        assert first.running is True

        second = registry.start("REF1")

        assert second is not first
        assert second.cancelled is False
        assert registry.get("REF1") is second

        client.gate.set()
        await first.wait()
        snapshot = await second.wait()

        assert first.snapshot.status == "QUEUED"
        assert snapshot.status == "SUCCESS"

    async def test_reused_session_takes_new_callback(self, clock, poller_config):
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), poller_config, clock)
        )
        seen = []
        first = registry.start("REF1", on_update=lambda s: None)

        second = registry.start("REF1", on_update=seen.append)

        assert second is first
        assert first.on_update == seen.append
        await registry.shutdown()

    async def test_ended_sessions_are_evicted_after_retention(self, clock):
        """Test the registry does not grow with sessions that have ended."""
        config = PollerConfig(client_type="mock", session_retention_seconds=60)
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=["SUCCESS"]), config, clock)
        )
        for ref in ("REF1", "REF2", "REF3"):
            await registry.start(ref).wait()
        registry.start("REF-DONE", initial_status="SUCCESS")
        assert len(registry) == 4

        # Still readable within the retention window
        clock.advance(30)
        assert registry.get("REF1").snapshot.status == "SUCCESS"

        clock.advance(100)
        live = registry.start("REF5")

        assert len(registry) == 1
        assert registry.get("REF1") is None
        assert registry.get("REF5") is live
        await registry.shutdown()

    async def test_cancelled_session_is_evicted_after_retention(self, clock):
        config = PollerConfig(client_type="mock", session_retention_seconds=60)
        registry = SessionRegistry(
            PollScheduler(MockStatusClient(script=[FailureKind.NOT_FOUND]), config, clock)
        )
        session = registry.start("REF1")
        registry.cancel("REF1")
        await session.wait()

        clock.advance(61)

        assert registry.get("REF1") is None
        assert len(registry) == 0
