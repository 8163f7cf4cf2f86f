"""Tests for wsterm.connection.machine.ConnectionStateMachine."""

from __future__ import annotations

import asyncio

import pytest

from wsterm.connection.machine import ConnectionStateMachine
from wsterm.connection.policy import ReconnectPolicy
from wsterm.connection.state import (
    CloseReason,
    ConnectionState,
    StatusEvent,
    StatusKind,
)

URL = "ws://shell.test/ws"

# Long enough for call_later timers with the tiny delays below to fire
SETTLE = 0.05


def _policy(max_attempts: int = 3) -> ReconnectPolicy:
    return ReconnectPolicy(max_attempts=max_attempts, base_delay=0.001, max_delay=0.008)


class Harness:
    def __init__(self, factory, max_attempts: int = 3) -> None:
        self.events: list[StatusEvent] = []
        self.chunks: list = []
        self.factory = factory
        self.machine = ConnectionStateMachine(
            URL,
            factory,
            policy=_policy(max_attempts),
            on_status=self.events.append,
            on_chunk=self.chunks.append,
        )

    def kinds(self) -> list[StatusKind]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: StatusKind) -> list[StatusEvent]:
        return [e for e in self.events if e.kind is kind]


@pytest.fixture
def h(factory) -> Harness:
    return Harness(factory)


# ---------------------------------------------------------------------------
# Basic transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_initial_state_idle(self, h: Harness) -> None:
        assert h.machine.state is ConnectionState.IDLE
        assert h.machine.epoch == 0
        assert h.factory.transports == []

    def test_connect_goes_to_connecting(self, h: Harness) -> None:
        h.machine.connect()
        assert h.machine.state is ConnectionState.CONNECTING
        assert h.machine.epoch == 1
        assert h.factory.last.url == URL
        assert h.kinds() == [StatusKind.CONNECTING]

    def test_open_goes_to_open(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        assert h.machine.state is ConnectionState.OPEN
        assert h.machine.is_open
        assert h.kinds()[-1] is StatusKind.CONNECTED
        assert h.events[-1].connected

    async def test_network_close_goes_to_closed(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        h.factory.last.drop()
        assert h.machine.state is ConnectionState.CLOSED
        assert h.machine.close_reason is CloseReason.NETWORK
        disconnected = h.of_kind(StatusKind.DISCONNECTED)
        assert disconnected[-1].reason is CloseReason.NETWORK

    async def test_close_while_connecting(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        assert h.machine.state is ConnectionState.CLOSED
        assert h.machine.close_reason is CloseReason.NETWORK

    def test_open_only_from_connecting(self, h: Harness) -> None:
        h.machine.connect()
        t = h.factory.last
        t.open()
        t.open()
        assert len(h.of_kind(StatusKind.CONNECTED)) == 1

    def test_message_forwarded_when_open(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        h.factory.last.receive("prompt> ")
        h.factory.last.receive(b"\x1b[0m")
        assert h.chunks == ["prompt> ", b"\x1b[0m"]

    def test_message_before_open_ignored(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.receive("early")
        assert h.chunks == []

    async def test_error_is_not_fatal(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        h.factory.last.error("reset by peer")
        assert h.machine.state is ConnectionState.OPEN
        errors = h.of_kind(StatusKind.ERROR)
        assert len(errors) == 1
        assert errors[0].message == "reset by peer"
        h.factory.last.drop()
        assert h.machine.state is ConnectionState.CLOSED


# ---------------------------------------------------------------------------
# send()
# ---------------------------------------------------------------------------


class TestSend:
    def test_send_when_open(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        assert h.machine.send(b"a") is True
        assert h.factory.last.sent == [b"a"]

    def test_send_while_idle_dropped(self, h: Harness) -> None:
        assert h.machine.send(b"a") is False
        assert h.machine.state is ConnectionState.IDLE

    def test_send_while_connecting_dropped(self, h: Harness) -> None:
        h.machine.connect()
        assert h.machine.send(b"a") is False
        assert h.factory.last.sent == []
        assert h.machine.state is ConnectionState.CONNECTING

    async def test_send_while_closed_dropped(self, h: Harness) -> None:
        h.machine.connect()
        t = h.factory.last
        t.open()
        t.drop()
        events_before = list(h.events)
        assert h.machine.send(b"a") is False
        assert t.sent == []
        assert h.machine.state is ConnectionState.CLOSED
        assert h.events == events_before

    def test_transport_send_error_reported(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        h.factory.last.fail_send = True
        assert h.machine.send(b"a") is False
        errors = h.of_kind(StatusKind.ERROR)
        assert len(errors) == 1
        assert errors[0].message == "Send failed: socket gone"
        assert h.machine.state is ConnectionState.OPEN


# ---------------------------------------------------------------------------
# Reconnection policy
# ---------------------------------------------------------------------------


class TestReconnect:
    async def test_network_close_schedules_retry(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        assert h.machine.retry_pending
        assert h.machine.policy.attempt == 1
        reconnecting = h.of_kind(StatusKind.RECONNECTING)
        assert len(reconnecting) == 1
        assert reconnecting[0].attempt == 1
        assert reconnecting[0].max_attempts == 3
        assert reconnecting[0].delay == h.machine.policy.backoff(1)

    async def test_retry_fires_new_connection(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 2
        assert h.machine.state is ConnectionState.CONNECTING
        assert h.machine.epoch == 2
        assert not h.machine.retry_pending

    async def test_attempt_increments_until_exhausted(self, h: Harness) -> None:
        h.machine.connect()
        for expected in (1, 2, 3):
            h.factory.last.drop()
            assert h.machine.policy.attempt == expected
            await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 4

        h.factory.last.drop()
        assert h.machine.policy.attempt == 3
        assert not h.machine.retry_pending
        await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 4
        assert h.machine.state is ConnectionState.CLOSED
        exhausted = h.of_kind(StatusKind.EXHAUSTED)
        assert len(exhausted) == 1
        assert "Max reconnection attempts" in exhausted[0].message

    async def test_exhausted_reported_once(self, h: Harness) -> None:
        h.machine.connect()
        for _ in range(3):
            h.factory.last.drop()
            await asyncio.sleep(SETTLE)
        h.factory.last.drop()
        # A plain connect() does not reset the policy
        h.machine.connect()
        h.factory.last.drop()
        assert len(h.of_kind(StatusKind.EXHAUSTED)) == 1
        assert not h.machine.retry_pending

    async def test_open_resets_attempt(self, factory) -> None:
        h = Harness(factory, max_attempts=5)
        h.machine.connect()
        for _ in range(3):
            h.factory.last.drop()
            await asyncio.sleep(SETTLE)
        assert h.machine.policy.attempt == 3

        h.factory.last.open()
        assert h.machine.policy.attempt == 0

        h.factory.last.drop()
        last = h.of_kind(StatusKind.RECONNECTING)[-1]
        assert last.attempt == 1
        assert last.delay == h.machine.policy.backoff(1)
        assert last.delay != h.machine.policy.backoff(4)

    async def test_reconnect_after_exhaustion(self, h: Harness) -> None:
        h.machine.connect()
        for _ in range(3):
            h.factory.last.drop()
            await asyncio.sleep(SETTLE)
        h.factory.last.drop()
        assert h.machine.policy.exhausted

        h.machine.reconnect()
        assert h.machine.policy.attempt == 0
        assert h.machine.state is ConnectionState.CONNECTING
        h.factory.last.drop()
        assert h.machine.retry_pending
        assert h.machine.policy.attempt == 1

    async def test_zero_attempts_never_retries(self, factory) -> None:
        h = Harness(factory, max_attempts=0)
        h.machine.connect()
        h.factory.last.drop()
        assert not h.machine.retry_pending
        assert len(h.of_kind(StatusKind.EXHAUSTED)) == 1


# ---------------------------------------------------------------------------
# User-initiated close
# ---------------------------------------------------------------------------


class TestUserClose:
    async def test_close_does_not_retry(self, h: Harness) -> None:
        h.machine.connect()
        t = h.factory.last
        t.open()
        h.machine.close()
        assert h.machine.state is ConnectionState.CLOSED
        assert h.machine.close_reason is CloseReason.USER_INITIATED
        assert t.closed
        assert not h.machine.retry_pending
        await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 1
        assert h.of_kind(StatusKind.RECONNECTING) == []

    async def test_late_close_after_user_close_ignored(self, h: Harness) -> None:
        h.machine.connect()
        t = h.factory.last
        t.open()
        h.machine.close()
        t.drop()
        assert h.machine.close_reason is CloseReason.USER_INITIATED
        assert not h.machine.retry_pending
        assert len(h.of_kind(StatusKind.DISCONNECTED)) == 1

    async def test_close_cancels_pending_retry(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        assert h.machine.retry_pending
        h.machine.close()
        assert not h.machine.retry_pending
        assert h.machine.close_reason is CloseReason.USER_INITIATED
        await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 1

    def test_close_is_idempotent(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        h.machine.close()
        h.machine.close()
        assert len(h.of_kind(StatusKind.DISCONNECTED)) == 1

    def test_close_from_idle(self, h: Harness) -> None:
        h.machine.close()
        assert h.machine.state is ConnectionState.CLOSED
        assert h.machine.close_reason is CloseReason.USER_INITIATED

    def test_shutdown_returns_to_idle(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.open()
        h.machine.shutdown()
        assert h.machine.state is ConnectionState.IDLE
        assert h.machine.close_reason is None
        assert h.factory.last.closed


# ---------------------------------------------------------------------------
# Epochs and stale callbacks
# ---------------------------------------------------------------------------


class TestEpochs:
    def test_connect_increments_epoch(self, h: Harness) -> None:
        h.machine.connect()
        h.machine.connect()
        assert h.machine.epoch == 2

    def test_reconnect_closes_previous_transport(self, h: Harness) -> None:
        h.machine.connect()
        first = h.factory.last
        h.machine.connect()
        assert first.closed
        assert not h.factory.last.closed

    def test_stale_open_ignored(self, h: Harness) -> None:
        h.machine.connect()
        stale = h.factory.last
        h.machine.connect()
        stale.open()
        assert h.machine.state is ConnectionState.CONNECTING
        assert h.of_kind(StatusKind.CONNECTED) == []

    async def test_stale_close_ignored(self, h: Harness) -> None:
        h.machine.connect()
        stale = h.factory.last
        h.machine.connect()
        h.factory.last.open()
        stale.drop()
        assert h.machine.state is ConnectionState.OPEN
        assert not h.machine.retry_pending

    def test_stale_message_ignored(self, h: Harness) -> None:
        h.machine.connect()
        stale = h.factory.last
        h.machine.connect()
        h.factory.last.open()
        stale.receive("old output")
        assert h.chunks == []

    def test_stale_error_ignored(self, h: Harness) -> None:
        h.machine.connect()
        stale = h.factory.last
        h.machine.connect()
        stale.error("old error")
        assert h.of_kind(StatusKind.ERROR) == []

    async def test_pending_retry_cancelled_by_manual_connect(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        assert h.machine.retry_pending
        h.machine.connect()
        assert not h.machine.retry_pending
        await asyncio.sleep(SETTLE)
        # Only the manual connection; the old timer never fired
        assert len(h.factory.transports) == 2
        assert h.machine.epoch == 2

    async def test_only_one_retry_outstanding(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        # Second close for the same epoch is a no-op
        h.factory.last.drop()
        assert h.machine.policy.attempt == 1
        await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 2


# ---------------------------------------------------------------------------
# Construction failures and callback errors
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_construction_failure_does_not_raise(self, h: Harness) -> None:
        h.factory.fail_next = 1
        h.machine.connect()
        assert h.machine.state is ConnectionState.CLOSED
        assert h.machine.close_reason is CloseReason.NETWORK
        errors = h.of_kind(StatusKind.ERROR)
        assert len(errors) == 1
        assert "cannot create transport" in errors[0].message

    async def test_construction_failure_takes_retry_path(self, h: Harness) -> None:
        h.factory.fail_next = 1
        h.machine.connect()
        assert h.machine.retry_pending
        assert h.machine.policy.attempt == 1
        await asyncio.sleep(SETTLE)
        assert len(h.factory.transports) == 1
        assert h.machine.state is ConnectionState.CONNECTING

    def test_status_callback_error_swallowed(self, factory) -> None:
        def boom(event: StatusEvent) -> None:
            raise RuntimeError("listener broke")

        machine = ConnectionStateMachine(URL, factory, policy=_policy(), on_status=boom)
        machine.connect()
        factory.last.open()
        assert machine.state is ConnectionState.OPEN

    def test_chunk_callback_error_swallowed(self, factory) -> None:
        def boom(chunk) -> None:
            raise RuntimeError("render failed")

        machine = ConnectionStateMachine(URL, factory, policy=_policy(), on_chunk=boom)
        machine.connect()
        factory.last.open()
        factory.last.receive("x")
        assert machine.state is ConnectionState.OPEN

    def test_handlers_fired_inside_factory(self, factory) -> None:
        """A transport that opens synchronously is still tracked."""

        def opening_factory(url, handlers):
            transport = factory(url, handlers)
            handlers.on_open()
            return transport

        machine = ConnectionStateMachine(URL, opening_factory, policy=_policy())
        machine.connect()
        assert machine.state is ConnectionState.OPEN
        assert machine.send(b"x") is True
        assert factory.last.sent == [b"x"]

    def test_network_close_without_loop_gives_up(self, h: Harness) -> None:
        h.factory.fail_next = 1
        h.machine.connect()
        assert h.kinds() == [
            StatusKind.CONNECTING,
            StatusKind.ERROR,
            StatusKind.DISCONNECTED,
            StatusKind.EXHAUSTED,
        ]
        assert h.machine.policy.attempt == 0
        assert not h.machine.retry_pending
        assert h.machine.state is ConnectionState.CLOSED
        assert "event loop" in h.of_kind(StatusKind.EXHAUSTED)[0].message

    def test_give_up_without_loop_reported_once(self, h: Harness) -> None:
        h.machine.connect()
        h.factory.last.drop()
        h.machine.connect()
        h.factory.last.drop()
        assert len(h.of_kind(StatusKind.EXHAUSTED)) == 1
        assert not h.of_kind(StatusKind.RECONNECTING)
