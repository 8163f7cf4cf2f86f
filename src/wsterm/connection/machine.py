"""Connection state machine — owns the transport and drives reconnection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from wsterm.connection.policy import ReconnectPolicy
from wsterm.connection.state import (
    CloseReason,
    ConnectionState,
    StatusEvent,
    StatusKind,
)
from wsterm.errors import RetryExhausted
from wsterm.transport.base import Chunk, Transport, TransportFactory, TransportHandlers

logger = logging.getLogger(__name__)


class ConnectionStateMachine:
    """Connection lifecycle: IDLE -> CONNECTING -> OPEN -> CLOSED.

    The machine is the only holder of the live transport. Every ``connect()``
    starts a new epoch; transport callbacks are bound to the epoch they were
    created under and ignored once a newer connection has started. Late
    callbacks after a CLOSED transition are no-ops.

    Network closes schedule a retry through the reconnect policy, as a
    cancellable timer keyed by the current epoch. At most one retry timer is
    outstanding. ``close()`` is a user-initiated close: it cancels any pending
    retry and never schedules a new one.

    Errors never propagate to callers of ``connect()``; they are reported as
    status events through ``on_status``.
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory,
        policy: ReconnectPolicy | None = None,
        on_status: Callable[[StatusEvent], None] | None = None,
        on_chunk: Callable[[Chunk], None] | None = None,
    ) -> None:
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self._factory = transport_factory
        self._on_status = on_status
        self._on_chunk = on_chunk
        self._state = ConnectionState.IDLE
        self._epoch = 0
        self._transport: Transport | None = None
        self._retry: asyncio.TimerHandle | None = None
        self._close_reason: CloseReason | None = None
        self._exhausted_reported = False

    # --- Properties ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def close_reason(self) -> CloseReason | None:
        return self._close_reason

    @property
    def retry_pending(self) -> bool:
        return self._retry is not None

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    # --- Public operations ---

    def connect(self) -> None:
        """Start a new connection attempt.

        A transport construction failure is logged, reported as an ERROR
        status and handled like an immediate network close, so the normal
        retry path applies.
        """
        self._cancel_retry()
        self._detach_transport()

        self._epoch += 1
        epoch = self._epoch
        self._close_reason = None
        self._set_state(ConnectionState.CONNECTING)
        self._emit(StatusKind.CONNECTING)

        handlers = TransportHandlers(
            on_open=lambda: self._handle_open(epoch),
            on_message=lambda chunk: self._handle_message(epoch, chunk),
            on_error=lambda info: self._handle_error(epoch, info),
            on_close=lambda: self._handle_close(epoch),
        )
        try:
            transport = self._factory(self.url, handlers)
        except Exception as e:
            logger.warning("Failed to create transport for %s: %s", self.url, e)
            self._emit(StatusKind.ERROR, message=f"Failed: {e}")
            self._transition_closed(CloseReason.NETWORK)
            return

        # Handlers may already have fired from inside the factory
        if epoch == self._epoch and self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.OPEN,
        ):
            self._transport = transport
        else:
            transport.close()

    def send(self, frame: bytes) -> bool:
        """Send one frame if the connection is open.

        Frames sent while not OPEN are dropped, not buffered. A transport
        send failure is reported as an ERROR status. Returns True when the
        frame was handed to the transport.
        """
        if self._state is not ConnectionState.OPEN or self._transport is None:
            logger.debug(
                "Dropping frame (%d bytes) in state %s", len(frame), self._state
            )
            return False
        try:
            self._transport.send(frame)
        except Exception as e:
            logger.warning("Send failed on %s: %s", self.url, e)
            self._emit(StatusKind.ERROR, message=f"Send failed: {e}")
            return False
        return True

    def close(self) -> None:
        """User-initiated close. Cancels any pending retry; never retries."""
        self._cancel_retry()
        if self._state is ConnectionState.CLOSED:
            self._close_reason = CloseReason.USER_INITIATED
            return
        self._detach_transport()
        self._transition_closed(CloseReason.USER_INITIATED)

    def reconnect(self) -> None:
        """Manual reconnect: reset the policy and start over."""
        self.policy.reset()
        self._exhausted_reported = False
        self.connect()

    def shutdown(self) -> None:
        """Tear down completely and return to IDLE."""
        self.close()
        self.policy.reset()
        self._exhausted_reported = False
        self._close_reason = None
        self._set_state(ConnectionState.IDLE)

    # --- Transport callbacks ---

    def _handle_open(self, epoch: int) -> None:
        if self._is_stale(epoch, "open"):
            return
        if self._state is not ConnectionState.CONNECTING:
            return
        self._set_state(ConnectionState.OPEN)
        self.policy.reset()
        self._exhausted_reported = False
        logger.info("Connected to %s (epoch %d)", self.url, epoch)
        self._emit(StatusKind.CONNECTED)

    def _handle_message(self, epoch: int, chunk: Chunk) -> None:
        if self._is_stale(epoch, "message"):
            return
        if self._state is not ConnectionState.OPEN:
            return
        if self._on_chunk is not None:
            self._deliver(self._on_chunk, chunk)

    def _handle_error(self, epoch: int, info: str) -> None:
        if self._is_stale(epoch, "error"):
            return
        if self._state in (ConnectionState.CLOSED, ConnectionState.IDLE):
            return
        logger.warning("Transport error on %s: %s", self.url, info)
        self._emit(StatusKind.ERROR, message=info)

    def _handle_close(self, epoch: int) -> None:
        if self._is_stale(epoch, "close"):
            return
        if self._state in (ConnectionState.CLOSED, ConnectionState.IDLE):
            return
        self._transport = None
        logger.info("Connection to %s closed (epoch %d)", self.url, epoch)
        self._transition_closed(CloseReason.NETWORK)

    # --- Internals ---

    def _transition_closed(self, reason: CloseReason) -> None:
        self._set_state(ConnectionState.CLOSED)
        self._close_reason = reason
        self._emit(StatusKind.DISCONNECTED, reason=reason)

        if reason is not CloseReason.NETWORK:
            return

        if self.policy.exhausted:
            if not self._exhausted_reported:
                self._exhausted_reported = True
                error = RetryExhausted(self.policy.max_attempts)
                logger.error("%s: giving up on %s", error, self.url)
                self._emit(StatusKind.EXHAUSTED, message=str(error))
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Nothing can fire a retry timer: give up without using an attempt
            if not self._exhausted_reported:
                self._exhausted_reported = True
                logger.error("No running event loop; cannot reconnect to %s", self.url)
                self._emit(
                    StatusKind.EXHAUSTED,
                    message="No running event loop; cannot reconnect",
                )
            return

        delay = self.policy.next_attempt()
        self._emit(StatusKind.RECONNECTING, delay=delay)
        self._schedule_retry(loop, delay)

    def _schedule_retry(self, loop: asyncio.AbstractEventLoop, delay: float) -> None:
        self._cancel_retry()
        self._retry = loop.call_later(delay, self._fire_retry, self._epoch)

    def _fire_retry(self, epoch: int) -> None:
        self._retry = None
        if (
            epoch != self._epoch
            or self._state is not ConnectionState.CLOSED
            or self._close_reason is not CloseReason.NETWORK
        ):
            logger.debug("Discarding stale reconnect timer (epoch %d)", epoch)
            return
        self.connect()

    def _cancel_retry(self) -> None:
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None

    def _detach_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.close()
        except Exception:
            logger.exception("Error closing transport for %s", self.url)

    def _is_stale(self, epoch: int, what: str) -> bool:
        if epoch != self._epoch:
            logger.debug(
                "Ignoring stale %s callback (epoch %d, current %d)",
                what,
                epoch,
                self._epoch,
            )
            return True
        return False

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug("Connection state: %s -> %s", self._state, state)
        self._state = state

    def _emit(self, kind: StatusKind, **kwargs: Any) -> None:
        if self._on_status is None:
            return
        event = StatusEvent(
            kind=kind,
            epoch=self._epoch,
            attempt=self.policy.attempt,
            max_attempts=self.policy.max_attempts,
            url=self.url,
            **kwargs,
        )
        self._deliver(self._on_status, event)

    def _deliver(self, callback: Callable[[Any], None], arg: Any) -> None:
        try:
            callback(arg)
        except Exception:
            logger.exception("Error in connection callback %s", callback)
