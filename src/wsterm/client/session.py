"""Session client — wires input, the connection, and the display together."""

from __future__ import annotations

import codecs
import logging
from typing import TYPE_CHECKING, Callable

from wsterm.client.sinks import ERROR, INFO, DisplaySink, StatusReporter
from wsterm.connection.machine import ConnectionStateMachine
from wsterm.connection.policy import ReconnectPolicy
from wsterm.connection.state import CloseReason, ConnectionState, StatusEvent, StatusKind
from wsterm.protocol.encoder import InputEvent, InputMode, LineBuffer, Submit, encode
from wsterm.transport.base import Chunk, TransportFactory
from wsterm.transport.websocket import websocket_factory

if TYPE_CHECKING:
    from wsterm.config import WstermConfig

logger = logging.getLogger(__name__)

_MODE_HINTS: dict[InputMode, str] = {
    InputMode.RAW: "[INFO] Keys are sent as typed; the remote shell echoes them\n",
    InputMode.LINE: "[INFO] Type a command and press Enter to execute\n",
}


class SessionClient:
    """One terminal session against a remote shell.

    * input events are encoded (raw mode) or fed to the local line buffer
      (line mode) and sent through the connection state machine
    * inbound chunks are appended to the display, followed by a scroll
      request, one chunk at a time
    * connection status events are mirrored into the status reporter and
      as info/error lines on the display

    Encoding and send failures are logged and reported; they never
    propagate to the input source or the display.
    """

    def __init__(
        self,
        url: str,
        display: DisplaySink,
        status: StatusReporter,
        mode: InputMode = InputMode.RAW,
        policy: ReconnectPolicy | None = None,
        transport_factory: TransportFactory | None = None,
        on_line_change: Callable[[str], None] | None = None,
    ) -> None:
        self.mode = mode
        self._display = display
        self._status = status
        self._line = LineBuffer()
        self._on_line_change = on_line_change
        self._phase = "Idle"
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.machine = ConnectionStateMachine(
            url,
            transport_factory or websocket_factory(),
            policy=policy,
            on_status=self._on_status_event,
            on_chunk=self._on_chunk,
        )

    @classmethod
    def from_config(
        cls,
        config: WstermConfig,
        display: DisplaySink,
        status: StatusReporter,
        on_line_change: Callable[[str], None] | None = None,
    ) -> SessionClient:
        policy = ReconnectPolicy(
            max_attempts=config.reconnect.max_attempts,
            base_delay=config.reconnect.base_delay,
            max_delay=config.reconnect.max_delay,
        )
        factory = websocket_factory(
            open_timeout=config.connection.open_timeout,
            binary=config.connection.binary_frames,
        )
        return cls(
            config.connection.endpoint,
            display,
            status,
            mode=config.input.mode,
            policy=policy,
            transport_factory=factory,
            on_line_change=on_line_change,
        )

    # --- Properties ---

    @property
    def url(self) -> str:
        return self.machine.url

    @property
    def state(self) -> ConnectionState:
        return self.machine.state

    @property
    def connected(self) -> bool:
        return self.machine.is_open

    @property
    def line(self) -> str:
        """Current contents of the local line buffer (line mode)."""
        return self._line.text

    # --- Lifecycle ---

    def start(self) -> None:
        self.machine.connect()

    def reconnect(self) -> None:
        self.machine.reconnect()

    def stop(self) -> None:
        self.machine.close()

    def shutdown(self) -> None:
        self.machine.shutdown()

    def clear(self) -> None:
        self._display.clear()
        self._display.append("[INFO] Terminal cleared\n", INFO)

    # --- Input ---

    def handle_input(self, event: InputEvent) -> bool:
        """Process one input event. Returns True if a frame was sent."""
        try:
            if self.mode is InputMode.LINE:
                before = self._line.text
                frame = self._line.feed(event)
                if self._line.text != before or isinstance(event, Submit):
                    self._notify_line()
            else:
                frame = encode(event, InputMode.RAW)
            if frame is None:
                return False
            return self.machine.send(frame)
        except Exception as e:
            logger.exception("Failed to encode input event %r", event)
            self._on_status_event(
                StatusEvent(
                    kind=StatusKind.ERROR,
                    epoch=self.machine.epoch,
                    message=f"Input error: {e}",
                    url=self.url,
                )
            )
            return False

    def _notify_line(self) -> None:
        if self._on_line_change is None:
            return
        try:
            self._on_line_change(self._line.text)
        except Exception:
            logger.exception("Error in line change callback")

    # --- Connection callbacks ---

    def _on_chunk(self, chunk: Chunk) -> None:
        try:
            if isinstance(chunk, bytes):
                text = self._decoder.decode(chunk)
            else:
                text = chunk
            if not text:
                return
            self._display.append(text)
            self._display.scroll_to_end()
        except Exception:
            logger.exception("Failed to render inbound chunk")

    def _on_status_event(self, event: StatusEvent) -> None:
        try:
            self._render_status(event)
        except Exception:
            logger.exception("Failed to report status %s", event.kind)

    def _report(self, connected: bool, phase: str) -> None:
        self._phase = phase
        self._status.update(connected, phase)

    def _render_status(self, event: StatusEvent) -> None:
        kind = event.kind
        if kind is StatusKind.CONNECTING:
            self._display.append(f"[INFO] Connecting to {event.url}...\n", INFO)
            self._report(False, "Connecting")
        elif kind is StatusKind.CONNECTED:
            self._decoder.reset()
            self._display.append("[INFO] Connected to remote shell\n", INFO)
            self._display.append(_MODE_HINTS[self.mode], INFO)
            self._report(True, "Connected")
        elif kind is StatusKind.DISCONNECTED:
            if event.reason is CloseReason.USER_INITIATED:
                self._display.append("[INFO] Disconnected\n", INFO)
            else:
                self._display.append("[INFO] Connection closed\n", INFO)
            self._report(False, "Disconnected")
        elif kind is StatusKind.RECONNECTING:
            progress = f"{event.attempt}/{event.max_attempts}"
            delay = f" in {event.delay:.1f}s" if event.delay is not None else ""
            self._display.append(f"[INFO] Reconnecting ({progress}){delay}...\n", INFO)
            self._report(False, f"Reconnecting ({progress})")
        elif kind is StatusKind.EXHAUSTED:
            if event.attempt >= event.max_attempts:
                self._display.append("[ERROR] Max reconnection attempts reached\n", ERROR)
            else:
                self._display.append(f"[ERROR] {event.message}\n", ERROR)
            self._report(False, "Gave up")
        elif kind is StatusKind.ERROR:
            message = event.message or "WebSocket error"
            self._display.append(f"[ERROR] {message}\n", ERROR)
            self._status.update(self.connected, f"{self._phase} (error)")
        self._display.scroll_to_end()
