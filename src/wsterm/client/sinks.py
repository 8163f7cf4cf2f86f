"""Display sink and status reporter interfaces, plus their Wire adapter."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from wsterm.session.wire import Wire

INFO = "info"
ERROR = "error"


@runtime_checkable
class DisplaySink(Protocol):
    """Where shell output and client messages are rendered.

    ``style`` is ``"info"``, ``"error"`` or None for plain shell output.
    """

    def append(self, text: str, style: str | None = None) -> None: ...

    def clear(self) -> None: ...

    def scroll_to_end(self) -> None: ...


@runtime_checkable
class StatusReporter(Protocol):
    """Two-part connection indicator: connected flag plus a phase string."""

    def update(self, connected: bool, phase: str) -> None: ...


class WireDisplay:
    """DisplaySink and StatusReporter that forward everything onto a Wire."""

    def __init__(self, wire: Wire) -> None:
        self._wire = wire

    def append(self, text: str, style: str | None = None) -> None:
        self._wire.send_output(text, style)

    def clear(self) -> None:
        self._wire.send_clear()

    def scroll_to_end(self) -> None:
        self._wire.send_scroll()

    def update(self, connected: bool, phase: str) -> None:
        self._wire.send_status(connected, phase)

    def line_changed(self, text: str) -> None:
        self._wire.send_line(text)
