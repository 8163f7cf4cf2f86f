"""Shared fakes for wsterm tests: a scriptable transport and a recording display."""

from __future__ import annotations

import pytest

from wsterm.errors import TransportConstructionFailure
from wsterm.transport.base import Chunk, TransportHandlers


class FakeTransport:
    """Transport whose lifecycle is driven by the test."""

    def __init__(self, url: str, handlers: TransportHandlers) -> None:
        self.url = url
        self.handlers = handlers
        self.sent: list[bytes] = []
        self.closed = False
        self.fail_send = False

    def send(self, frame: bytes) -> None:
        if self.fail_send:
            raise ConnectionError("socket gone")
        self.sent.append(frame)

    def close(self) -> None:
        self.closed = True

    # --- Driving helpers ---

    def open(self) -> None:
        self.handlers.on_open()

    def receive(self, chunk: Chunk) -> None:
        self.handlers.on_message(chunk)

    def error(self, info: str = "boom") -> None:
        self.handlers.on_error(info)

    def drop(self) -> None:
        self.handlers.on_close()


class FakeTransportFactory:
    """Records every transport it creates; can be told to fail."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.fail_next = 0

    def __call__(self, url: str, handlers: TransportHandlers) -> FakeTransport:
        if self.fail_next:
            self.fail_next -= 1
            raise TransportConstructionFailure("cannot create transport")
        transport = FakeTransport(url, handlers)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class RecordingDisplay:
    """DisplaySink + StatusReporter that records every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.statuses: list[tuple[bool, str]] = []

    def append(self, text: str, style: str | None = None) -> None:
        self.calls.append(("append", text, style))

    def clear(self) -> None:
        self.calls.append(("clear",))

    def scroll_to_end(self) -> None:
        self.calls.append(("scroll",))

    def update(self, connected: bool, phase: str) -> None:
        self.statuses.append((connected, phase))

    # --- Inspection helpers ---

    @property
    def appended(self) -> list[tuple[str, str | None]]:
        return [(c[1], c[2]) for c in self.calls if c[0] == "append"]

    @property
    def text(self) -> str:
        return "".join(text for text, _ in self.appended)

    @property
    def scrolls(self) -> int:
        return sum(1 for c in self.calls if c[0] == "scroll")

    def reset(self) -> None:
        self.calls.clear()
        self.statuses.clear()


@pytest.fixture
def factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def display() -> RecordingDisplay:
    return RecordingDisplay()
