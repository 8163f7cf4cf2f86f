"""Wire protocol — decouples the session core from the UI.

The session client writes display and status updates to the wire; a front
end (Textual TUI, plain CLI) subscribes and renders them. Events reach each
subscriber in the order they were sent.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    OUTPUT = "output"
    CLEAR = "clear"
    SCROLL = "scroll"
    STATUS = "status"
    LINE = "line"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: session -> UI subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_output(self, text: str, style: str | None = None) -> None:
        self.send(WireEvent(type=EventType.OUTPUT, data={"text": text, "style": style}))

    def send_clear(self) -> None:
        self.send(WireEvent(type=EventType.CLEAR))

    def send_scroll(self) -> None:
        self.send(WireEvent(type=EventType.SCROLL))

    def send_status(self, connected: bool, phase: str) -> None:
        self.send(
            WireEvent(
                type=EventType.STATUS,
                data={"connected": connected, "phase": phase},
            )
        )

    def send_line(self, text: str) -> None:
        """Report the current contents of the local line buffer."""
        self.send(WireEvent(type=EventType.LINE, data={"text": text}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
