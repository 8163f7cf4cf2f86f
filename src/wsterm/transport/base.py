"""Transport contract consumed by the connection state machine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

Chunk = str | bytes


def _noop(*args: object) -> None:
    return None


@dataclass
class TransportHandlers:
    """Lifecycle callbacks a transport reports through.

    ``on_error`` is always followed by ``on_close``.
    """

    on_open: Callable[[], None] = _noop
    on_message: Callable[[Chunk], None] = _noop
    on_error: Callable[[str], None] = _noop
    on_close: Callable[[], None] = _noop


@runtime_checkable
class Transport(Protocol):
    """A full-duplex frame stream.

    Opening starts when the transport is created; the outcome is reported
    through the handlers.
    """

    def send(self, frame: bytes) -> None:
        """Queue one frame for transmission. Valid only once open."""
        ...

    def close(self) -> None:
        """Close the stream. No handlers fire afterwards."""
        ...


TransportFactory = Callable[[str, TransportHandlers], Transport]
