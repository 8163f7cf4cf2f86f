"""Connection states and the status events the state machine emits."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ConnectionState(enum.StrEnum):
    """Lifecycle states for a connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class CloseReason(enum.StrEnum):
    """Why a connection reached CLOSED. Only NETWORK closes are retried."""

    NETWORK = "network"
    USER_INITIATED = "user_initiated"


class StatusKind(enum.StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"
    ERROR = "error"


@dataclass(frozen=True)
class StatusEvent:
    """A lifecycle notification from the connection state machine."""

    kind: StatusKind
    epoch: int = 0
    attempt: int = 0
    max_attempts: int = 0
    delay: float | None = None  # seconds until the next attempt (RECONNECTING)
    reason: CloseReason | None = None  # DISCONNECTED only
    message: str = ""
    url: str = ""

    @property
    def connected(self) -> bool:
        return self.kind is StatusKind.CONNECTED
