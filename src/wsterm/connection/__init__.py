"""Connection lifecycle — state machine, reconnect policy, status events."""

from wsterm.connection.machine import ConnectionStateMachine
from wsterm.connection.policy import ReconnectPolicy
from wsterm.connection.state import (
    CloseReason,
    ConnectionState,
    StatusEvent,
    StatusKind,
)

__all__ = [
    "ConnectionStateMachine",
    "ReconnectPolicy",
    "CloseReason",
    "ConnectionState",
    "StatusEvent",
    "StatusKind",
]
