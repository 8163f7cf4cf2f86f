"""Session client and the display/status interfaces it talks to."""

from wsterm.client.session import SessionClient
from wsterm.client.sinks import DisplaySink, StatusReporter, WireDisplay

__all__ = [
    "SessionClient",
    "DisplaySink",
    "StatusReporter",
    "WireDisplay",
]
