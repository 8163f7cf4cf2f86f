"""Error types for wsterm.

None of these are meant to escape the session core: the connection state
machine and the session client convert them into status events.
"""

from __future__ import annotations


class WstermError(Exception):
    """Base class for all wsterm errors."""


class TransportConstructionFailure(WstermError):
    """Creating the transport failed synchronously (bad URL, no event loop)."""


class TransportRuntimeError(WstermError):
    """The transport failed after it was created.

    Reported through ``on_error`` and always followed by a close
    notification; never fatal on its own.
    """

    def __init__(self, cause: BaseException) -> None:
        name = type(cause).__name__
        super().__init__(f"{name}: {cause}" if str(cause) else name)
        self.__cause__ = cause


class RetryExhausted(WstermError):
    """The reconnect policy ran out of attempts."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Max reconnection attempts reached ({attempts})")
        self.attempts = attempts


class EncodeError(WstermError, ValueError):
    """An input event could not be encoded into an outbound frame."""
