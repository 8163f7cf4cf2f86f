"""wsterm — terminal session client for a remote shell over WebSocket."""

__version__ = "0.1.0"
