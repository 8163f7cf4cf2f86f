"""Transports — the frame streams the connection state machine drives."""

from wsterm.transport.base import Chunk, Transport, TransportFactory, TransportHandlers
from wsterm.transport.websocket import WebSocketTransport, websocket_factory

__all__ = [
    "Chunk",
    "Transport",
    "TransportFactory",
    "TransportHandlers",
    "WebSocketTransport",
    "websocket_factory",
]
