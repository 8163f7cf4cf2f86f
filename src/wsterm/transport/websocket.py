"""WebSocket transport built on the ``websockets`` asyncio client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    InvalidURI,
    WebSocketException,
)
from websockets.uri import parse_uri

from wsterm.errors import TransportConstructionFailure, TransportRuntimeError
from wsterm.transport.base import TransportHandlers

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 256 * 1024


class WebSocketTransport:
    """A WebSocket connection reporting its lifecycle through handlers.

    The URL is validated synchronously; the opening handshake runs in a
    background task. Outbound frames go through a queue drained by a writer
    task, so ``send()`` never blocks and frames go out whole and in order.

    Frames are sent as text messages (decoded as UTF-8) unless ``binary``
    is set. Inbound messages are passed on untouched (``str`` or ``bytes``).
    """

    def __init__(
        self,
        url: str,
        handlers: TransportHandlers,
        open_timeout: float = 10.0,
        binary: bool = False,
    ) -> None:
        try:
            parse_uri(url)
        except InvalidURI as e:
            raise TransportConstructionFailure(f"Invalid URL {url!r}: {e}") from e
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise TransportConstructionFailure("No running event loop") from e

        self.url = url
        self._handlers = handlers
        self._open_timeout = open_timeout
        self._binary = binary
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._closed = False
        self._write_error: TransportRuntimeError | None = None
        self._task = loop.create_task(self._run())

    def send(self, frame: bytes) -> None:
        if self._closed:
            logger.debug("Dropping frame on closed transport (%d bytes)", len(frame))
            return
        self._outbox.put_nowait(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()

    @property
    def closed(self) -> bool:
        return self._closed

    async def _run(self) -> None:
        error: TransportRuntimeError | None = None
        try:
            async with websockets.connect(
                self.url,
                open_timeout=self._open_timeout,
                close_timeout=5,
                max_size=MAX_MESSAGE_SIZE,
            ) as ws:
                logger.info("WebSocket open: %s", self.url)
                self._emit(self._handlers.on_open)
                writer = asyncio.create_task(self._write_loop(ws))
                writer.add_done_callback(self._writer_done)
                try:
                    async for message in ws:
                        self._emit(self._handlers.on_message, message)
                finally:
                    writer.cancel()
        except ConnectionClosedOK:
            pass
        except (WebSocketException, OSError, TimeoutError) as e:
            error = TransportRuntimeError(e)
            logger.warning("WebSocket error on %s: %s", self.url, error)
        finally:
            if not self._closed:
                self._closed = True
                error = error or self._write_error
                if error is not None:
                    self._emit(self._handlers.on_error, str(error))
                logger.info("WebSocket closed: %s", self.url)
                self._emit(self._handlers.on_close)

    async def _write_loop(self, ws: Any) -> None:
        try:
            while True:
                frame = await self._outbox.get()
                if self._binary:
                    await ws.send(frame)
                else:
                    await ws.send(frame.decode("utf-8", errors="replace"))
        except ConnectionClosed:
            # The reader sees the close and reports it
            return

    def _writer_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        # Outbound frames can no longer be sent; close the connection
        self._write_error = TransportRuntimeError(task.exception())
        logger.error(
            "WebSocket writer for %s failed: %s", self.url, self._write_error
        )
        if not self._closed:
            self._task.cancel()

    def _emit(self, handler: Callable[..., None], *args: Any) -> None:
        try:
            handler(*args)
        except Exception:
            logger.exception("Error in transport handler %s", handler)


def websocket_factory(
    open_timeout: float = 10.0, binary: bool = False
) -> Callable[[str, TransportHandlers], WebSocketTransport]:
    """Create a transport factory for the connection state machine."""

    def factory(url: str, handlers: TransportHandlers) -> WebSocketTransport:
        return WebSocketTransport(
            url, handlers, open_timeout=open_timeout, binary=binary
        )

    return factory
