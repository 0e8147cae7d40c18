"""WebSocket connection built on the ``websockets`` library.

One reader task owns the socket for its whole life and turns it into
connection events; a writer task drains an ordered outbox so frames leave
in exactly the order they were queued.  Everything runs on the asyncio
loop the connection was opened from.
"""

from __future__ import annotations

import asyncio
import logging

import websockets

from roomsync.core.errors import TransportError
from roomsync.transport.base import Connection

logger = logging.getLogger(__name__)

DEFAULT_OPEN_TIMEOUT = 10.0
DEFAULT_MAX_SIZE = 100 * 1024 * 1024  # 100MB


class WebsocketConnection(Connection):
    """A single WebSocket session.  Build a new one to reconnect."""

    def __init__(
        self,
        url: str,
        *,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        max_size: int = DEFAULT_MAX_SIZE,
    ) -> None:
        super().__init__(url)
        self.open_timeout = open_timeout
        self.max_size = max_size
        self._ws = None
        self._task: asyncio.Task[None] | None = None
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._pending: set[asyncio.Task[None]] = set()
        self._closing = False
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closing

    def open(self) -> None:
        if self._task is not None or self._closing:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, data: bytes) -> None:
        if self._closing or self._closed:
            logger.warning("roomsync: dropping %d byte frame, connection to %s is closed", len(data), self.url)
            return
        self._outbox.put_nowait(bytes(data))

    def close(self) -> None:
        if self._closing or self._closed:
            return
        self._closing = True
        if self._task is None:
            self._finish("closed before open")
        elif self._ws is not None:
            task = asyncio.get_running_loop().create_task(self._ws.close())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            self._task.cancel()

    async def _run(self) -> None:
        reason = "connection closed"
        try:
            async with websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                max_size=self.max_size,
            ) as ws:
                self._ws = ws
                logger.info("roomsync: connected to %s", self.url)
                self.on_open.emit()
                writer = asyncio.create_task(self._write(ws))
                try:
                    async for message in ws:
                        if isinstance(message, str):
                            message = message.encode("utf-8")
                        self.on_message.emit(bytes(message))
                finally:
                    writer.cancel()
                reason = f"closed with code {ws.close_code}"
        except asyncio.CancelledError:
            reason = "cancelled"
            raise
        except websockets.exceptions.ConnectionClosedOK as exc:
            reason = str(exc)
        except websockets.exceptions.ConnectionClosed as exc:
            reason = str(exc)
            self.on_error.emit(TransportError(reason))
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as exc:
            reason = str(exc) or type(exc).__name__
            error = TransportError(f"Could not reach {self.url}: {reason}")
            error.__cause__ = exc
            self.on_error.emit(error)
        finally:
            self._finish(reason)

    async def _write(self, ws) -> None:
        while True:
            data = await self._outbox.get()
            try:
                await ws.send(data)
            except websockets.exceptions.ConnectionClosed:
                return

    def _finish(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        self._ws = None
        logger.info("roomsync: connection to %s closed (%s)", self.url, reason)
        self.on_close.emit(reason)
