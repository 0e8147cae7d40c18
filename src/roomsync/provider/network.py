"""Network connection lifecycle: connect, drop, back off, retry.

::

    DISCONNECTED --open()--> CONNECTING --on_open--> CONNECTED
         ^                       |                       |
         +------ on_close -------+------- on_close ------+
                 (schedule reconnect after the backoff delay,
                  unless the provider was told to disconnect)

At most one connection object is live at a time.  Events from a
connection that has since been replaced are ignored.

Backoff: the delay is ``min(2 ** unsuccessful_reconnects * 0.1,
max_backoff_time)`` seconds.  The counter grows only when a connection
dies before it ever opened, and resets on every successful open, so a
connection that keeps opening and then dropping retries after 100ms each
time.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

from roomsync.core.errors import TransportClosed
from roomsync.core.scheduler import Scheduler, TimerHandle
from roomsync.protocol.messages import AwarenessMessage
from roomsync.protocol.sync import sync_step1
from roomsync.transport.base import Connection, ConnectionFactory

if TYPE_CHECKING:
    from roomsync.provider.provider import Provider

logger = logging.getLogger(__name__)

DEFAULT_MAX_BACKOFF_TIME = 2.5
BASE_BACKOFF = 0.1


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def backoff_delay(unsuccessful_reconnects: int, max_backoff_time: float) -> float:
    """Seconds to wait before the next connection attempt."""
    return min(2**unsuccessful_reconnects * BASE_BACKOFF, max_backoff_time)


class NetworkConnection:
    """Owns the provider's single network connection and its retry loop."""

    def __init__(
        self,
        provider: Provider,
        connection_factory: ConnectionFactory,
        scheduler: Scheduler,
        max_backoff_time: float = DEFAULT_MAX_BACKOFF_TIME,
    ) -> None:
        self.provider = provider
        self.connection_factory = connection_factory
        self.scheduler = scheduler
        self.max_backoff_time = max_backoff_time
        self.connection: Connection | None = None
        self.state = ConnectionState.DISCONNECTED
        self.unsuccessful_reconnects = 0
        self._reconnect_timers: set[TimerHandle] = set()

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def connecting(self) -> bool:
        return self.state is ConnectionState.CONNECTING

    @property
    def pending_reconnects(self) -> int:
        return len(self._reconnect_timers)

    def open(self) -> None:
        """Start a connection attempt unless one is already live.

        Safe to call at any time; stale reconnect timers land here too.
        """
        provider = self.provider
        if not provider.should_connect or self.connection is not None:
            return

        conn = self.connection_factory(provider.url)
        conn.on_open.connect(lambda: self._on_open(conn))
        conn.on_message.connect(lambda data: self._on_message(conn, data))
        conn.on_error.connect(lambda error: self._on_error(conn, error))
        conn.on_close.connect(lambda reason=None: self._on_close(conn, reason))

        self.connection = conn
        self.state = ConnectionState.CONNECTING
        provider.synced = False
        logger.info("roomsync: connecting to %s", provider.url)
        provider.on_status.emit({"status": ConnectionState.CONNECTING.value})
        conn.open()

    def close(self) -> None:
        """Ask the live connection to close.  Cleanup happens in ``_on_close``."""
        if self.connection is not None:
            self.connection.close()

    def send(self, data: bytes) -> None:
        if self.connected and self.connection is not None:
            self.connection.send(data)

    def cancel_reconnects(self) -> None:
        for timer in list(self._reconnect_timers):
            timer.cancel()
        self._reconnect_timers.clear()

    # -----------------------------------------------------------------------
    # Connection events
    # -----------------------------------------------------------------------

    def _on_open(self, conn: Connection) -> None:
        if conn is not self.connection:
            return
        provider = self.provider
        provider.liveness.touch()
        self.state = ConnectionState.CONNECTED
        self.unsuccessful_reconnects = 0
        logger.info("roomsync: connected to %s", provider.url)
        provider.on_status.emit({"status": ConnectionState.CONNECTED.value})

        conn.send(sync_step1(provider.doc).encode())
        awareness = provider.awareness
        if awareness.get_local_state() is not None:
            update = awareness.encode_update([provider.doc.client_id])
            conn.send(AwarenessMessage(update).encode())

    def _on_message(self, conn: Connection, data: bytes) -> None:
        if conn is not self.connection:
            return
        provider = self.provider
        provider.liveness.touch()
        reply = provider.dispatcher.dispatch(data, provider, emit_synced=True)
        if reply is not None:
            conn.send(reply)

    def _on_error(self, conn: Connection, error: Any) -> None:
        if conn is not self.connection:
            return
        logger.warning("roomsync: connection error on %s: %s", self.provider.url, error)
        self.provider.on_connection_error.emit(error, self.provider)

    def _on_close(self, conn: Connection, reason: Any) -> None:
        if conn is not self.connection:
            return
        provider = self.provider
        provider.on_connection_close.emit(TransportClosed(reason), provider)
        self.connection = None

        if self.connected:
            self.state = ConnectionState.DISCONNECTED
            provider.synced = False
            # Everyone else left, as far as this replica can tell.
            awareness = provider.awareness
            others = [cid for cid in awareness.get_states() if cid != provider.doc.client_id]
            awareness.remove_states(others, provider)
            logger.info("roomsync: disconnected from %s (%s)", provider.url, reason)
            provider.on_status.emit({"status": ConnectionState.DISCONNECTED.value})
        else:
            self.state = ConnectionState.DISCONNECTED
            self.unsuccessful_reconnects += 1

        if not provider.should_connect:
            return
        delay = backoff_delay(self.unsuccessful_reconnects, self.max_backoff_time)
        logger.debug("roomsync: next connection attempt in %.2fs", delay)
        self._schedule_reconnect(delay)

    def _schedule_reconnect(self, delay: float) -> None:
        timer: TimerHandle | None = None

        def reconnect() -> None:
            self._reconnect_timers.discard(timer)
            self.open()

        timer = self.scheduler.call_later(delay, reconnect)
        self._reconnect_timers.add(timer)
