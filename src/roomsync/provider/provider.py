"""Keep a shared document and its awareness in sync with a room.

The provider wires four pieces together:

* document/awareness subscriptions that turn local changes into frames;
* the :class:`NetworkConnection` state machine (connect, back off, retry);
* the :class:`LocalChannelSync` mirror for same-device replicas;
* the :class:`LivenessMonitor` plus the resync and heartbeat tickers.

Outbound frames fan out to whichever channels are active.  Replies to
inbound frames go back only on the channel they arrived from, and
updates the provider applied itself (origin ``self``) are never
re-broadcast, so neither channel can feed back into the other.

Usage (inside a running event loop)::

    doc = AutomergeDocument()
    provider = Provider("ws://localhost:1234", "doc-1", doc)
    provider.on_synced.connect(lambda synced: print("synced:", synced))
    with doc.change() as d:
        d["title"] = "Hello"
    ...
    provider.destroy()
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import urlencode

from roomsync.config import ProviderConfig, default_provider_config, validate_provider_config
from roomsync.core.errors import PermissionDenied
from roomsync.core.ids import generate_origin_id
from roomsync.core.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from roomsync.core.signals import Signal
from roomsync.crdt.awareness import Awareness
from roomsync.protocol.dispatcher import Dispatcher
from roomsync.protocol.messages import AwarenessMessage, CustomMessage
from roomsync.protocol.sync import sync_step1, sync_update
from roomsync.provider.liveness import DEFAULT_RECONNECT_TIMEOUT, LivenessMonitor
from roomsync.provider.local_sync import LocalChannelSync
from roomsync.provider.network import DEFAULT_MAX_BACKOFF_TIME, NetworkConnection
from roomsync.transport.base import ConnectionFactory
from roomsync.transport.local import LocalChannel, default_local_channel

logger = logging.getLogger(__name__)


class SharedDocument(Protocol):
    """What the provider needs from the application's document."""

    client_id: int
    on_update: Signal

    def encode_state_vector(self) -> bytes: ...

    def encode_state_as_update(self, state_vector: bytes = b"") -> bytes: ...

    def apply_update(self, update: bytes, origin: Any = None) -> None: ...


def _websocket_factory(url: str):
    from roomsync.transport.websocket import WebsocketConnection

    return WebsocketConnection(url)


class Provider:
    """Synchronizes *doc* (and its awareness) with the room *room* on *server_url*.

    Args:
        server_url: Relay base URL, e.g. ``ws://localhost:1234``.  Trailing
            slashes are ignored.
        room: Room name appended to the URL.
        doc: The shared document.  Referenced, not owned.
        awareness: Presence store; one is created for ``doc.client_id`` if omitted.
        connect: Connect immediately.
        params: Query parameters added to the connection URL.
        resync_interval: Seconds between STEP1 re-requests; ``<= 0`` disables.
        max_backoff_time: Ceiling for the reconnect delay, in seconds.
        disable_local_channel: Do not mirror traffic to same-device replicas.
        reconnect_timeout: Seconds of network silence before the connection
            is presumed dead.
        scheduler: Timer source; an asyncio scheduler by default.
        connection_factory: Builds a connection for a URL; WebSocket by default.
        local_channel: Channel shared with other replicas; the process-wide
            channel by default.

    Signals:
        on_status: ``({"status": "connecting" | "connected" | "disconnected"},)``
        on_synced: ``(synced: bool)`` whenever the synced flag changes.
        on_connection_error: ``(error, provider)``
        on_connection_close: ``(TransportClosed, provider)``
        on_custom_message: ``(target, payload)``
        on_permission_denied: ``(PermissionDenied,)``
    """

    def __init__(
        self,
        server_url: str,
        room: str,
        doc: SharedDocument,
        *,
        awareness: Awareness | None = None,
        connect: bool = True,
        params: dict[str, str] | None = None,
        resync_interval: float = -1,
        max_backoff_time: float = DEFAULT_MAX_BACKOFF_TIME,
        disable_local_channel: bool = False,
        reconnect_timeout: float = DEFAULT_RECONNECT_TIMEOUT,
        scheduler: Scheduler | None = None,
        connection_factory: ConnectionFactory | None = None,
        local_channel: LocalChannel | None = None,
    ) -> None:
        server_url = server_url.rstrip("/")
        query = urlencode(params or {})
        self.server_url = server_url
        self.room = room
        self.url = f"{server_url}/{room}" + (f"?{query}" if query else "")
        self.doc = doc
        self.awareness = awareness if awareness is not None else Awareness(doc.client_id)
        self.origin_id = generate_origin_id()
        self.should_connect = connect
        self.scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self.dispatcher = Dispatcher()
        self._synced = False
        self._destroyed = False

        self.on_status = Signal("status")
        self.on_synced = Signal("synced")
        self.on_connection_error = Signal("connection-error")
        self.on_connection_close = Signal("connection-close")
        self.on_custom_message = Signal("custom-message")
        self.on_permission_denied = Signal("permission-denied")

        self.network = NetworkConnection(
            self,
            connection_factory or _websocket_factory,
            self.scheduler,
            max_backoff_time,
        )
        self.local = LocalChannelSync(
            self,
            local_channel if local_channel is not None else default_local_channel(),
            f"{server_url}/{room}",
            disabled=disable_local_channel,
        )
        self.liveness = LivenessMonitor(
            self.scheduler,
            lambda: self.network.connected,
            self.network.close,
            reconnect_timeout,
        )

        self._heartbeat_interval = reconnect_timeout / 2
        self._resync_interval = resync_interval
        self._timers: list[TimerHandle] = []

        self.doc.on_update.connect(self._on_document_update)
        self.awareness.on_update.connect(self._on_awareness_update)

        if connect:
            self.connect()

    @classmethod
    def from_config(
        cls,
        server_url: str,
        room: str,
        doc: SharedDocument,
        config: ProviderConfig | None = None,
        **collaborators: Any,
    ) -> Provider:
        """Build a provider from a (partial) :class:`ProviderConfig`.

        *collaborators* are passed through (``awareness``, ``scheduler``,
        ``connection_factory``, ``local_channel``).
        """
        merged = default_provider_config()
        if config:
            validate_provider_config(dict(config))
            merged.update(config)
        return cls(server_url, room, doc, **merged, **collaborators)

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    @property
    def synced(self) -> bool:
        return self._synced

    @synced.setter
    def synced(self, state: bool) -> None:
        if self._synced != state:
            self._synced = state
            self.on_synced.emit(state)

    @property
    def status(self) -> str:
        return self.network.state.value

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def connect(self) -> None:
        """Connect to the room.  No-op while connecting or connected.

        The provider's timers are armed here on first use, so with the
        default scheduler this must run inside the event loop.
        """
        if self._destroyed:
            raise RuntimeError("Provider has been destroyed")
        self.should_connect = True
        self._start_timers()
        if not self.network.connected and self.network.connection is None:
            self.network.open()
        # A close still in flight leaves the network to the reconnect timer.
        if not self.local.connected:
            self.local.connect()

    def _start_timers(self) -> None:
        if self.liveness.running:
            return
        self.liveness.start()
        self._timers.append(self.scheduler.call_every(self._heartbeat_interval, self.awareness.renew_local_state))
        if self._resync_interval > 0:
            self._timers.append(self.scheduler.call_every(self._resync_interval, self._resync))

    def disconnect(self) -> None:
        """Close both channels.  No reconnect follows until ``connect()``."""
        self.should_connect = False
        self.local.disconnect()
        self.network.close()

    def shutdown(self) -> None:
        """Announce that the local participant is leaving.

        The hosting application calls this when its process or window goes
        away, e.g. ``atexit.register(provider.shutdown)``.
        """
        self.awareness.remove_states([self.doc.client_id], "shutdown")

    def destroy(self) -> None:
        """Stop every timer, disconnect, and detach from the document."""
        if self._destroyed:
            return
        self._destroyed = True
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
        self.liveness.stop()
        self.disconnect()
        self.network.cancel_reconnects()
        self.awareness.on_update.disconnect(self._on_awareness_update)
        self.doc.on_update.disconnect(self._on_document_update)

    # -----------------------------------------------------------------------
    # Outbound
    # -----------------------------------------------------------------------

    def broadcast(self, data: bytes) -> None:
        """Send a frame on every active channel."""
        if self.network.connected:
            self.network.send(data)
        if self.local.connected:
            self.local.publish(data)

    def send_custom_message(self, target: str, payload: str) -> None:
        """Send an application message to *target* over the network."""
        if not self.network.connected:
            logger.debug("roomsync: not connected, dropping custom message for %s", target)
            return
        self.network.send(CustomMessage(target, payload).encode())

    def _resync(self) -> None:
        if self.network.connected:
            self.network.send(sync_step1(self.doc).encode())

    def _on_document_update(self, update: bytes, origin: Any) -> None:
        if origin is not self:
            self.broadcast(sync_update(update).encode())

    def _on_awareness_update(self, changes: dict[str, list[int]], origin: Any) -> None:
        changed = changes["added"] + changes["updated"] + changes["removed"]
        self.broadcast(AwarenessMessage(self.awareness.encode_update(changed)).encode())

    # -----------------------------------------------------------------------
    # Dispatch context
    # -----------------------------------------------------------------------

    def permission_denied(self, reason: str) -> None:
        logger.warning("roomsync: permission denied to access %s.\n%s", self.url, reason)
        self.on_permission_denied.emit(PermissionDenied(reason))

    def custom_message(self, target: str, payload: str) -> None:
        self.on_custom_message.emit(target, payload)
