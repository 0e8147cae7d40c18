"""Mirror protocol traffic across same-device replicas.

Replicas of one document share a :class:`~roomsync.transport.local.LocalChannel`
named after the server URL and room.  Everything published here is tagged
with the provider's origin ID, and the subscriber drops frames carrying
its own tag, so a replica never re-processes its own broadcasts.

Frames received here never flip the synced flag: "synced" is defined
relative to the network peer only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from roomsync.protocol.messages import AwarenessMessage, QueryAwarenessMessage
from roomsync.protocol.sync import sync_step1, sync_step2
from roomsync.transport.local import LocalChannel

if TYPE_CHECKING:
    from roomsync.provider.provider import Provider

logger = logging.getLogger(__name__)


class LocalChannelSync:
    """Subscribes one provider to its local channel."""

    def __init__(
        self,
        provider: Provider,
        channel: LocalChannel,
        name: str,
        disabled: bool = False,
    ) -> None:
        self.provider = provider
        self.channel = channel
        self.name = name
        self.disabled = disabled
        self.connected = False

    def connect(self) -> None:
        """Subscribe (once) and run the four-frame handshake."""
        if self.disabled:
            return
        if not self.connected:
            self.channel.subscribe(self.name, self._on_message)
            self.connected = True
            logger.debug("roomsync: joined local channel %s", self.name)

        provider = self.provider
        doc = provider.doc
        self.publish(sync_step1(doc).encode())
        self.publish(sync_step2(doc).encode())
        self.publish(QueryAwarenessMessage().encode())
        update = provider.awareness.encode_update([doc.client_id])
        self.publish(AwarenessMessage(update).encode())

    def disconnect(self) -> None:
        """Announce departure on every active channel and unsubscribe.

        The subscription goes first, so peers' rebroadcasts of the removal
        never reach this replica (which would re-announce itself).
        """
        provider = self.provider
        update = provider.awareness.encode_update([provider.doc.client_id], states={})
        departure = AwarenessMessage(update).encode()
        provider.network.send(departure)
        if self.connected:
            self.channel.unsubscribe(self.name, self._on_message)
            self.connected = False
            self.publish(departure)

    def publish(self, data: bytes) -> None:
        self.channel.publish(self.name, data, self.provider.origin_id)

    def _on_message(self, data: bytes, origin: str) -> None:
        if origin == self.provider.origin_id:
            return
        reply = self.provider.dispatcher.dispatch(data, self.provider, emit_synced=False)
        if reply is not None:
            self.publish(reply)
