"""Keep a shared document and its awareness in sync with a room.

roomsync connects a shared document to a relay over WebSocket,
reconnecting with exponential backoff, and mirrors the same traffic to
other replicas in the process through a local channel.
"""

from __future__ import annotations

from roomsync.crdt.awareness import Awareness
from roomsync.protocol.messages import MessageKind
from roomsync.provider.network import ConnectionState
from roomsync.provider.provider import Provider

__version__ = "0.1.0"

__all__ = [
    "Awareness",
    "ConnectionState",
    "MessageKind",
    "Provider",
]
