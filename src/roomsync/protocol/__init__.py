"""Wire protocol: message codec, document sync steps, and dispatch."""

from __future__ import annotations

from roomsync.protocol.dispatcher import Dispatcher
from roomsync.protocol.messages import (
    AuthMessage,
    AuthOutcome,
    AwarenessMessage,
    CustomMessage,
    Message,
    MessageKind,
    QueryAwarenessMessage,
    SyncMessage,
    SyncStep,
    decode_message,
    encode_message,
)

__all__ = [
    "AuthMessage",
    "AuthOutcome",
    "AwarenessMessage",
    "CustomMessage",
    "Dispatcher",
    "Message",
    "MessageKind",
    "QueryAwarenessMessage",
    "SyncMessage",
    "SyncStep",
    "decode_message",
    "encode_message",
]
