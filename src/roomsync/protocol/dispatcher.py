"""Route decoded frames to per-kind handlers.

The dispatcher never sends anything itself.  It applies the frame to the
document/awareness held by its context and returns the reply bytes, if
any; the caller decides which channel the reply goes back on.

Failures are contained here: a malformed frame or an unknown tag is
logged and produces no reply, so one bad frame can never take down a
connection.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, Protocol

from roomsync.core.errors import MalformedMessage, UnknownMessageKind
from roomsync.protocol.messages import (
    AuthMessage,
    AwarenessMessage,
    CustomMessage,
    MessageKind,
    QueryAwarenessMessage,
    SyncMessage,
    SyncStep,
    decode_message,
)
from roomsync.protocol.sync import SyncDocument, apply_sync_message

logger = logging.getLogger(__name__)

# A reply holding nothing but its tag carries no information.
MIN_REPLY_LENGTH = 2


class AwarenessStore(Protocol):
    def get_states(self) -> Mapping[int, Any]: ...

    def encode_update(self, client_ids: list[int], states: Mapping[int, Any] | None = None) -> bytes: ...

    def apply_update(self, update: bytes, origin: Any = None) -> None: ...


class DispatchContext(Protocol):
    """What a handler may touch.  The provider implements this."""

    doc: SyncDocument
    awareness: AwarenessStore
    synced: bool

    def permission_denied(self, reason: str) -> None: ...

    def custom_message(self, target: str, payload: str) -> None: ...


Handler = Callable[[Any, DispatchContext, bool], "bytes | None"]


class Dispatcher:
    """Immutable kind -> handler table plus the dispatch entry point."""

    def __init__(self) -> None:
        handlers: dict[MessageKind, Handler] = {
            MessageKind.SYNC: self._handle_sync,
            MessageKind.AWARENESS: self._handle_awareness,
            MessageKind.AUTH: self._handle_auth,
            MessageKind.QUERY_AWARENESS: self._handle_query_awareness,
            MessageKind.CUSTOM: self._handle_custom,
        }
        missing = set(MessageKind) - handlers.keys()
        if missing:
            raise RuntimeError(f"No handler for message kinds: {sorted(missing)}")
        self._handlers: Mapping[MessageKind, Handler] = MappingProxyType(handlers)

    @property
    def handlers(self) -> Mapping[MessageKind, Handler]:
        return self._handlers

    def dispatch(
        self,
        data: bytes,
        context: DispatchContext,
        emit_synced: bool,
    ) -> bytes | None:
        """Decode *data*, apply it to *context*, and return the reply frame.

        Args:
            data: One inbound frame.
            context: Owner of the document, awareness store, and synced flag.
            emit_synced: Whether a STEP2 may flip ``context.synced`` to true.
                Only the network channel passes ``True``.

        Returns:
            The reply frame, or ``None`` when there is nothing to send.
        """
        try:
            message = decode_message(data)
        except UnknownMessageKind as exc:
            logger.error("roomsync: unable to compute message: %s", exc)
            return None
        except MalformedMessage as exc:
            logger.error("roomsync: dropping malformed message (%d bytes): %s", len(data), exc)
            return None

        handler = self._handlers[message.kind]
        try:
            reply = handler(message, context, emit_synced)
        except MalformedMessage as exc:
            logger.error("roomsync: could not apply %s message: %s", message.kind.name, exc)
            return None

        if reply is None or len(reply) < MIN_REPLY_LENGTH:
            return None
        return reply

    # -----------------------------------------------------------------------
    # Per-kind handlers
    # -----------------------------------------------------------------------

    def _handle_sync(self, message: SyncMessage, context: DispatchContext, emit_synced: bool) -> bytes | None:
        reply = apply_sync_message(message, context.doc, context)
        if emit_synced and message.step == SyncStep.STEP2 and not context.synced:
            context.synced = True
        return reply.encode() if reply is not None else None

    def _handle_awareness(self, message: AwarenessMessage, context: DispatchContext, emit_synced: bool) -> None:
        context.awareness.apply_update(message.update, context)

    def _handle_auth(self, message: AuthMessage, context: DispatchContext, emit_synced: bool) -> None:
        if message.denied:
            context.permission_denied(message.reason)
        else:
            logger.debug("roomsync: permission granted")

    def _handle_query_awareness(self, message: QueryAwarenessMessage, context: DispatchContext, emit_synced: bool) -> bytes:
        states = context.awareness.get_states()
        update = context.awareness.encode_update(list(states.keys()))
        return AwarenessMessage(update).encode()

    def _handle_custom(self, message: CustomMessage, context: DispatchContext, emit_synced: bool) -> None:
        context.custom_message(message.target, message.payload)
