"""Two-phase document sync over opaque update bytes.

A peer opens with STEP1 carrying its state vector; the responder answers
with STEP2 carrying everything the requester is missing.  After that,
each side streams UPDATE frames as its document changes.

The document itself is an external collaborator: this module only needs
the three operations in :class:`SyncDocument`.  Applying the same update
twice must be a no-op on the document's side.
"""

from __future__ import annotations

from typing import Any, Protocol

from roomsync.protocol.messages import SyncMessage, SyncStep


class SyncDocument(Protocol):
    """The slice of a CRDT document the sync protocol talks to."""

    def encode_state_vector(self) -> bytes: ...

    def encode_state_as_update(self, state_vector: bytes = b"") -> bytes: ...

    def apply_update(self, update: bytes, origin: Any = None) -> None: ...


def sync_step1(doc: SyncDocument) -> SyncMessage:
    """Build the opening request: "here is what I have, send me the rest"."""
    return SyncMessage(SyncStep.STEP1, doc.encode_state_vector())


def sync_step2(doc: SyncDocument, state_vector: bytes = b"") -> SyncMessage:
    """Build the answer to a STEP1 carrying *state_vector*."""
    return SyncMessage(SyncStep.STEP2, doc.encode_state_as_update(state_vector))


def sync_update(update: bytes) -> SyncMessage:
    return SyncMessage(SyncStep.UPDATE, update)


def apply_sync_message(
    message: SyncMessage,
    doc: SyncDocument,
    origin: Any = None,
) -> SyncMessage | None:
    """Apply an inbound Sync frame to *doc*.

    Returns the reply to send back to the peer, if any.  Only STEP1
    produces a reply.  STEP2 and UPDATE payloads are merged with *origin*
    as the transaction origin, so the caller can recognize (and not
    re-broadcast) changes it applied itself.  An empty payload means the
    peer has nothing to add and never reaches the document.

    Raises:
        MalformedMessage: The document rejected the payload.
    """
    if message.step == SyncStep.STEP1:
        return sync_step2(doc, message.payload)
    if message.payload:
        doc.apply_update(message.payload, origin)
    return None
