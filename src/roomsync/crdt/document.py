"""Automerge-backed shared document.

Wraps the high-level ``automerge.Document`` so it can be driven by the
sync protocol: local changes are announced as update bytes, remote
updates are merged, and both raise ``on_update`` with the origin of the
transaction so a provider can tell its own writes from the peer's.

Updates are whole-document snapshots (``save()``).  Merging a snapshot
is idempotent, so redundant or repeated updates are harmless and the
state vector can stay empty: a STEP1 always gets a complete answer.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Generator
from typing import Any

from automerge import Document, core

from roomsync.core.errors import MalformedMessage
from roomsync.core.ids import generate_client_id
from roomsync.core.signals import Signal

logger = logging.getLogger(__name__)


class AutomergeDocument:
    """A shared document with a stable local participant ID.

    Signals:
        on_update: ``(update, origin)`` after every local change and after
            every remote update that changed the document.
    """

    def __init__(self, client_id: int | None = None) -> None:
        self.client_id = client_id if client_id is not None else generate_client_id()
        self.doc = Document()
        self.on_update = Signal("document.update")

    @contextlib.contextmanager
    def change(self, origin: Any = None) -> Generator[Any, None, None]:
        """Open a local change; on exit the new snapshot is announced.

        Usage::

            with doc.change() as d:
                d["title"] = "Hello"
        """
        with self.doc.change() as d:
            yield d
        self.on_update.emit(self.save(), origin)

    def to_py(self) -> dict:
        return self.doc.to_py()

    def save(self) -> bytes:
        return bytes(self.doc._doc.save())

    # -----------------------------------------------------------------------
    # Sync protocol surface
    # -----------------------------------------------------------------------

    def encode_state_vector(self) -> bytes:
        return b""

    def encode_state_as_update(self, state_vector: bytes = b"") -> bytes:
        return self.save()

    def apply_update(self, update: bytes, origin: Any = None) -> None:
        """Merge a remote snapshot.  Empty updates are ignored.

        Raises:
            MalformedMessage: *update* is not a valid Automerge document.
        """
        if not update:
            return
        try:
            remote = core.Document.load(update)
        except Exception as exc:
            raise MalformedMessage(f"Invalid Automerge update: {exc}") from exc

        before = self.save()
        self.doc._doc.merge(remote)
        if self.save() != before:
            self.on_update.emit(bytes(update), origin)
        else:
            logger.debug("roomsync: update of %d bytes was already applied", len(update))
