"""Transient per-participant presence directory.

Each participant (keyed by its integer client ID) owns one JSON state and
a monotonically increasing clock.  Updates carry ``(client_id, clock,
state)`` records; a record is accepted only if its clock is newer than
what we hold, which makes re-applying the same update a no-op and stops
echo chains between peers.

A ``null`` state announces that the participant left.  Remote peers are
never allowed to remove the local participant while it still has a
state: instead the local clock is bumped so the next broadcast
re-announces it.

Entries do not expire on their own.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from roomsync.core.encoding import Decoder, Encoder
from roomsync.core.errors import MalformedMessage
from roomsync.core.ids import generate_client_id
from roomsync.core.signals import Signal


@dataclass
class ClientMeta:
    clock: int
    last_updated: float


def _changes(
    added: list[int] | None = None,
    updated: list[int] | None = None,
    removed: list[int] | None = None,
) -> dict[str, list[int]]:
    return {"added": added or [], "updated": updated or [], "removed": removed or []}


class Awareness:
    """Presence states for every known participant of one document.

    Signals:
        on_update: ``(changes, origin)`` for every accepted record, including
            heartbeats that leave the state unchanged.  This is what gets
            broadcast.
        on_change: ``(changes, origin)`` only when some state actually
            changed.  This is what UIs listen to.

    ``changes`` is a dict with ``added``, ``updated`` and ``removed`` lists
    of client IDs.
    """

    def __init__(self, client_id: int | None = None) -> None:
        self.client_id = client_id if client_id is not None else generate_client_id()
        self.states: dict[int, Any] = {}
        self.meta: dict[int, ClientMeta] = {}
        self.on_update = Signal("awareness.update")
        self.on_change = Signal("awareness.change")
        self.set_local_state({})

    def get_states(self) -> dict[int, Any]:
        return self.states

    def get_local_state(self) -> Any:
        return self.states.get(self.client_id)

    def set_local_state(self, state: Any, origin: Any = "local") -> None:
        """Replace the local participant's state.  ``None`` means "left"."""
        client_id = self.client_id
        current = self.meta.get(client_id)
        clock = 0 if current is None else current.clock + 1
        prev_state = self.states.get(client_id)
        if state is None:
            self.states.pop(client_id, None)
        else:
            self.states[client_id] = state
        self.meta[client_id] = ClientMeta(clock, time.time())

        added: list[int] = []
        updated: list[int] = []
        filtered_updated: list[int] = []
        removed: list[int] = []
        if state is None:
            removed.append(client_id)
        elif prev_state is None:
            added.append(client_id)
        else:
            updated.append(client_id)
            if prev_state != state:
                filtered_updated.append(client_id)

        if added or filtered_updated or removed:
            self.on_change.emit(_changes(added, filtered_updated, removed), origin)
        self.on_update.emit(_changes(added, updated, removed), origin)

    def set_local_state_field(self, field: str, value: Any) -> None:
        state = self.get_local_state()
        if state is not None:
            self.set_local_state({**state, field: value})

    def renew_local_state(self) -> None:
        """Heartbeat: re-announce the local state under a new clock."""
        state = self.get_local_state()
        if state is not None:
            self.set_local_state(state)

    def remove_states(self, client_ids: Iterable[int], origin: Any = None) -> None:
        """Drop the given participants, e.g. when the network connection is lost."""
        removed: list[int] = []
        for client_id in client_ids:
            if client_id not in self.states:
                continue
            del self.states[client_id]
            if client_id == self.client_id:
                meta = self.meta[client_id]
                self.meta[client_id] = ClientMeta(meta.clock + 1, time.time())
            removed.append(client_id)
        if removed:
            self.on_change.emit(_changes(removed=removed), origin)
            self.on_update.emit(_changes(removed=removed), origin)

    # -----------------------------------------------------------------------
    # Wire format
    # -----------------------------------------------------------------------

    def encode_update(
        self,
        client_ids: Iterable[int],
        states: Mapping[int, Any] | None = None,
    ) -> bytes:
        """Encode the current records for *client_ids*.

        Passing *states* overrides where the state values are read from, so
        ``encode_update([me], states={})`` announces a departure without
        touching the local state.  Clients we have never heard of are skipped.
        """
        source = self.states if states is None else states
        known = [cid for cid in client_ids if cid in self.meta]
        encoder = Encoder()
        encoder.write_var_uint(len(known))
        for client_id in known:
            encoder.write_var_uint(client_id)
            encoder.write_var_uint(self.meta[client_id].clock)
            encoder.write_var_string(json.dumps(source.get(client_id)))
        return encoder.to_bytes()

    def apply_update(self, update: bytes, origin: Any = None) -> None:
        """Merge an encoded update received from a peer.

        Raises:
            MalformedMessage: The blob is truncated or a state is not JSON.
        """
        records = _decode_records(update)
        now = time.time()
        added: list[int] = []
        updated: list[int] = []
        filtered_updated: list[int] = []
        removed: list[int] = []

        for client_id, clock, state in records:
            meta = self.meta.get(client_id)
            prev_state = self.states.get(client_id)
            newer = meta is None or meta.clock < clock
            departs = meta is not None and meta.clock == clock and state is None and client_id in self.states
            if not (newer or departs):
                continue

            if state is None:
                if client_id == self.client_id and self.get_local_state() is not None:
                    # Someone declared us gone.  Outbid them so we re-announce.
                    clock += 1
                else:
                    self.states.pop(client_id, None)
            else:
                self.states[client_id] = state
            self.meta[client_id] = ClientMeta(clock, now)

            if meta is None and state is not None:
                added.append(client_id)
            elif meta is not None and state is None:
                removed.append(client_id)
            elif state is not None:
                if state != prev_state:
                    filtered_updated.append(client_id)
                updated.append(client_id)

        if added or filtered_updated or removed:
            self.on_change.emit(_changes(added, filtered_updated, removed), origin)
        if added or updated or removed:
            self.on_update.emit(_changes(added, updated, removed), origin)


def _decode_records(update: bytes) -> list[tuple[int, int, Any]]:
    decoder = Decoder(update)
    count = decoder.read_var_uint()
    records = []
    for _ in range(count):
        client_id = decoder.read_var_uint()
        clock = decoder.read_var_uint()
        raw = decoder.read_var_string()
        try:
            state = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedMessage(f"Awareness state for {client_id} is not JSON: {exc}") from exc
        records.append((client_id, clock, state))
    decoder.expect_end()
    return records
