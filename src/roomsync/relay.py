"""WebSocket relay that connects the providers of each room.

Almost no protocol logic: every binary frame a peer sends is forwarded
verbatim to the other peers of the same room.  Three small additions
make a relay without any document of its own behave like a sync server:

* Awareness frames are echoed back to their sender too, so a lone
  client still hears its own heartbeat and stays lively;
* a newcomer joining an occupied room is greeted with a STEP1 carrying an
  empty state vector, so its reply (its full state) reaches the others;
* a STEP1 from a peer that is alone in its room is answered with an empty
  STEP2, so the peer still becomes synced.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import unquote, urlsplit

import websockets

from roomsync.core.encoding import Decoder
from roomsync.core.errors import MalformedMessage, UnknownMessageKind
from roomsync.core.ids import generate_peer_id
from roomsync.protocol.messages import MessageKind, SyncMessage, SyncStep, read_message_kind

logger = logging.getLogger(__name__)

DEFAULT_RELAY_HOST = "127.0.0.1"
DEFAULT_RELAY_PORT = 1234

_GREETING = SyncMessage(SyncStep.STEP1, b"").encode()
_EMPTY_STEP2 = SyncMessage(SyncStep.STEP2, b"").encode()


def room_from_path(path: str) -> str:
    """``/doc-1?token=x`` -> ``doc-1``."""
    return unquote(urlsplit(path).path.lstrip("/"))


def _frame_kind(frame: bytes) -> tuple[MessageKind | None, int | None]:
    """Peek at a frame's kind and, for Sync frames, its step."""
    decoder = Decoder(frame)
    try:
        kind = read_message_kind(decoder)
        step = decoder.read_var_uint() if kind == MessageKind.SYNC else None
    except (MalformedMessage, UnknownMessageKind):
        return None, None
    return kind, step


def _request_path(websocket: Any, path: str | None) -> str:
    request = getattr(websocket, "request", None)
    if request is not None:
        return request.path
    return path or getattr(websocket, "path", "/")


class RoomRelay:
    """Room-scoped WebSocket broadcast server."""

    def __init__(self, host: str = DEFAULT_RELAY_HOST, port: int = DEFAULT_RELAY_PORT) -> None:
        self.host = host
        self.port = port
        self.rooms: dict[str, dict[str, Any]] = {}
        self._server: Any = None

    async def start(self) -> None:
        """Start listening.  With ``port=0`` the bound port is stored in ``self.port``."""
        self._server = await websockets.serve(self._handle_peer, self.host, self.port)
        sockets = list(self._server.sockets or ())
        if sockets:
            self.port = sockets[0].getsockname()[1]
        logger.info("roomsync relay: listening on ws://%s:%d", self.host, self.port)

    async def run_forever(self) -> None:
        """Start and run until cancelled."""
        await self.start()
        await asyncio.Future()  # block forever

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_peer(self, websocket: Any, path: str | None = None) -> None:
        room = room_from_path(_request_path(websocket, path))
        peer_id = generate_peer_id()
        peers = self.rooms.setdefault(room, {})
        if peers:
            await self._send(websocket, _GREETING)
        peers[peer_id] = websocket
        logger.info("roomsync relay: %s joined room %r (%d peer(s))", peer_id, room, len(peers))

        try:
            async for message in websocket:
                if isinstance(message, str):
                    message = message.encode("utf-8")
                await self._route(room, peer_id, websocket, bytes(message))
        except websockets.exceptions.ConnectionClosed as exc:
            logger.info("roomsync relay: %s dropped: %s", peer_id, exc)
        finally:
            peers.pop(peer_id, None)
            if not peers:
                self.rooms.pop(room, None)
            logger.info("roomsync relay: %s left room %r", peer_id, room)

    async def _route(self, room: str, peer_id: str, websocket: Any, frame: bytes) -> None:
        peers = self.rooms.get(room, {})
        others = [ws for pid, ws in peers.items() if pid != peer_id]
        kind, step = _frame_kind(frame)

        if kind == MessageKind.SYNC and step == SyncStep.STEP1 and not others:
            await self._send(websocket, _EMPTY_STEP2)
            return

        targets = list(others)
        if kind == MessageKind.AWARENESS:
            targets.append(websocket)
        if targets:
            await asyncio.gather(*(self._send(ws, frame) for ws in targets))

    async def _send(self, websocket: Any, frame: bytes) -> None:
        try:
            await websocket.send(frame)
        except websockets.exceptions.ConnectionClosed:
            # The peer's own handler cleans up after it.
            logger.debug("roomsync relay: skipped send to a closed peer")
