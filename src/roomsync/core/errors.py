"""Error taxonomy for roomsync.

None of these are fatal to the process.  Codec errors are raised by the
decoding functions and turned into logged no-ops by the dispatcher;
transport errors are surfaced to the application as events.
"""

from __future__ import annotations


class RoomsyncError(Exception):
    """Base class for all roomsync errors."""


class MalformedMessage(RoomsyncError):
    """Raised when a buffer is empty, truncated, or otherwise undecodable."""


class UnknownMessageKind(RoomsyncError):
    """Raised when a frame carries a tag no handler is registered for."""

    def __init__(self, tag: int) -> None:
        super().__init__(f"Unknown message kind: {tag}")
        self.tag = tag


class PermissionDenied(RoomsyncError):
    """A peer refused access to the room.  The connection stays open.

    Carried by ``on_permission_denied``; never raised by the provider.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"Permission denied: {reason}")
        self.reason = reason


class TransportError(RoomsyncError):
    """Carried by ``on_connection_error``.  Does not close the connection."""


class TransportClosed(RoomsyncError):
    """Carried by ``on_connection_close``.  Always recoverable via reconnect."""

    def __init__(self, reason: object = None) -> None:
        super().__init__(f"Connection closed: {reason}")
        self.reason = reason
