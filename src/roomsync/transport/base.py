"""The connection abstraction the network state machine drives.

A connection is a one-shot object: it is opened once, emits
``on_open`` when the transport is ready, ``on_message`` for every
inbound binary frame, ``on_error`` for transport trouble, and exactly one
``on_close`` when it is gone for good.  Reconnecting always means building
a new connection object.
"""

from __future__ import annotations

import abc
from collections.abc import Callable

from roomsync.core.signals import Signal


class Connection(abc.ABC):
    """Transport-agnostic binary message connection."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.on_open = Signal("connection.open")
        self.on_message = Signal("connection.message")
        self.on_error = Signal("connection.error")
        self.on_close = Signal("connection.close")

    @abc.abstractmethod
    def open(self) -> None:
        """Start connecting.  Returns immediately; progress arrives as events."""

    @abc.abstractmethod
    def send(self, data: bytes) -> None:
        """Queue one binary frame.  Frames go out in the order they were queued."""

    @abc.abstractmethod
    def close(self) -> None:
        """Tear the connection down.  ``on_close`` follows, once."""


ConnectionFactory = Callable[[str], Connection]
