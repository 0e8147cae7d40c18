"""In-process broadcast channel for same-device replicas.

Replicas of a document living in the same process exchange protocol
frames here without touching the network.  Channels are addressed by
name; every publish carries an *origin* tag so subscribers can ignore
their own broadcasts.

Delivery is synchronous and fire-and-forget: subscribers are called in
subscription order over a snapshot of the subscriber list, and a failing
subscriber is logged without interrupting delivery to the others.

Thread-safe: a lock protects the subscriber table.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[bytes, str], None]


class LocalChannel:
    """Named fan-out of ``(data, origin)`` pairs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, name: str, handler: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Subscriber) -> None:
        """Remove a previously registered handler.  Unknown handlers are ignored."""
        with self._lock:
            handlers = self._subscribers.get(name)
            if not handlers:
                return
            try:
                handlers.remove(handler)
            except ValueError:
                pass
            if not handlers:
                del self._subscribers[name]

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._subscribers.get(name, ()))

    def publish(self, name: str, data: bytes, origin: str) -> None:
        """Deliver *data* to every subscriber of *name*.  Never raises."""
        with self._lock:
            handlers = list(self._subscribers.get(name, ()))
        for handler in handlers:
            try:
                handler(data, origin)
            except Exception:
                logger.exception("roomsync: local channel subscriber failed on %s", name)


_default_channel = LocalChannel()


def default_local_channel() -> LocalChannel:
    """The process-wide channel shared by providers that are not given one."""
    return _default_channel
