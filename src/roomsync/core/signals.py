"""Explicit per-event subscriber lists.

Each observable event is a :class:`Signal` attribute on its owner
(``provider.on_status``, ``connection.on_message`` ...), so the set of
events is fixed and visible in the code rather than looked up by name at
runtime.

Listeners are fire-and-forget: a failing listener is logged and never
interrupts the emitter or the remaining listeners.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class Signal:
    """An ordered list of callbacks invoked by :meth:`emit`."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[..., Any]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, listeners={len(self._listeners)})"

    def connect(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """Register *fn*.  Returns it unchanged so this works as a decorator."""
        self._listeners.append(fn)
        return fn

    def disconnect(self, fn: Callable[..., Any]) -> None:
        """Remove a previously connected listener.  Unknown listeners are ignored."""
        try:
            self._listeners.remove(fn)
        except ValueError:
            pass

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, *args: Any) -> None:
        """Call every listener with *args*.  Never raises."""
        for fn in list(self._listeners):
            try:
                fn(*args)
            except Exception:
                logger.exception("roomsync: %s listener failed", self.name)
