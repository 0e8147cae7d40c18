"""Timers owned by the provider.

Every delayed or periodic callback goes through a :class:`Scheduler`, and
every timer it hands out is a :class:`TimerHandle` the owner keeps and
cancels during teardown.  :class:`AsyncioScheduler` is the production
implementation; tests substitute a virtual-time scheduler.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class TimerHandle(abc.ABC):
    """A pending one-shot or periodic timer."""

    @abc.abstractmethod
    def cancel(self) -> None:
        """Stop the timer.  Cancelling twice is harmless."""

    @property
    @abc.abstractmethod
    def cancelled(self) -> bool: ...


class Scheduler(abc.ABC):
    """Source of time and timers for the synchronization state machine."""

    @abc.abstractmethod
    def now(self) -> float:
        """Current time in seconds on a monotonic clock."""

    @abc.abstractmethod
    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        """Run *fn* once after *delay* seconds."""

    @abc.abstractmethod
    def call_every(self, interval: float, fn: Callable[[], None]) -> TimerHandle:
        """Run *fn* every *interval* seconds until the handle is cancelled."""


class _OneShot(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class _Periodic(TimerHandle):
    """Re-arms itself on the loop after every run."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        fn: Callable[[], None],
    ) -> None:
        self._loop = loop
        self._interval = interval
        self._fn = fn
        self._cancelled = False
        self._handle = loop.call_later(interval, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        try:
            self._fn()
        except Exception:
            logger.exception("roomsync: periodic timer callback failed")
        if not self._cancelled:
            self._handle = self._loop.call_later(self._interval, self._run)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop.

    The loop is resolved lazily, on the first timer.  A provider can be
    built before the loop runs; its timers are armed by ``connect()``,
    which must then be called from inside the loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        return _OneShot(self.loop.call_later(delay, fn))

    def call_every(self, interval: float, fn: Callable[[], None]) -> TimerHandle:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        return _Periodic(self.loop, interval, fn)
