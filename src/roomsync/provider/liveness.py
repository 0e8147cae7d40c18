"""Half-open connection detection.

Peers keep the line busy (at minimum with awareness heartbeats, which the
relay echoes back), so a connection that stays silent past the timeout is
presumed dead and closed.  The regular disconnect path then takes over
and schedules a reconnect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from roomsync.core.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_TIMEOUT = 30.0


class LivenessMonitor:
    """Closes a silent connection at most one tick after the timeout.

    Args:
        scheduler: Source of time and of the periodic tick.
        is_connected: Reports whether a connection is currently established.
        on_stale: Called once per stale tick; expected to close the connection.
        timeout: Seconds of silence tolerated.  The tick runs every
            ``timeout / 10``.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        is_connected: Callable[[], bool],
        on_stale: Callable[[], None],
        timeout: float = DEFAULT_RECONNECT_TIMEOUT,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.scheduler = scheduler
        self.timeout = timeout
        self.last_message_received = 0.0
        self._is_connected = is_connected
        self._on_stale = on_stale
        self._ticker: TimerHandle | None = None

    @property
    def interval(self) -> float:
        return self.timeout / 10

    @property
    def running(self) -> bool:
        return self._ticker is not None

    def start(self) -> None:
        if self._ticker is None:
            self._ticker = self.scheduler.call_every(self.interval, self.check)

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def touch(self) -> None:
        """Record that something arrived just now."""
        self.last_message_received = self.scheduler.now()

    def is_stale(self) -> bool:
        return self.scheduler.now() - self.last_message_received > self.timeout

    def check(self) -> None:
        if self._is_connected() and self.is_stale():
            logger.info(
                "roomsync: no message for %.1fs, closing connection",
                self.scheduler.now() - self.last_message_received,
            )
            self._on_stale()
