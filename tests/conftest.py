"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from roomsync.core.errors import MalformedMessage
from roomsync.core.scheduler import Scheduler, TimerHandle
from roomsync.core.signals import Signal
from roomsync.transport.base import Connection
from roomsync.transport.local import LocalChannel


# ---------------------------------------------------------------------------
# Virtual time
# ---------------------------------------------------------------------------


class ManualTimer(TimerHandle):
    def __init__(self, due: float, fn: Callable[[], None], interval: float | None) -> None:
        self.due = due
        self.fn = fn
        self.interval = interval
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Timers only fire when the test calls :meth:`advance`."""

    def __init__(self) -> None:
        self.time = 1000.0
        self.timers: list[ManualTimer] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.time + delay, fn, None)
        self.timers.append(timer)
        return timer

    def call_every(self, interval: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.time + interval, fn, interval)
        self.timers.append(timer)
        return timer

    def pending_one_shots(self) -> list[float]:
        """Delays (from now) of the one-shot timers still waiting to fire."""
        return sorted(
            t.due - self.time for t in self.timers if t.interval is None and not t.cancelled
        )

    def active(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.time = max(self.time, timer.due)
            if timer.interval is None:
                self.timers.remove(timer)
            else:
                timer.due += timer.interval
            timer.fn()
        self.time = target


# ---------------------------------------------------------------------------
# Scripted connections
# ---------------------------------------------------------------------------


class FakeConnection(Connection):
    """A connection the test drives by hand."""

    def __init__(self, url: str) -> None:
        super().__init__(url)
        self.opened = False
        self.closed = False
        self.sent: list[bytes] = []

    def open(self) -> None:
        self.opened = True

    def send(self, data: bytes) -> None:
        self.sent.append(bytes(data))

    def close(self) -> None:
        self.fire_close("closed by client")

    def fire_open(self) -> None:
        self.on_open.emit()

    def fire_message(self, data: bytes) -> None:
        self.on_message.emit(data)

    def fire_error(self, error: Exception) -> None:
        self.on_error.emit(error)

    def fire_close(self, reason: str = "transport closed") -> None:
        if self.closed:
            return
        self.closed = True
        self.on_close.emit(reason)


class DeferredCloseConnection(FakeConnection):
    """``close()`` only records the request, like a real socket mid-handshake.

    The test completes it with :meth:`fire_close`.
    """

    def __init__(self, url: str) -> None:
        super().__init__(url)
        self.close_requested = False

    def close(self) -> None:
        self.close_requested = True


class ConnectionFactory:
    """Builds :class:`FakeConnection` objects and remembers them."""

    def __init__(self) -> None:
        self.created: list[FakeConnection] = []
        self.connection_class: type[FakeConnection] = FakeConnection

    def __call__(self, url: str) -> FakeConnection:
        conn = self.connection_class(url)
        self.created.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.created[-1]

    def live(self) -> list[FakeConnection]:
        return [c for c in self.created if not c.closed]


# ---------------------------------------------------------------------------
# In-memory document
# ---------------------------------------------------------------------------


class MemoryDocument:
    """Grow-only set of strings.  Updates are JSON lists of items.

    Merging is idempotent, which is all the provider relies on.
    """

    def __init__(self, client_id: int) -> None:
        self.client_id = client_id
        self.items: set[str] = set()
        self.on_update = Signal("document.update")
        self.applied: list[tuple[bytes, Any]] = []

    def insert(self, *items: str) -> bytes:
        update = json.dumps(sorted(items)).encode()
        self.items.update(items)
        self.on_update.emit(update, None)
        return update

    def encode_state_vector(self) -> bytes:
        return b""

    def encode_state_as_update(self, state_vector: bytes = b"") -> bytes:
        return json.dumps(sorted(self.items)).encode()

    def apply_update(self, update: bytes, origin: Any = None) -> None:
        try:
            items = json.loads(update)
        except ValueError as exc:
            raise MalformedMessage(str(exc)) from exc
        self.applied.append((bytes(update), origin))
        new = set(items) - self.items
        if new:
            self.items |= new
            self.on_update.emit(bytes(update), origin)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def connections() -> ConnectionFactory:
    return ConnectionFactory()


@pytest.fixture()
def deferred_close(connections: ConnectionFactory) -> ConnectionFactory:
    """Make every new connection close asynchronously."""
    connections.connection_class = DeferredCloseConnection
    return connections


@pytest.fixture()
def channel() -> LocalChannel:
    """A private local channel so tests never see each other's traffic."""
    return LocalChannel()


@pytest.fixture()
def memory_doc() -> Callable[[int], MemoryDocument]:
    return MemoryDocument


@pytest.fixture()
def make_provider(scheduler: ManualScheduler, connections: ConnectionFactory, channel: LocalChannel):
    """Return a helper that builds providers wired to the fakes.

    Usage::

        provider = make_provider(client_id=1)
        provider = make_provider(client_id=2, connect=False)
    """
    from roomsync.provider.provider import Provider

    created: list[Provider] = []

    def _make(client_id: int = 1, room: str = "doc-1", **kwargs: Any) -> Provider:
        kwargs.setdefault("scheduler", scheduler)
        kwargs.setdefault("connection_factory", connections)
        kwargs.setdefault("local_channel", channel)
        provider = Provider("ws://relay.test/", room, MemoryDocument(client_id), **kwargs)
        created.append(provider)
        return provider

    yield _make

    for provider in created:
        provider.destroy()


@pytest.fixture()
def connected_provider(make_provider, connections: ConnectionFactory):
    """A provider whose network connection has opened (sent frames cleared)."""
    provider = make_provider(client_id=1)
    connections.last.fire_open()
    connections.last.sent.clear()
    return provider
