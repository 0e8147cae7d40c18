"""Tests for the liveness monitor, alone and wired into a provider."""

from __future__ import annotations

import pytest

from roomsync.crdt.awareness import Awareness
from roomsync.protocol.messages import AwarenessMessage
from roomsync.provider.liveness import DEFAULT_RECONNECT_TIMEOUT, LivenessMonitor


class Probe:
    def __init__(self) -> None:
        self.connected = True
        self.stale_calls = 0

    def is_connected(self) -> bool:
        return self.connected

    def on_stale(self) -> None:
        self.stale_calls += 1


@pytest.fixture()
def probe() -> Probe:
    return Probe()


@pytest.fixture()
def monitor(scheduler, probe) -> LivenessMonitor:
    monitor = LivenessMonitor(scheduler, probe.is_connected, probe.on_stale, timeout=30.0)
    monitor.start()
    monitor.touch()
    return monitor


class TestLivenessMonitor:
    def test_defaults(self, scheduler, probe) -> None:
        monitor = LivenessMonitor(scheduler, probe.is_connected, probe.on_stale)
        assert monitor.timeout == DEFAULT_RECONNECT_TIMEOUT == 30.0
        assert monitor.interval == 3.0

    def test_rejects_non_positive_timeout(self, scheduler, probe) -> None:
        with pytest.raises(ValueError):
            LivenessMonitor(scheduler, probe.is_connected, probe.on_stale, timeout=0)

    def test_quiet_within_timeout(self, monitor, scheduler, probe) -> None:
        scheduler.advance(30.0)
        assert probe.stale_calls == 0
        assert not monitor.is_stale()

    def test_fires_within_one_tick_after_timeout(self, monitor, scheduler, probe) -> None:
        scheduler.advance(30.0 + monitor.interval)
        assert probe.stale_calls == 1

    def test_touch_postpones(self, monitor, scheduler, probe) -> None:
        scheduler.advance(20.0)
        monitor.touch()
        scheduler.advance(20.0)
        assert probe.stale_calls == 0

    def test_ignored_while_disconnected(self, monitor, scheduler, probe) -> None:
        probe.connected = False
        scheduler.advance(60.0)
        assert probe.stale_calls == 0
        assert monitor.is_stale()

    def test_start_is_idempotent(self, monitor, scheduler) -> None:
        monitor.start()
        assert len(scheduler.active()) == 1

    def test_stop(self, monitor, scheduler, probe) -> None:
        monitor.stop()
        assert not monitor.running
        scheduler.advance(60.0)
        assert probe.stale_calls == 0


class TestProviderLiveness:
    def test_silent_connection_is_closed(self, connected_provider, connections, scheduler) -> None:
        provider = connected_provider
        conn = connections.last
        conn.fire_message(AwarenessMessage(Awareness(2).encode_update([2])).encode())
        assert set(provider.awareness.get_states()) == {1, 2}

        scheduler.advance(30.0 + provider.liveness.interval)

        assert conn.closed
        assert provider.status == "disconnected"
        assert set(provider.awareness.get_states()) == {1}
        assert scheduler.pending_one_shots() == pytest.approx([0.1])

    def test_inbound_traffic_keeps_connection(self, connected_provider, connections, scheduler) -> None:
        conn = connections.last
        for _ in range(4):
            scheduler.advance(20.0)
            conn.fire_message(AwarenessMessage(Awareness(2).encode_update([2])).encode())

        assert not conn.closed
        assert connected_provider.network.connected
