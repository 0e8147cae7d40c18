"""Tests for core signals module."""

from __future__ import annotations

import logging

from roomsync.core.signals import Signal


class TestSignal:
    def test_emit_calls_listeners_in_order(self) -> None:
        signal = Signal("test")
        calls: list[tuple[str, int]] = []
        signal.connect(lambda n: calls.append(("a", n)))
        signal.connect(lambda n: calls.append(("b", n)))

        signal.emit(1)

        assert calls == [("a", 1), ("b", 1)]

    def test_connect_works_as_decorator(self) -> None:
        signal = Signal("test")

        @signal.connect
        def listener() -> None:
            pass

        assert callable(listener)
        assert len(signal) == 1

    def test_disconnect(self) -> None:
        signal = Signal("test")
        calls: list[int] = []

        def listener(n: int) -> None:
            calls.append(n)

        signal.connect(listener)
        signal.disconnect(listener)
        signal.emit(1)

        assert calls == []

    def test_disconnect_unknown_is_noop(self) -> None:
        signal = Signal("test")
        signal.disconnect(lambda: None)
        assert len(signal) == 0

    def test_failing_listener_does_not_stop_others(self, caplog) -> None:
        signal = Signal("test")
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("boom")

        signal.connect(broken)
        signal.connect(lambda: calls.append("ok"))

        with caplog.at_level(logging.ERROR, logger="roomsync.core.signals"):
            signal.emit()

        assert calls == ["ok"]
        assert "test listener failed" in caplog.text

    def test_listener_added_during_emit_waits_for_next_emit(self) -> None:
        signal = Signal("test")
        calls: list[str] = []

        def late() -> None:
            calls.append("late")

        def first() -> None:
            calls.append("first")
            signal.connect(late)

        signal.connect(first)
        signal.emit()
        assert calls == ["first"]

    def test_clear(self) -> None:
        signal = Signal("test")
        signal.connect(lambda: None)
        signal.clear()
        assert len(signal) == 0

    def test_repr(self) -> None:
        signal = Signal("status")
        signal.connect(lambda: None)
        assert repr(signal) == "Signal('status', listeners=1)"
