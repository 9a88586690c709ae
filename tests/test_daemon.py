"""Tests for the host loop."""

from __future__ import annotations

from sleeptimer.core.daemon import Daemon
from sleeptimer.core.timer import StoreUnavailableError, TimerRecord
from sleeptimer.core.engine import now_ms
from sleeptimer.core.wake import EXPIRY_WAKE, LIVENESS_WAKE

from conftest import Harness


class TestDaemon:
    """The daemon reconciles, redelivers wakes and ticks."""

    def test_startup_reconciles_missed_deadline(self, harness: Harness) -> None:
        harness.repository.save(TimerRecord.create("tab-1", 40, now_ms() - 50_000))
        Daemon(harness.new_engine(), harness.wakes, interval=0).run(max_iterations=1)
        assert harness.pause.calls == ["tab-1"]

    def test_delivers_due_wakes(self, harness: Harness) -> None:
        harness.new_engine().start(10, "tab-1")
        harness.advance(45)
        host = harness.new_engine()
        delivered = Daemon(host, harness.wakes).run_once()
        assert delivered == [EXPIRY_WAKE, LIVENESS_WAKE]
        assert harness.pause.calls == ["tab-1"]

    def test_ticks_between_sleeps(self, harness: Harness) -> None:
        engine = harness.new_engine()
        engine.start(3, "tab-1")
        slept = []

        def fake_sleep(seconds: float) -> None:
            slept.append(seconds)
            harness.advance(1)

        Daemon(engine, harness.wakes, interval=1.0).run(max_iterations=5, sleep=fake_sleep)
        assert slept == [1.0] * 4
        assert harness.pause.calls == ["tab-1"]
        remaining = [s["remaining"] for s in harness.broadcast.snapshots if s.get("active")]
        assert remaining[-2:] == [2, 1]

    def test_interval_defaults_to_settings(self, harness: Harness) -> None:
        harness.settings.countdown_interval_seconds = 2.5
        slept = []
        Daemon(harness.new_engine(), harness.wakes).run(max_iterations=2, sleep=slept.append)
        assert slept == [2.5]

    def test_idle_daemon_does_nothing(self, harness: Harness) -> None:
        assert Daemon(harness.new_engine(), harness.wakes).run_once() == []
        assert harness.pause.calls == []

    def test_store_failure_during_expiration_keeps_daemon_alive(
        self, harness: Harness, monkeypatch
    ) -> None:
        engine = harness.new_engine()
        engine.start(5, "tab-1")
        harness.advance(6)

        def busy(at_ms: int) -> None:
            raise StoreUnavailableError("disk busy")

        daemon = Daemon(engine, harness.wakes, interval=0)
        monkeypatch.setattr(harness.repository, "mark_expiration_handled", busy)
        daemon.run_once()
        assert harness.pause.calls == []
        assert engine.resident is True

        monkeypatch.undo()
        daemon.run_once()
        assert harness.pause.calls == ["tab-1"]
