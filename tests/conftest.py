"""Shared fixtures: a controllable wall clock and recording fakes for every port."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator
from unittest.mock import MagicMock, patch

import pytest

from sleeptimer.core import engine as engine_module
from sleeptimer.core.config import Settings
from sleeptimer.core.engine import TimerEngine
from sleeptimer.core.store import JsonFileStore, TimerRepository
from sleeptimer.core.wake import InMemoryWakeScheduler

START_EPOCH = 1_706_745_600.0


class RecordingPause:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.result = True
        self.error: Exception | None = None

    def __call__(self, resource_id: str) -> bool:
        self.calls.append(resource_id)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingNotify:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def __call__(self, title: str, message: str) -> None:
        self.calls.append((title, message))


class RecordingBroadcast:
    def __init__(self) -> None:
        self.snapshots: list[dict[str, Any]] = []

    def __call__(self, snapshot: dict[str, Any]) -> None:
        self.snapshots.append(snapshot)


class FakeResources:
    """Existence check: everything exists unless listed in ``missing``."""

    def __init__(self) -> None:
        self.missing: set[str] = set()

    def __call__(self, resource_id: str) -> bool:
        return resource_id not in self.missing


class Harness:
    """Everything a test needs to build engines that share one durable store."""

    def __init__(self, config_dir: Path, clock: MagicMock) -> None:
        self.config_dir = config_dir
        self.clock = clock
        self.store = JsonFileStore(config_dir)
        self.repository = TimerRepository(self.store)
        self.wakes = InMemoryWakeScheduler(clock_ms=engine_module.now_ms)
        self.pause = RecordingPause()
        self.notify = RecordingNotify()
        self.broadcast = RecordingBroadcast()
        self.resources = FakeResources()
        self.settings = Settings(read_retry_delays=[], action_retry_delays=[])

    def advance(self, seconds: float) -> None:
        self.clock.time.return_value += seconds

    def new_engine(self) -> TimerEngine:
        """A fresh engine instance, as after a process restart."""
        return TimerEngine(
            repository=self.repository,
            wakes=self.wakes,
            exists=self.resources,
            pause_action=self.pause,
            notify_action=self.notify,
            broadcast=self.broadcast,
            settings=self.settings,
        )


@pytest.fixture()
def mock_time() -> Iterator[MagicMock]:
    with patch("sleeptimer.core.engine.time") as mocked:
        mocked.time.return_value = START_EPOCH
        yield mocked


@pytest.fixture()
def harness(tmp_path: Path, mock_time: MagicMock) -> Harness:
    return Harness(tmp_path, mock_time)


@pytest.fixture()
def engine(harness: Harness) -> TimerEngine:
    return harness.new_engine()
