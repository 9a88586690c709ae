"""Tests for the JSON key-value store and the single-slot repository."""

import json
from pathlib import Path

import pytest

from sleeptimer.core.store import (
    ACTIVE_TIMER_KEY,
    DEFAULT_CONFIG_DIR,
    LAST_EXPIRATION_KEY,
    JsonFileStore,
    TimerRepository,
)
from sleeptimer.core.timer import StoreUnavailableError, TimerRecord

T0 = 1_000_000_000


def _read_state(config_dir: Path) -> dict:
    """Read and return the state.json content as a dict."""
    return json.loads((config_dir / "state.json").read_text())


# ---------------------------------------------------------------------------
# JsonFileStore
# ---------------------------------------------------------------------------


class TestJsonFileStore:
    """Flat key-value persistence in state.json."""

    def test_get_missing_file_returns_default(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        assert store.get("anything") is None
        assert store.get("anything", 7) == 7

    def test_set_then_get(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.set("a", {"x": 1})
        assert store.get("a") == {"x": 1}

    def test_keys_are_independent(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.set("a", 1)
        store.set("b", 2)
        store.remove("a")
        assert _read_state(tmp_path) == {"b": 2}

    def test_remove_missing_key_is_noop(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.remove("nothing")
        assert _read_state(tmp_path) == {}

    def test_creates_missing_config_dir(self, tmp_path: Path) -> None:
        config_dir = tmp_path / "nested" / "config" / "dir"
        JsonFileStore(config_dir).set("a", 1)
        assert (config_dir / "state.json").exists()

    def test_second_instance_sees_writes(self, tmp_path: Path) -> None:
        JsonFileStore(tmp_path).set("a", 1)
        assert JsonFileStore(tmp_path).get("a") == 1

    def test_corrupt_file_is_unavailable(self, tmp_path: Path) -> None:
        (tmp_path / "state.json").write_text("{not json")
        with pytest.raises(StoreUnavailableError):
            JsonFileStore(tmp_path).get("a")

    def test_non_object_file_is_unavailable(self, tmp_path: Path) -> None:
        (tmp_path / "state.json").write_text("[1, 2]")
        with pytest.raises(StoreUnavailableError):
            JsonFileStore(tmp_path).get("a")

    def test_unwritable_location_is_unavailable(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(StoreUnavailableError):
            JsonFileStore(blocker / "sub").set("a", 1)

    def test_default_config_dir(self) -> None:
        assert JsonFileStore().path == DEFAULT_CONFIG_DIR / "state.json"
        assert DEFAULT_CONFIG_DIR == Path.home() / ".config" / "sleeptimer"


# ---------------------------------------------------------------------------
# TimerRepository
# ---------------------------------------------------------------------------


class TestTimerRepository:
    """One record under a fixed key, plus the expiration dedup timestamp."""

    def test_empty_slot(self, tmp_path: Path) -> None:
        assert TimerRepository(JsonFileStore(tmp_path)).load() is None

    def test_save_and_load(self, tmp_path: Path) -> None:
        repository = TimerRepository(JsonFileStore(tmp_path))
        record = TimerRecord.create("tab-1", 60, T0, "youtube")
        repository.save(record)
        assert repository.load() == record
        assert _read_state(tmp_path)[ACTIVE_TIMER_KEY]["category"] == "youtube"

    def test_save_replaces_previous_record(self, tmp_path: Path) -> None:
        repository = TimerRepository(JsonFileStore(tmp_path))
        repository.save(TimerRecord.create("A", 60, T0))
        repository.save(TimerRecord.create("B", 60, T0))
        assert repository.load().resource_id == "B"

    def test_delete(self, tmp_path: Path) -> None:
        repository = TimerRepository(JsonFileStore(tmp_path))
        repository.save(TimerRecord.create("tab-1", 60, T0))
        repository.delete()
        assert repository.load() is None

    def test_unreadable_record_is_treated_as_absent(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.set(ACTIVE_TIMER_KEY, {"resource_id": "x"})
        assert TimerRepository(store).load() is None

    def test_expiration_mark(self, tmp_path: Path) -> None:
        repository = TimerRepository(JsonFileStore(tmp_path))
        assert repository.last_expiration_handled_at() is None
        repository.mark_expiration_handled(T0)
        assert repository.last_expiration_handled_at() == T0
        assert _read_state(tmp_path)[LAST_EXPIRATION_KEY] == T0

    def test_expiration_mark_survives_record_deletion(self, tmp_path: Path) -> None:
        repository = TimerRepository(JsonFileStore(tmp_path))
        repository.save(TimerRecord.create("tab-1", 60, T0))
        repository.mark_expiration_handled(T0)
        repository.delete()
        assert repository.last_expiration_handled_at() == T0

    def test_unreadable_expiration_mark_counts_as_none(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path)
        store.set(LAST_EXPIRATION_KEY, "yesterday")
        assert TimerRepository(store).last_expiration_handled_at() is None
