"""Durable Store: a flat key-value namespace in one JSON file.

The file is the single source of truth whenever no engine is resident in
memory.  Every write is a locked read-modify-write of the whole namespace so
that two process instances never interleave partial updates.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from pathlib import Path
from typing import Any

from sleeptimer.core.timer import StoreUnavailableError, TimerRecord

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "sleeptimer"
_STATE_FILE = "state.json"

ACTIVE_TIMER_KEY = "activeTimer"
LAST_EXPIRATION_KEY = "lastExpirationHandledAt"


class JsonFileStore:
    """Key-value persistence backed by ``<config_dir>/state.json``."""

    def __init__(self, config_dir: Path | None = None) -> None:
        self._config_dir: Path = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR

    @property
    def path(self) -> Path:
        return self._config_dir / _STATE_FILE

    # -- public API ----------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default*."""
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable *value* under *key*."""

        def mutate(data: dict[str, Any]) -> None:
            data[key] = value

        self._update(mutate)

    def remove(self, key: str) -> None:
        """Delete *key*; a missing key is not an error."""

        def mutate(data: dict[str, Any]) -> None:
            data.pop(key, None)

        self._update(mutate)

    # -- persistence ---------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        """Load the whole namespace under a shared lock."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                raw = f.read()
        except OSError as exc:
            raise StoreUnavailableError(f"cannot read {self.path}: {exc}") from exc
        return self._decode(raw)

    def _update(self, mutate) -> None:
        """Apply *mutate* to the namespace under an exclusive lock."""
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
            with os.fdopen(fd, "r+") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                data = self._decode(f.read())
                mutate(data)
                f.seek(0)
                f.truncate()
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            raise StoreUnavailableError(f"cannot write {self.path}: {exc}") from exc

    def _decode(self, raw: str) -> dict[str, Any]:
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreUnavailableError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"{self.path} does not hold a JSON object")
        return data


class TimerRepository:
    """Narrow single-slot interface over the key-value store."""

    def __init__(self, store: JsonFileStore) -> None:
        self._store = store

    def load(self) -> TimerRecord | None:
        """Return the persisted record, or ``None`` if the slot is empty.

        A record that cannot be decoded is logged and treated as absent.
        """
        data = self._store.get(ACTIVE_TIMER_KEY)
        if data is None:
            return None
        try:
            return TimerRecord.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable timer record: %r", data, exc_info=True)
            return None

    def save(self, record: TimerRecord) -> None:
        """Persist *record* into the slot, replacing whatever was there."""
        self._store.set(ACTIVE_TIMER_KEY, record.to_dict())

    def delete(self) -> None:
        """Empty the slot.  The expiration mark is kept."""
        self._store.remove(ACTIVE_TIMER_KEY)

    def last_expiration_handled_at(self) -> int | None:
        """Epoch ms of the last handled expiration; an unreadable mark counts as none."""
        value = self._store.get(LAST_EXPIRATION_KEY)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Ignoring unreadable expiration mark: %r", value)
            return None
        return int(value)

    def mark_expiration_handled(self, now_ms: int) -> None:
        self._store.set(LAST_EXPIRATION_KEY, now_ms)
