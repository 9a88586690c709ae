"""Deferred-Wake Port: named wakes that outlive the process that armed them.

Delivery is at-least-once and only approximately on time.  Consumers must
treat a wake as a trigger to re-read the store, never as state.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Protocol

from sleeptimer.core.store import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

EXPIRY_WAKE = "sleeptimer-expiry"
LIVENESS_WAKE = "sleeptimer-liveness"
TIMER_WAKES = (EXPIRY_WAKE, LIVENESS_WAKE)

_WAKES_FILE = "wakes.json"


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class WakePort(Protocol):
    def schedule_once(self, name: str, at_ms: int) -> None: ...

    def schedule_repeating(self, name: str, period_seconds: int) -> None: ...

    def cancel(self, name: str) -> None: ...


class InMemoryWakeScheduler:
    """Wake schedule held in memory; dies with the process."""

    def __init__(self, clock_ms: Callable[[], int] | None = None) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        self._clock_ms = clock_ms if clock_ms is not None else wall_clock_ms

    def schedule_once(self, name: str, at_ms: int) -> None:
        self._entries[name] = {"at": int(at_ms), "period": None}

    def schedule_repeating(self, name: str, period_seconds: int) -> None:
        _set_repeating(self._entries, name, period_seconds, self._clock_ms)

    def cancel(self, name: str) -> None:
        self._entries.pop(name, None)

    def scheduled(self) -> dict[str, dict[str, Any]]:
        return {name: dict(entry) for name, entry in self._entries.items()}

    def pop_due(self, now_ms: int) -> list[str]:
        """Return the names due at *now_ms*, consuming one-shots."""
        return _advance(self._entries, now_ms)


class FileWakeScheduler:
    """Wake schedule persisted to ``<config_dir>/wakes.json``.

    A host loop (see :mod:`sleeptimer.core.daemon`) polls :meth:`pop_due`;
    because the schedule is on disk, a wake whose time passed while no host
    was running is delivered by the next host to start.
    """

    def __init__(
        self, config_dir: Path | None = None, clock_ms: Callable[[], int] | None = None
    ) -> None:
        self._config_dir: Path = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR
        self._clock_ms = clock_ms if clock_ms is not None else wall_clock_ms

    @property
    def path(self) -> Path:
        return self._config_dir / _WAKES_FILE

    def schedule_once(self, name: str, at_ms: int) -> None:
        def mutate(entries: dict[str, dict[str, Any]]) -> None:
            entries[name] = {"at": int(at_ms), "period": None}

        self._update(mutate)

    def schedule_repeating(self, name: str, period_seconds: int) -> None:
        """Arm *name* every *period_seconds*, first due one period from now.

        An entry already repeating at the same period keeps its next due time.
        """
        self._update(
            lambda entries: _set_repeating(entries, name, period_seconds, self._clock_ms)
        )

    def cancel(self, name: str) -> None:
        self._update(lambda entries: entries.pop(name, None))

    def scheduled(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            return _decode(f.read())

    def pop_due(self, now_ms: int) -> list[str]:
        due: list[str] = []
        self._update(lambda entries: due.extend(_advance(entries, now_ms)))
        return due

    # -- persistence ---------------------------------------------------------

    def _update(self, mutate) -> None:
        """Apply *mutate* under an exclusive lock, rewriting only on change."""
        self._config_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        with os.fdopen(fd, "r+") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            entries = _decode(f.read())
            before = json.dumps(entries, sort_keys=True)
            mutate(entries)
            if json.dumps(entries, sort_keys=True) == before:
                return
            logger.debug("Wake schedule now %s", entries)
            f.seek(0)
            f.truncate()
            json.dump(entries, f)


def _decode(raw: str) -> dict[str, dict[str, Any]]:
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Wake schedule is corrupt; starting empty")
        return {}
    return data if isinstance(data, dict) else {}


def _set_repeating(
    entries: dict[str, dict[str, Any]],
    name: str,
    period_seconds: int,
    clock_ms: Callable[[], int],
) -> None:
    period = int(period_seconds)
    existing = entries.get(name)
    if existing is not None and existing.get("period") == period:
        return
    entries[name] = {"at": clock_ms() + period * 1000, "period": period}


def _advance(entries: dict[str, dict[str, Any]], now_ms: int) -> list[str]:
    """Collect due names, dropping one-shots and rescheduling repeaters."""
    due = []
    for name, entry in list(entries.items()):
        if entry.get("at", 0) > now_ms:
            continue
        due.append(name)
        period = entry.get("period")
        if period:
            entry["at"] = now_ms + int(period) * 1000
        else:
            del entries[name]
    return sorted(due)
