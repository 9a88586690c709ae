"""Timer core: the persisted timer record and its wall-clock arithmetic.

Nothing here reads the clock.  Every function takes ``now_ms`` explicitly so
the same record can be re-derived by any process instance at any time.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

MIN_DURATION_SECONDS = 1
MAX_DURATION_SECONDS = 86400


class TimerState(str, Enum):
    """Possible states of a persisted timer."""

    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TimerError(Exception):
    """Base class for every error the timer surfaces."""

    code = "timer_error"


class InvalidDurationError(TimerError, ValueError):
    """Raised when a duration is outside 1..86400 seconds or unparseable."""

    code = "invalid_duration"


class ResourceNotFoundError(TimerError):
    """Raised when the controlled resource does not exist."""

    code = "resource_not_found"


class NoActiveTimerError(TimerError):
    """Raised when an operation needs a timer and none exists."""

    code = "no_active_timer"


class StoreUnavailableError(TimerError):
    """Raised on a transient persistence failure."""

    code = "store_unavailable"


class ActionPortError(TimerError):
    """Raised when a pause/notify collaborator fails."""

    code = "action_port_failure"


class ConfigError(TimerError):
    """Raised when the settings file cannot be used."""

    code = "config_error"


def validate_duration(seconds: object) -> int:
    """Return *seconds* as an int if it lies within the allowed range."""
    if isinstance(seconds, bool) or not isinstance(seconds, int):
        raise InvalidDurationError(
            f"duration must be an integer number of seconds, got {type(seconds).__name__}"
        )
    if not (MIN_DURATION_SECONDS <= seconds <= MAX_DURATION_SECONDS):
        raise InvalidDurationError(
            f"duration must be between {MIN_DURATION_SECONDS} and "
            f"{MAX_DURATION_SECONDS} seconds, got {seconds}"
        )
    return seconds


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


@dataclass
class TimerRecord:
    """The single persisted timer.

    ``remaining_seconds`` is authoritative only while paused; for an active
    record it is a cache and :meth:`remaining_at` is the truth.
    """

    resource_id: str
    category: str
    duration_seconds: int
    remaining_seconds: int
    started_at_ms: int
    status: TimerState = TimerState.ACTIVE
    paused_at_ms: int | None = None

    @classmethod
    def create(
        cls, resource_id: str, duration_seconds: int, now_ms: int, category: str = "generic"
    ) -> TimerRecord:
        """Build a fresh active record anchored at *now_ms*."""
        return cls(
            resource_id=resource_id,
            category=category,
            duration_seconds=duration_seconds,
            remaining_seconds=duration_seconds,
            started_at_ms=now_ms,
        )

    # -- derived values ------------------------------------------------------

    @property
    def deadline_ms(self) -> int:
        """Absolute wall-clock deadline of an active record."""
        return self.started_at_ms + self.duration_seconds * 1000

    def remaining_at(self, now_ms: int) -> int:
        """Remaining whole seconds at *now_ms*, clamped to ``[0, duration]``."""
        if self.status == TimerState.PAUSED:
            remaining = self.remaining_seconds
        elif self.status == TimerState.EXPIRED:
            remaining = 0
        else:
            elapsed = (now_ms - self.started_at_ms) // 1000
            remaining = self.duration_seconds - elapsed
        return max(0, min(remaining, self.duration_seconds))

    def is_due(self, now_ms: int) -> bool:
        """True once an active record has no time left at *now_ms*."""
        return self.status == TimerState.ACTIVE and self.remaining_at(now_ms) <= 0

    # -- transitions ---------------------------------------------------------

    def refresh(self, now_ms: int) -> None:
        """Recompute the cached ``remaining_seconds`` from the wall clock."""
        self.remaining_seconds = self.remaining_at(now_ms)

    def pause(self, now_ms: int) -> None:
        """Freeze the countdown at its currently computed value."""
        self.remaining_seconds = self.remaining_at(now_ms)
        self.status = TimerState.PAUSED
        self.paused_at_ms = now_ms

    def resume(self, now_ms: int) -> None:
        """Re-anchor the start so elapsed time equals ``duration - remaining``."""
        elapsed_ms = (self.duration_seconds - self.remaining_seconds) * 1000
        self.started_at_ms = now_ms - elapsed_ms
        self.status = TimerState.ACTIVE
        self.paused_at_ms = None

    def extend(self, additional_seconds: int, now_ms: int) -> None:
        """Push the deadline later by *additional_seconds*."""
        self.duration_seconds += additional_seconds
        if self.status == TimerState.PAUSED:
            self.remaining_seconds += additional_seconds
        else:
            self.refresh(now_ms)

    def expire(self) -> None:
        """Mark the record expired with nothing remaining."""
        self.remaining_seconds = 0
        self.status = TimerState.EXPIRED

    # -- serialization -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimerRecord:
        """Rebuild a record from its persisted form.

        Raises ``ValueError`` (or ``KeyError``/``TypeError``) when the payload
        does not describe a usable record.
        """
        record = cls(
            resource_id=str(data["resource_id"]),
            category=str(data.get("category", "generic")),
            duration_seconds=int(data["duration_seconds"]),
            remaining_seconds=int(data.get("remaining_seconds", data["duration_seconds"])),
            started_at_ms=int(data["started_at_ms"]),
            status=TimerState(data.get("status", TimerState.ACTIVE.value)),
            paused_at_ms=data.get("paused_at_ms"),
        )
        if record.duration_seconds < MIN_DURATION_SECONDS:
            raise ValueError(f"persisted duration {record.duration_seconds} is not positive")
        record.remaining_seconds = max(0, min(record.remaining_seconds, record.duration_seconds))
        return record
