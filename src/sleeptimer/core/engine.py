"""Timer Lifecycle Engine: start/stop/pause/resume/extend/status over one slot.

The engine may be torn down between any two store writes and a different
process may pick up where it left off, so the in-memory record is only a
cache.  Every operation re-reads the store, recomputes remaining time from
the wall clock and writes the result back before doing anything
best-effort (arming wakes, broadcasting).
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from sleeptimer.core.actions import (
    CommandExistenceCheck,
    CommandNotifier,
    CommandPauseAction,
    StatusFileBroadcaster,
    detect_category,
)
from sleeptimer.core.config import Settings, load_settings
from sleeptimer.core.guard import ExpirationGuard
from sleeptimer.core.ports import (
    BroadcastStatus,
    NotifyAction,
    PauseAction,
    ResourceExistenceCheck,
)
from sleeptimer.core.retry import retry_with_backoff
from sleeptimer.core.store import JsonFileStore, TimerRepository
from sleeptimer.core.timefmt import badge_text, minutes_remaining
from sleeptimer.core.timer import (
    NoActiveTimerError,
    ResourceNotFoundError,
    StoreUnavailableError,
    TimerError,
    TimerRecord,
    TimerState,
    validate_duration,
)
from sleeptimer.core.wake import EXPIRY_WAKE, LIVENESS_WAKE, TIMER_WAKES, FileWakeScheduler, WakePort

logger = logging.getLogger(__name__)

INACTIVE: dict[str, Any] = {"active": False}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def snapshot(record: TimerRecord | None, at_ms: int) -> dict[str, Any]:
    """Observer-facing view of *record* at *at_ms*."""
    if record is None or record.status == TimerState.EXPIRED:
        return dict(INACTIVE)
    remaining = record.remaining_at(at_ms)
    return {
        "active": True,
        "status": record.status.value,
        "remaining": remaining,
        "duration": record.duration_seconds,
        "category": record.category,
        "resource_id": record.resource_id,
        "minutes_remaining": minutes_remaining(remaining),
        "badge": badge_text(remaining),
        "deadline_epoch_ms": record.deadline_ms if record.status == TimerState.ACTIVE else None,
    }


class TimerEngine:
    """Orchestrates the store, the wake port, the guard and the fast countdown.

    The fast countdown is "resident" while this instance believes an active
    timer exists; a host loop drives it by calling :meth:`tick`.
    """

    def __init__(
        self,
        repository: TimerRepository,
        wakes: WakePort,
        exists: ResourceExistenceCheck,
        pause_action: PauseAction,
        notify_action: NotifyAction,
        broadcast: BroadcastStatus | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings if settings is not None else Settings()
        self._repository = repository
        self._wakes = wakes
        self._exists = exists
        self._broadcast_status = broadcast
        self._guard = ExpirationGuard(
            repository,
            wakes,
            pause_action,
            notify_action,
            window_seconds=self._settings.dedup_window_seconds,
            show_notifications=self._settings.show_notifications,
        )
        self._record: TimerRecord | None = None
        self._countdown_armed = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def guard(self) -> ExpirationGuard:
        return self._guard

    @property
    def resident(self) -> bool:
        """Whether this instance is currently running the fast countdown."""
        return self._countdown_armed

    def now_ms(self) -> int:
        return now_ms()

    # -- public API ----------------------------------------------------------

    def start(self, duration_seconds: int, resource_id: str, url: str | None = None) -> TimerRecord:
        """Replace any existing timer with a new active one.

        Raises :class:`InvalidDurationError` or :class:`ResourceNotFoundError`.
        """
        validate_duration(duration_seconds)
        if not self._exists(resource_id):
            raise ResourceNotFoundError(f"resource {resource_id!r} does not exist")

        try:
            self.stop()
        except (TimerError, OSError):
            logger.warning("Could not stop the previous timer", exc_info=True)

        now = now_ms()
        record = TimerRecord.create(resource_id, duration_seconds, now, detect_category(url))
        self._repository.save(record)
        self._record = record
        logger.info("Timer started: %ds on %r (%s)", duration_seconds, resource_id, record.category)

        self._arm(record)
        self._countdown_armed = True
        self._broadcast(snapshot(record, now))
        return record

    def stop(self) -> TimerRecord | None:
        """Cancel the timer.  Returns the stopped record, or ``None`` if there was none."""
        self._disarm()
        self._countdown_armed = False
        record = self._repository.load()
        if record is not None:
            self._repository.delete()
            logger.info("Timer stopped for %r", record.resource_id)
        self._record = None
        self._broadcast(dict(INACTIVE))
        return record

    def pause(self) -> TimerRecord:
        """Freeze the countdown.  Pausing a paused timer returns it unchanged."""
        record = self._current()
        if record.status == TimerState.PAUSED:
            return record

        now = now_ms()
        record.pause(now)
        self._repository.save(record)
        self._record = record
        logger.info("Timer paused with %ds remaining", record.remaining_seconds)

        self._disarm()
        self._countdown_armed = False
        self._broadcast(snapshot(record, now))
        return record

    def resume(self) -> TimerRecord | None:
        """Restart a paused countdown.  Returns ``None`` if there is no timer."""
        try:
            record = self._current()
        except NoActiveTimerError:
            logger.debug("resume() with no timer; nothing to do")
            return None
        if record.status == TimerState.ACTIVE:
            return record

        now = now_ms()
        record.resume(now)
        self._repository.save(record)
        self._record = record
        logger.info("Timer resumed with %ds remaining", record.remaining_at(now))

        self._arm(record)
        self._countdown_armed = True
        self._broadcast(snapshot(record, now))
        return record

    def extend(self, additional_seconds: int) -> TimerRecord:
        """Push the deadline later by *additional_seconds*."""
        validate_duration(additional_seconds)
        record = self._current()

        now = now_ms()
        record.extend(additional_seconds, now)
        self._repository.save(record)
        self._record = record
        logger.info("Timer extended by %ds to %ds", additional_seconds, record.duration_seconds)

        if record.status == TimerState.ACTIVE:
            self._schedule_expiry(record)
        self._broadcast(snapshot(record, now))
        return record

    def status(self) -> dict[str, Any]:
        """Storage-backed snapshot, safe to poll.

        Read failures degrade to inactive.  A due timer is expired on the
        spot; a live timer with no resident countdown triggers reconciliation.
        """
        try:
            record = retry_with_backoff(
                self._load,
                self._settings.read_retry_delays,
                retry_on=(StoreUnavailableError,),
            )
        except StoreUnavailableError:
            logger.warning("Timer store unavailable; reporting inactive", exc_info=True)
            return dict(INACTIVE)

        now = now_ms()
        try:
            if record is not None and record.is_due(now):
                if self._expire(now):
                    return dict(INACTIVE)
                return snapshot(record, now)
            if record is not None and not self._countdown_armed:
                self.reconcile()
        except StoreUnavailableError:
            logger.warning("Background reconciliation failed", exc_info=True)
        return snapshot(record, now)

    # -- wake handling -------------------------------------------------------

    def maybe_expire(self) -> bool:
        """Run expiration if due.  Safe to call from every wake source."""
        return self._expire(now_ms())

    def reconcile(self) -> TimerRecord | None:
        """Rebuild in-memory state from the store after a (re)start or wake."""
        record = self._load()
        self._record = record
        if record is None:
            self._disarm()
            self._countdown_armed = False
            return None

        now = now_ms()
        if record.status == TimerState.PAUSED:
            self._countdown_armed = False
            return record
        if record.is_due(now):
            self._expire(now)
            return None

        record.refresh(now)
        self._arm(record)
        self._countdown_armed = True
        logger.info("Timer restored: %ds remaining", record.remaining_seconds)
        return record

    def on_wake(self, name: str) -> None:
        """Handle a deferred wake.  The wake's name is a trigger, not state."""
        if name not in TIMER_WAKES:
            logger.debug("Ignoring unknown wake %r", name)
            return
        try:
            if self._countdown_armed:
                self.maybe_expire()
            else:
                self.reconcile()
        except StoreUnavailableError:
            logger.warning("Wake %s could not read the store; waiting for the next one", name)

    def tick(self) -> bool:
        """Advance the fast countdown one step.  Returns whether it is still resident."""
        if not self._countdown_armed:
            return False
        try:
            record = self._load()
        except StoreUnavailableError:
            logger.warning("Tick could not read the store", exc_info=True)
            return True

        now = now_ms()
        if record is None or record.status != TimerState.ACTIVE:
            self._countdown_armed = False
            self._record = record
            self._broadcast(snapshot(record, now))
            return False

        self._record = record
        if not record.is_due(now):
            self._broadcast(snapshot(record, now))
            return True
        try:
            self._expire(now)
        except StoreUnavailableError:
            logger.warning("Expiration could not reach the store; retrying next tick", exc_info=True)
        return self._countdown_armed

    # -- private helpers -----------------------------------------------------

    def _load(self) -> TimerRecord | None:
        """Read the slot, clearing an ``expired`` record left by an interrupted cleanup."""
        record = self._repository.load()
        if record is not None and record.status == TimerState.EXPIRED and not self._guard.running:
            logger.info("Removing leftover expired timer for %r", record.resource_id)
            self._repository.delete()
            return None
        return record

    def _current(self) -> TimerRecord:
        """Return the live record, expiring it first if it is already due."""
        record = self._load()
        if record is not None and record.is_due(now_ms()):
            self.maybe_expire()
            record = None
        if record is None:
            raise NoActiveTimerError("no active timer")
        return record

    def _expire(self, now: int) -> bool:
        fired = self._guard.maybe_expire(now)
        if fired:
            self._record = None
            self._countdown_armed = False
            self._broadcast(dict(INACTIVE))
        return fired

    def _arm(self, record: TimerRecord) -> None:
        self._schedule_expiry(record)
        try:
            self._wakes.schedule_repeating(LIVENESS_WAKE, self._settings.liveness_period_seconds)
        except OSError:
            logger.warning("Could not arm the liveness wake", exc_info=True)

    def _schedule_expiry(self, record: TimerRecord) -> None:
        try:
            self._wakes.schedule_once(EXPIRY_WAKE, record.deadline_ms)
        except OSError:
            logger.warning("Could not arm the expiry wake", exc_info=True)

    def _disarm(self) -> None:
        for name in TIMER_WAKES:
            try:
                self._wakes.cancel(name)
            except OSError:
                logger.warning("Could not cancel wake %s", name, exc_info=True)

    def _broadcast(self, data: dict[str, Any]) -> None:
        if self._broadcast_status is None:
            return
        try:
            self._broadcast_status(data)
        except Exception:
            logger.warning("Status broadcast failed", exc_info=True)


def create_engine(config_dir: Path | None = None, settings: Settings | None = None) -> TimerEngine:
    """Wire an engine to the JSON store, the file wake schedule and command ports."""
    if settings is None:
        settings = load_settings(config_dir)
    return TimerEngine(
        repository=TimerRepository(JsonFileStore(config_dir)),
        wakes=FileWakeScheduler(config_dir, clock_ms=now_ms),
        exists=CommandExistenceCheck(settings.exists_command),
        pause_action=CommandPauseAction(settings.pause_command, settings.action_retry_delays),
        notify_action=CommandNotifier(settings.notify_command),
        broadcast=StatusFileBroadcaster(config_dir),
        settings=settings,
    )
