"""Expiration Guard: runs the pause/notify/cleanup sequence effectively once.

Up to three wake sources can converge on one deadline: the fast countdown,
the one-shot deferred wake and the repeating liveness wake.  Two layers keep
the side effects from running twice:

* an in-memory reentrancy flag, which covers overlap inside one process but
  is lost when the process dies;
* a persisted "last expiration handled at" timestamp, written *before* any
  side effect, which a restarted process reads back.

Marking before acting means a crash between the mark and the pause skips
the pause once.  Firing the pause and the notification twice is the worse
failure, so that is the trade made here.
"""

from __future__ import annotations

import logging

from sleeptimer.core.ports import NotifyAction, PauseAction
from sleeptimer.core.store import TimerRepository
from sleeptimer.core.timer import TimerState
from sleeptimer.core.wake import TIMER_WAKES, WakePort

logger = logging.getLogger(__name__)

EXPIRED_TITLE = "Sleep timer expired"
PAUSED_MESSAGE = "Your playback has been paused. Sweet dreams!"
NOT_PAUSED_MESSAGE = "Your sleep timer ended, but playback could not be paused."


class ExpirationGuard:
    """Runs expiration side effects at most once per timer.

    *window_seconds* is how long a persisted mark suppresses further
    attempts on the same record.  With *show_notifications* off the notify
    port is never called.
    """

    def __init__(
        self,
        repository: TimerRepository,
        wakes: WakePort,
        pause_action: PauseAction,
        notify_action: NotifyAction,
        window_seconds: float = 5.0,
        show_notifications: bool = True,
    ) -> None:
        self._repository = repository
        self._wakes = wakes
        self._pause_action = pause_action
        self._notify_action = notify_action
        self._window_ms = int(window_seconds * 1000)
        self._show_notifications = show_notifications
        self._running = False

    @property
    def running(self) -> bool:
        """Whether this guard is inside an expiration right now."""
        return self._running

    def maybe_expire(self, now_ms: int) -> bool:
        """Expire the persisted timer if it is due and not already handled.

        Returns ``True`` only for the invocation that ran the side effects.
        Store failures before the dedup mark propagate; nothing has fired yet.
        """
        record = self._repository.load()
        if record is None or record.status != TimerState.ACTIVE:
            return False
        if record.remaining_at(now_ms) > 0:
            return False
        if self._running:
            logger.debug("Expiration already running in this process")
            return False

        # A mark older than the record belongs to an earlier timer.
        last = self._repository.last_expiration_handled_at()
        if last is not None and last > record.started_at_ms and now_ms - last < self._window_ms:
            logger.info("Expiration already handled %dms ago; skipping", now_ms - last)
            return False

        self._running = True
        try:
            self._repository.mark_expiration_handled(now_ms)
            self._disarm()

            record.expire()
            self._repository.save(record)
            logger.info("Timer for %r expired", record.resource_id)

            paused = self._pause(record.resource_id)
            self._notify(paused)

            self._repository.delete()
        finally:
            self._running = False
        return True

    # -- best-effort steps ---------------------------------------------------

    def _disarm(self) -> None:
        for name in TIMER_WAKES:
            try:
                self._wakes.cancel(name)
            except OSError:
                logger.warning("Could not cancel wake %s", name, exc_info=True)

    def _pause(self, resource_id: str) -> bool:
        try:
            paused = bool(self._pause_action(resource_id))
        except Exception:
            logger.warning("Pause action failed for %r", resource_id, exc_info=True)
            return False
        if not paused:
            logger.warning("Pause action reported failure for %r", resource_id)
        return paused

    def _notify(self, paused: bool) -> None:
        if not self._show_notifications:
            return
        try:
            self._notify_action(EXPIRED_TITLE, PAUSED_MESSAGE if paused else NOT_PAUSED_MESSAGE)
        except Exception:
            logger.warning("Notification failed", exc_info=True)
