"""Host loop: redelivers deferred wakes and drives the fast countdown."""

from __future__ import annotations

import logging
import time
from typing import Callable

from sleeptimer.core.engine import TimerEngine
from sleeptimer.core.timer import StoreUnavailableError
from sleeptimer.core.wake import FileWakeScheduler, InMemoryWakeScheduler

logger = logging.getLogger(__name__)


class Daemon:
    """Reconciles on startup, then polls due wakes and ticks every *interval*.

    Killing the daemon loses nothing: wakes stay on disk and the next
    daemon (or ``--once`` run from cron) reconciles from the store.
    """

    def __init__(
        self,
        engine: TimerEngine,
        scheduler: FileWakeScheduler | InMemoryWakeScheduler,
        interval: float | None = None,
    ) -> None:
        self._engine = engine
        self._scheduler = scheduler
        self._interval = (
            interval if interval is not None else engine.settings.countdown_interval_seconds
        )

    def run_once(self) -> list[str]:
        """Deliver every due wake, then tick.  Returns the delivered wake names."""
        try:
            due = self._scheduler.pop_due(self._engine.now_ms())
        except OSError:
            logger.warning("Could not read the wake schedule", exc_info=True)
            due = []
        for name in due:
            logger.debug("Delivering wake %s", name)
            self._engine.on_wake(name)
        self._engine.tick()
        return due

    def run(
        self,
        max_iterations: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        try:
            self._engine.reconcile()
        except StoreUnavailableError:
            logger.warning("Startup reconciliation failed; relying on wakes", exc_info=True)

        iterations = 0
        while max_iterations is None or iterations < max_iterations:
            self.run_once()
            iterations += 1
            if max_iterations is None or iterations < max_iterations:
                sleep(self._interval)
