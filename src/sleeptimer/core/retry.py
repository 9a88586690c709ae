"""Retry with backoff, shared by every collaborator that can fail transiently."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


def retry_with_backoff(
    func: Callable[[], T],
    delays: Iterable[float],
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *func*, retrying after each delay in *delays* when it raises *retry_on*.

    The total number of attempts is ``len(delays) + 1``.  The last failure is
    re-raised unchanged.
    """
    for attempt, delay in enumerate(delays, start=1):
        try:
            return func()
        except retry_on as exc:
            logger.debug("Attempt %d failed (%s); retrying in %.2fs", attempt, exc, delay)
            sleep(delay)
    return func()
