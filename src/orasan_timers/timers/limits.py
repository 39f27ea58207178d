# src/orasan_timers/timers/limits.py

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.errors import LimitExceededError
from .models import Timer, TimerStatus

logger = logging.getLogger(__name__)


class LimitPolicy:
    """
    Plan-tier cap on simultaneously running timers.

    The cap is an opaque integer handed over by the billing side; None (or a
    non-positive value) means unlimited. The running set must be read from
    the store at the moment of the check, never from a cached count.
    """

    def __init__(self, max_running: int | None = None) -> None:
        self._max_running = self._normalize(max_running)

    @staticmethod
    def _normalize(value: int | None) -> int | None:
        if value is None:
            return None
        value = int(value)
        return value if value > 0 else None

    @property
    def max_running(self) -> int | None:
        return self._max_running

    def set_max_running(self, value: int | None) -> None:
        self._max_running = self._normalize(value)
        logger.info("Timer limit set to %s", self._max_running or "unlimited")

    def check(self, timers: Iterable[Timer], *, task_id: str) -> LimitExceededError | None:
        """
        Return an error if starting/resuming `task_id` would exceed the cap.

        The task's own timer is excluded from the count (it is not running
        when start/resume is legal anyway).
        """
        limit = self._max_running
        if limit is None:
            return None
        running = sum(1 for t in timers if t.status == TimerStatus.RUNNING and t.task_id != task_id)
        if running >= limit:
            return LimitExceededError(
                f"You can run at most {limit} timer(s) at once on your plan",
                task_id=task_id,
                limit=limit,
                running=running,
            )
        return None

    def remaining(self, timers: Iterable[Timer]) -> int | None:
        if self._max_running is None:
            return None
        running = sum(1 for t in timers if t.status == TimerStatus.RUNNING)
        return max(0, self._max_running - running)
