# src/orasan_timers/timers/ticker.py

from __future__ import annotations

"""
Display tick.

A small polling loop that, every interval:
- collects running timers that are not frozen by an in-flight pause/stop,
- recomputes their elapsed time from started_at,
- hands the resulting view models to a listener.

The tick never writes to the store and never feeds persisted duration.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from ..core.ports import TickListener
from .store import TimerStore
from .view import TimerView, build_view

logger = logging.getLogger(__name__)


def collect_tick(store: TimerStore, now: float) -> list[TimerView]:
    return [build_view(store, t.task_id, now) for t in store.running() if not store.is_frozen(t.task_id)]


async def run_ticker(
        store: TimerStore,
        on_tick: TickListener,
        *,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
) -> None:
    """
    Refresh loop for running timers.

    To stop the ticker, cancel the coroutine/task.
    """
    sleep_s = max(0.05, float(interval_seconds))

    while True:
        try:
            views = collect_tick(store, clock())
            if views:
                on_tick(views)
        except Exception:
            logger.exception("tick listener failed")

        await asyncio.sleep(sleep_s)
