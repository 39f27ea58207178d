# src/orasan_timers/timers/store.py

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterable, Mapping

from .models import Timer, TimerStatus
from .reconcile import Snapshot, apply_timer, restore_snapshots, take_snapshot, take_snapshots

logger = logging.getLogger(__name__)

StoreListener = Callable[[Mapping[str, Timer | None]], None]


class TimerStore:
    """
    In-memory timers, one per task. Single source of truth for the UI.

    Construct one per session and pass it by reference.

    Write access:
    - only the SyncCoordinator and BatchOperator call commit/restore/replace_all,
      always with a value produced by the state machine or read from the gateway.

    Listeners receive {task_id: timer_or_None} for every task touched by one
    write, so a batch produces a single notification.
    """

    def __init__(self) -> None:
        self._timers: dict[str, Timer] = {}
        self._frozen: dict[str, float] = {}
        self._listeners: list[StoreListener] = []

    # ---- reads ----

    def get(self, task_id: str) -> Timer | None:
        return self._timers.get(task_id)

    def all(self) -> list[Timer]:
        return list(self._timers.values())

    def running(self) -> list[Timer]:
        return [t for t in self._timers.values() if t.status == TimerStatus.RUNNING]

    def paused(self) -> list[Timer]:
        return [t for t in self._timers.values() if t.status == TimerStatus.PAUSED]

    def active(self) -> list[Timer]:
        return [t for t in self._timers.values() if t.is_active]

    def by_project(self, project_id: str) -> list[Timer]:
        return [t for t in self._timers.values() if t.project_id == project_id]

    def by_server_id(self, server_id: str) -> Timer | None:
        for t in self._timers.values():
            if t.server_id == server_id:
                return t
        return None

    def snapshot(self, task_id: str) -> Snapshot:
        return take_snapshot(self._timers, task_id)

    def snapshots(self, task_ids: Iterable[str]) -> dict[str, Snapshot]:
        return take_snapshots(self._timers, task_ids)

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._timers

    # ---- display freezing (tick suspension) ----

    def freeze(self, task_id: str, now: float) -> None:
        """Pin the displayed duration while a pause/stop/reset is in flight."""
        timer = self._timers.get(task_id)
        if timer is None or task_id in self._frozen:
            return
        self._frozen[task_id] = timer.elapsed(now)

    def unfreeze(self, task_id: str) -> None:
        self._frozen.pop(task_id, None)

    def is_frozen(self, task_id: str) -> bool:
        return task_id in self._frozen

    def display_seconds(self, task_id: str, now: float) -> float:
        frozen = self._frozen.get(task_id)
        if frozen is not None:
            return frozen
        timer = self._timers.get(task_id)
        return timer.elapsed(now) if timer is not None else 0.0

    # ---- writes ----

    def commit(self, task_id: str, timer: Timer | None) -> None:
        if timer is not None and timer.task_id != task_id:
            raise ValueError(f"timer.task_id={timer.task_id} does not match key {task_id}")
        self._timers = apply_timer(self._timers, task_id, timer)
        self._notify({task_id: timer})

    def commit_many(self, timers: Mapping[str, Timer | None]) -> None:
        if not timers:
            return
        out = self._timers
        for task_id, timer in timers.items():
            out = apply_timer(out, task_id, timer)
        self._timers = out
        self._notify(dict(timers))

    def restore(self, snapshots: Mapping[str, Snapshot]) -> None:
        if not snapshots:
            return
        self._timers = restore_snapshots(self._timers, snapshots)
        self._notify(dict(snapshots))

    def replace_all(self, timers: Iterable[Timer], *, keep_frozen: Iterable[str] = ()) -> None:
        """
        Swap the whole registry (initial load from the gateway).

        Freezes are dropped except for `keep_frozen` tasks that are still present:
        those have a pause/stop in flight that will unfreeze them when it resolves.
        """
        old_keys = set(self._timers)
        fresh = {t.task_id: t for t in timers}
        self._timers = fresh
        keep = set(keep_frozen) & set(fresh)
        self._frozen = {tid: secs for tid, secs in self._frozen.items() if tid in keep}
        changed: dict[str, Timer | None] = {k: None for k in old_keys - set(fresh)}
        changed.update(fresh)
        logger.debug("TimerStore replaced: %d timers", len(fresh))
        self._notify(changed)

    # ---- subscribe / notify ----

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, changed: Mapping[str, Timer | None]) -> None:
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception:
                logger.exception("TimerStore listener failed")
