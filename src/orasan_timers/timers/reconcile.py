# src/orasan_timers/timers/reconcile.py

from __future__ import annotations

"""
Snapshot / restore / merge helpers.

All functions are pure and transport-agnostic: they take and return plain
mappings of task_id -> Timer. Timers are immutable, so a snapshot is simply
the Timer object (or None) that was current before a mutation.
"""

from collections.abc import Iterable, Mapping

from .models import Timer, TimerStatus

Snapshot = Timer | None


def take_snapshot(timers: Mapping[str, Timer], task_id: str) -> Snapshot:
    return timers.get(task_id)


def take_snapshots(timers: Mapping[str, Timer], task_ids: Iterable[str]) -> dict[str, Snapshot]:
    return {tid: timers.get(tid) for tid in task_ids}


def apply_timer(timers: Mapping[str, Timer], task_id: str, timer: Timer | None) -> dict[str, Timer]:
    """Return a new mapping with `task_id` set to `timer` (removed when None)."""
    out = dict(timers)
    if timer is None:
        out.pop(task_id, None)
    else:
        out[task_id] = timer
    return out


def restore_snapshot(timers: Mapping[str, Timer], task_id: str, snapshot: Snapshot) -> dict[str, Timer]:
    """Put back exactly what the snapshot held, including absence."""
    return apply_timer(timers, task_id, snapshot)


def restore_snapshots(timers: Mapping[str, Timer], snapshots: Mapping[str, Snapshot]) -> dict[str, Timer]:
    out = dict(timers)
    for task_id, snap in snapshots.items():
        out = restore_snapshot(out, task_id, snap)
    return out


def merge_server_fields(local: Timer, server: Timer | None) -> Timer:
    """
    Fold server-assigned fields into the optimistic local timer.

    The local status/duration are what we asked the server to persist, so they
    stay. The server owns: server_id and the canonical timestamps. Timestamps
    are only taken where the local status allows them (started_at iff running,
    ended_at iff stopped).
    """
    if server is None:
        return local

    started_at = local.started_at
    ended_at = local.ended_at
    if local.status == TimerStatus.RUNNING and server.started_at is not None:
        started_at = server.started_at
    if local.status == TimerStatus.STOPPED and server.ended_at is not None:
        ended_at = server.ended_at

    return local.evolve(
        server_id=server.server_id or local.server_id,
        started_at=started_at,
        ended_at=ended_at,
        updated_at=server.updated_at if server.updated_at is not None else local.updated_at,
    )
