# src/orasan_timers/timers/batch.py

from __future__ import annotations

"""
Batch operator: pause-all and stop-all as single all-or-nothing units.

Both operations follow the same shape:
1. serialize with other batches and lock every affected task,
2. read the authoritative active set from the gateway,
3. validate every entry through the state machine (no writes yet),
4. apply everything optimistically in one store write,
5. persist with one gateway batch call; roll everything back on failure,
6. for stops, read the rows back to adopt the server's end_time.
"""

import contextlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.errors import BatchValidationError, NetworkFailure, TimerError
from ..core.result import Err, Ok, Result
from .models import Timer, TimerAction, TimerStatus
from .reconcile import merge_server_fields
from .state_machine import transition
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    target_status: TimerStatus
    requested_count: int
    applied_count: int
    at: float | None
    timers: tuple[Timer, ...] = ()


class BatchOperator:
    def __init__(self, coordinator: SyncCoordinator) -> None:
        self._coordinator = coordinator
        self._store = coordinator.store
        self._gateway = coordinator.gateway

    async def pause_all(self, timer_ids: Sequence[str]) -> Result[BatchOutcome]:
        """
        Pause every timer in `timer_ids` (server ids) or none of them.

        The batch is rejected unless every requested id is verifiably running
        on the server. The error carries valid/requested counts for messaging.
        """
        requested = list(timer_ids)
        if not requested:
            return Err(BatchValidationError("No timers to pause", valid_count=0, requested_count=0))

        local_ids = [t.task_id for sid in requested if (t := self._store.by_server_id(sid)) is not None]
        self._coordinator.freeze(local_ids)
        try:
            async with self._coordinator.batch_lock, contextlib.AsyncExitStack() as stack:
                await stack.enter_async_context(self._coordinator.hold(local_ids))
                now = self._coordinator.now()

                server_active = await self._fetch_active(None)
                if not server_active.ok:
                    return server_active

                running = {t.server_id: t for t in server_active.value if t.status == TimerStatus.RUNNING and t.server_id}
                valid = {sid for sid in requested if sid in running}
                if len(valid) != len(requested):
                    logger.info("pause_all rejected: %d/%d timers valid", len(valid), len(requested))
                    return Err(BatchValidationError(valid_count=len(valid), requested_count=len(requested)))

                extra = [running[sid].task_id for sid in requested if running[sid].task_id not in local_ids]
                await stack.enter_async_context(self._coordinator.hold(extra))

                bases = [self._base_for(running[sid]) for sid in requested]
                return await self._apply(bases, TimerAction.PAUSE, TimerStatus.PAUSED, now=now, project_id=None)
        finally:
            self._coordinator.thaw(local_ids)

    async def stop_all(self, project_id: str) -> Result[BatchOutcome]:
        """
        Stop every running/paused timer of a project with one shared ended_at.

        Used to freeze a project's tracked time before invoicing.
        """
        local_ids = [t.task_id for t in self._store.by_project(project_id) if t.is_active]
        self._coordinator.freeze(local_ids)
        try:
            async with self._coordinator.batch_lock, contextlib.AsyncExitStack() as stack:
                await stack.enter_async_context(self._coordinator.hold(local_ids))
                now = self._coordinator.now()

                server_active = await self._fetch_active(project_id)
                if not server_active.ok:
                    return server_active

                active = [t for t in server_active.value if t.is_active and t.project_id == project_id]
                if not active:
                    logger.info("stop_all: no active timers for project=%s", project_id)
                    return Ok(BatchOutcome(TimerStatus.STOPPED, requested_count=0, applied_count=0, at=None))

                extra = [t.task_id for t in active if t.task_id not in local_ids]
                await stack.enter_async_context(self._coordinator.hold(extra))

                bases = [self._base_for(t) for t in active]
                return await self._apply(bases, TimerAction.STOP, TimerStatus.STOPPED, now=now, project_id=project_id)
        finally:
            self._coordinator.thaw(local_ids)

    async def pause_all_running(self) -> Result[BatchOutcome]:
        """Pause whatever is running locally (e.g. before signing out)."""
        ids = [t.server_id for t in self._store.running() if t.server_id]
        if not ids:
            return Ok(BatchOutcome(TimerStatus.PAUSED, requested_count=0, applied_count=0, at=None))
        return await self.pause_all(ids)

    # ---- internals ----

    async def _fetch_active(self, project_id: str | None) -> Result[list[Timer]]:
        try:
            return Ok(await self._gateway.list_active_timers(project_id))
        except TimerError as exc:
            logger.warning("Batch: could not fetch active timers project=%s: %s", project_id, exc.message)
            return Err(exc)
        except Exception as exc:
            logger.exception("Batch: fetching active timers failed project=%s", project_id)
            return Err(NetworkFailure(str(exc) or type(exc).__name__))

    def _base_for(self, server_timer: Timer) -> Timer:
        """Prefer the local timer when it describes the same record in the same status."""
        local = self._store.get(server_timer.task_id)
        if local is not None and local.server_id == server_timer.server_id and local.status == server_timer.status:
            return local
        return server_timer

    async def _read_back(self, timers: dict[str, Timer]) -> dict[str, Timer]:
        """Merge the server's canonical timestamps into freshly stopped timers."""
        out: dict[str, Timer] = {}
        for task_id, local in timers.items():
            try:
                server = await self._gateway.get_timer_for_task(task_id)
            except TimerError as exc:
                logger.warning("Batch: could not read back task_id=%s: %s", task_id, exc.message)
                server = None
            except Exception:
                logger.exception("Batch: reading back task_id=%s failed", task_id)
                server = None
            if server is not None and server.server_id == local.server_id and server.status == local.status:
                out[task_id] = merge_server_fields(local, server)
            else:
                out[task_id] = local
        return out

    async def _apply(
            self,
            bases: list[Timer],
            action: TimerAction,
            target: TimerStatus,
            *,
            now: float,
            project_id: str | None,
    ) -> Result[BatchOutcome]:
        # One shared instant, never before a start that landed while the batch queued.
        at = max([now, *(b.started_at for b in bases if b.started_at is not None)])

        # Validate everything first.
        nexts: dict[str, Timer] = {}
        for base in bases:
            res = transition(base, action, now=at, task_id=base.task_id)
            if not res.ok:
                logger.info("%s batch rejected at task_id=%s: %s", action.value, base.task_id, res.error.message)
                return res
            assert res.value is not None
            nexts[base.task_id] = res.value

        # Then apply everything.
        snapshots = self._store.snapshots(nexts)
        self._store.commit_many(nexts)

        server_ids = [t.server_id for t in nexts.values() if t.server_id]
        durations = {t.server_id: t.accumulated_seconds for t in nexts.values() if t.server_id}
        try:
            applied = await self._gateway.batch_transition(
                server_ids,
                target,
                at=at,
                durations=durations,
                project_id=project_id,
            )
        except TimerError as exc:
            self._store.restore(snapshots)
            logger.warning("%s batch rolled back (%d timers): %s", action.value, len(nexts), exc.message)
            return Err(exc)
        except Exception as exc:
            self._store.restore(snapshots)
            logger.exception("%s batch failed unexpectedly; rolled back %d timers", action.value, len(nexts))
            return Err(NetworkFailure(str(exc) or type(exc).__name__))

        if applied != len(server_ids):
            logger.warning("%s batch: server applied %d of %d", action.value, applied, len(server_ids))

        confirmed = {tid: t.evolve(updated_at=at) for tid, t in nexts.items()}
        if target == TimerStatus.STOPPED:
            # The server stamps end_time itself.
            confirmed = await self._read_back(confirmed)
        self._store.commit_many(confirmed)
        logger.info("%s batch confirmed: %d timer(s)", action.value, len(confirmed))
        return Ok(
            BatchOutcome(
                target_status=target,
                requested_count=len(bases),
                applied_count=applied,
                at=at,
                timers=tuple(confirmed.values()),
            )
        )
