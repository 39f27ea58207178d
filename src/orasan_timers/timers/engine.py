# src/orasan_timers/timers/engine.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from ..core.errors import NetworkFailure, TimerError
from ..core.ports import PersistenceGateway
from ..core.result import Err, Ok, Result
from .batch import BatchOperator, BatchOutcome
from .limits import LimitPolicy
from .models import Timer, TimerAction
from .store import TimerStore
from .sync import CancelToken, MutationRequest, SyncCoordinator
from .view import TimerView, build_view

logger = logging.getLogger(__name__)


class TimerEngine:
    """
    Action entry points for the presentation layer.

    Owns one TimerStore per session and routes every mutation through the
    SyncCoordinator (single timer) or the BatchOperator (pause-all/stop-all).
    Reads (views, counts) come straight from the store.
    """

    def __init__(
            self,
            gateway: PersistenceGateway,
            *,
            max_running: int | None = None,
            store: TimerStore | None = None,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store if store is not None else TimerStore()
        self.limits = LimitPolicy(max_running)
        self.gateway = gateway
        self._clock = clock
        self.coordinator = SyncCoordinator(self.store, gateway, self.limits, clock=clock)
        self.batch = BatchOperator(self.coordinator)

    # ---- single-timer actions ----

    async def start(self, task_id: str, project_id: str, *, token: CancelToken | None = None) -> Result[Timer | None]:
        return await self.coordinator.submit(task_id, TimerAction.START, project_id=project_id, token=token)

    async def pause(self, task_id: str, *, token: CancelToken | None = None) -> Result[Timer | None]:
        return await self.coordinator.submit(task_id, TimerAction.PAUSE, token=token)

    async def resume(self, task_id: str, *, token: CancelToken | None = None) -> Result[Timer | None]:
        return await self.coordinator.submit(task_id, TimerAction.RESUME, token=token)

    async def stop(self, task_id: str, *, token: CancelToken | None = None) -> Result[Timer | None]:
        return await self.coordinator.submit(task_id, TimerAction.STOP, token=token)

    async def reset(
            self,
            task_id: str,
            *,
            confirmed: bool = False,
            token: CancelToken | None = None,
    ) -> Result[Timer | None]:
        return await self.coordinator.submit(task_id, TimerAction.RESET, confirmed=confirmed, token=token)

    async def clear(self, task_id: str, *, token: CancelToken | None = None) -> Result[Timer | None]:
        return await self.coordinator.submit(task_id, TimerAction.CLEAR, token=token)

    def dispatch(
            self,
            task_id: str,
            action: TimerAction,
            *,
            project_id: str | None = None,
            confirmed: bool = False,
            token: CancelToken | None = None,
    ) -> MutationRequest:
        """Fire-and-track variant for callers that may be torn down before the response."""
        return self.coordinator.dispatch(task_id, action, project_id=project_id, confirmed=confirmed, token=token)

    # ---- batch actions ----

    async def pause_all(self, timer_ids: Sequence[str]) -> Result[BatchOutcome]:
        return await self.batch.pause_all(timer_ids)

    async def stop_all(self, project_id: str) -> Result[BatchOutcome]:
        return await self.batch.stop_all(project_id)

    async def pause_all_running(self) -> Result[BatchOutcome]:
        return await self.batch.pause_all_running()

    # ---- sync with the gateway ----

    async def load(self) -> Result[int]:
        """Replace the store with the gateway's active timers."""
        await self.coordinator.drain()
        try:
            timers = await self.gateway.list_active_timers()
        except TimerError as exc:
            logger.warning("Failed to load timers: %s", exc.message)
            return Err(exc)
        except Exception as exc:
            logger.exception("Failed to load timers")
            return Err(NetworkFailure(str(exc) or type(exc).__name__))
        self.store.replace_all(timers, keep_frozen=self.coordinator.frozen_ids())
        logger.info("Loaded %d active timer(s) from gateway", len(timers))
        return Ok(len(timers))

    async def refresh_timer_for_task(self, task_id: str) -> Result[Timer | None]:
        """Adopt the gateway's view of one task (the gateway wins on mismatch)."""
        async with self.coordinator.locked(task_id):
            try:
                server = await self.gateway.get_timer_for_task(task_id)
            except TimerError as exc:
                logger.warning("Failed to refresh timer task_id=%s: %s", task_id, exc.message)
                return Err(exc)
            except Exception as exc:
                logger.exception("Failed to refresh timer task_id=%s", task_id)
                return Err(NetworkFailure(str(exc) or type(exc).__name__, task_id=task_id))
            self.store.commit(task_id, server)
            return Ok(server)

    # ---- reads ----

    def set_max_running(self, value: int | None) -> None:
        self.limits.set_max_running(value)

    def running_count(self) -> int:
        return len(self.store.running())

    def get_timer(self, task_id: str) -> Timer | None:
        return self.store.get(task_id)

    def view(self, task_id: str) -> TimerView:
        return build_view(self.store, task_id, self._clock())

    def views(self) -> list[TimerView]:
        now = self._clock()
        return [build_view(self.store, t.task_id, now) for t in self.store.all()]

    async def aclose(self) -> None:
        await self.coordinator.drain()
        await self.gateway.aclose()
