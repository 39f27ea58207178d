# src/orasan_timers/timers/sync.py

from __future__ import annotations

"""
Sync coordinator.

Wraps every single-timer action with:
  snapshot -> optimistic apply -> gateway call -> merge | rollback

Ordering:
- mutations for one task run strictly one after another (per-task asyncio.Lock,
  FIFO), so a rollback or confirmation always lands on the snapshot it was
  issued against;
- legality check, limit check and optimistic apply happen with no `await` in
  between, so two starts racing on different tasks cannot both slip under the cap.

Cancellation:
- each mutation runs in its own asyncio.Task and is exposed as a MutationRequest;
- cancelling the request's token (or the coroutine awaiting it) only detaches
  the caller: the underlying task still resolves and updates the TimerStore.
"""

import asyncio
import contextlib
import logging
import time
from collections import Counter
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field

from ..core.errors import NetworkFailure, NotFoundError, TimerError
from ..core.ports import PersistenceGateway
from ..core.result import Err, Ok, Result
from .limits import LimitPolicy
from .models import Timer, TimerAction
from .reconcile import merge_server_fields
from .state_machine import transition
from .store import TimerStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# Actions that invalidate the running display: the tick is frozen from the
# moment they are initiated until they resolve.
FREEZING_ACTIONS = frozenset({TimerAction.PAUSE, TimerAction.STOP, TimerAction.RESET})
LIMITED_ACTIONS = frozenset({TimerAction.START, TimerAction.RESUME})


class CancelToken:
    """Lets a torn-down caller detach from a pending mutation."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(slots=True)
class MutationRequest:
    task_id: str
    action: TimerAction
    token: CancelToken
    _task: asyncio.Task = field(repr=False)

    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> Result[Timer | None]:
        """
        Await the outcome.

        Shielded: if the awaiting coroutine is cancelled, the mutation itself
        keeps going and still reaches the store.
        """
        return await asyncio.shield(self._task)

    def on_settled(self, callback: Callable[[Result[Timer | None]], None]) -> None:
        """Invoke `callback` with the result unless the token was cancelled by then."""

        def _done(task: asyncio.Task) -> None:
            if self.token.cancelled or task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                return
            try:
                callback(task.result())
            except Exception:
                logger.exception("Mutation callback failed task_id=%s action=%s", self.task_id, self.action.value)

        self._task.add_done_callback(_done)


class SyncCoordinator:
    def __init__(
            self,
            store: TimerStore,
            gateway: PersistenceGateway,
            limits: LimitPolicy,
            *,
            clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._limits = limits
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self._freezes: Counter[str] = Counter()
        self._inflight: set[asyncio.Task] = set()
        self.batch_lock = asyncio.Lock()

    @property
    def store(self) -> TimerStore:
        return self._store

    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    def now(self) -> float:
        return self._clock()

    # ---- ordering primitives (shared with BatchOperator) ----

    @contextlib.asynccontextmanager
    async def locked(self, task_id: str) -> AsyncIterator[None]:
        """
        Hold the per-task lock of `task_id`.

        A lock only lives while someone holds or waits for it; the last user
        out removes it.
        """
        lock = self._locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[task_id] = lock
        self._lock_users[task_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[task_id] -= 1
            if self._lock_users[task_id] <= 0:
                del self._lock_users[task_id]
                self._locks.pop(task_id, None)

    def lock_count(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, task_ids: Iterable[str]) -> AsyncIterator[None]:
        """Acquire the per-task locks of several tasks (sorted, to keep a global order)."""
        async with contextlib.AsyncExitStack() as stack:
            for task_id in sorted(set(task_ids)):
                await stack.enter_async_context(self.locked(task_id))
            yield

    def frozen_ids(self) -> set[str]:
        """Tasks with at least one freezing mutation or batch still in flight."""
        return set(self._freezes)

    def freeze(self, task_ids: Iterable[str]) -> None:
        now = self._clock()
        for task_id in task_ids:
            self._freezes[task_id] += 1
            self._store.freeze(task_id, now)

    def thaw(self, task_ids: Iterable[str]) -> None:
        for task_id in task_ids:
            self._freezes[task_id] -= 1
            if self._freezes[task_id] <= 0:
                del self._freezes[task_id]
                self._store.unfreeze(task_id)

    # ---- public API ----

    def dispatch(
            self,
            task_id: str,
            action: TimerAction,
            *,
            project_id: str | None = None,
            confirmed: bool = False,
            token: CancelToken | None = None,
    ) -> MutationRequest:
        """Queue a mutation and return immediately. Must be called from the event loop."""
        token = token or CancelToken()
        freezing = action in FREEZING_ACTIONS
        if freezing:
            self.freeze([task_id])

        task = asyncio.get_running_loop().create_task(
            self._run(task_id, action, project_id=project_id, confirmed=confirmed, freezing=freezing),
            name=f"timer-{action.value}-{task_id}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return MutationRequest(task_id=task_id, action=action, token=token, _task=task)

    async def submit(
            self,
            task_id: str,
            action: TimerAction,
            *,
            project_id: str | None = None,
            confirmed: bool = False,
            token: CancelToken | None = None,
    ) -> Result[Timer | None]:
        request = self.dispatch(task_id, action, project_id=project_id, confirmed=confirmed, token=token)
        return await request.wait()

    async def drain(self) -> None:
        """Wait for every in-flight mutation (shutdown / tests)."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ---- internals ----

    async def _run(
            self,
            task_id: str,
            action: TimerAction,
            *,
            project_id: str | None,
            confirmed: bool,
            freezing: bool,
    ) -> Result[Timer | None]:
        try:
            async with self.locked(task_id):
                return await self._apply(task_id, action, project_id=project_id, confirmed=confirmed)
        finally:
            if freezing:
                self.thaw([task_id])

    async def _apply(
            self,
            task_id: str,
            action: TimerAction,
            *,
            project_id: str | None,
            confirmed: bool,
    ) -> Result[Timer | None]:
        now = self._clock()
        current = self._store.get(task_id)

        result = transition(
            current,
            action,
            now=now,
            task_id=task_id,
            project_id=project_id,
            confirmed=confirmed,
        )
        if not result.ok:
            logger.info("Timer %s rejected task_id=%s: %s", action.value, task_id, result.error.message)
            return result

        nxt = result.value
        if nxt is current:
            logger.debug("Timer %s is a no-op task_id=%s", action.value, task_id)
            return Ok(current)

        if action in LIMITED_ACTIONS:
            limit_error = self._limits.check(self._store.all(), task_id=task_id)
            if limit_error is not None:
                logger.info("Timer %s rejected task_id=%s: %s", action.value, task_id, limit_error.message)
                return Err(limit_error)

        snapshot = self._store.snapshot(task_id)
        self._store.commit(task_id, nxt)

        try:
            persisted = await self._persist(action, snapshot, nxt)
        except NotFoundError as exc:
            if action == TimerAction.CLEAR:
                logger.info("Timer already gone on server task_id=%s; clear kept", task_id)
                return Ok(None)
            self._store.restore({task_id: snapshot})
            logger.warning("Timer %s rolled back task_id=%s: %s", action.value, task_id, exc.message)
            return Err(exc)
        except TimerError as exc:
            self._store.restore({task_id: snapshot})
            logger.warning("Timer %s rolled back task_id=%s: %s", action.value, task_id, exc.message)
            return Err(exc)
        except asyncio.CancelledError:
            self._store.restore({task_id: snapshot})
            raise
        except Exception as exc:
            self._store.restore({task_id: snapshot})
            logger.exception("Timer %s failed unexpectedly task_id=%s; rolled back", action.value, task_id)
            return Err(NetworkFailure(str(exc) or type(exc).__name__, task_id=task_id))

        if nxt is None:
            logger.info("Timer cleared task_id=%s", task_id)
            return Ok(None)

        merged = merge_server_fields(nxt, persisted)
        if merged is not nxt:
            self._store.commit(task_id, merged)
        logger.info(
            "Timer %s confirmed task_id=%s status=%s seconds=%.0f",
            action.value,
            task_id,
            merged.status.value,
            merged.accumulated_seconds,
        )
        return Ok(merged)

    async def _persist(self, action: TimerAction, snapshot: Timer | None, nxt: Timer | None) -> Timer | None:
        if action == TimerAction.START:
            assert nxt is not None and nxt.started_at is not None
            return await self._gateway.create_timer(nxt.task_id, nxt.project_id, started_at=nxt.started_at)

        if action == TimerAction.CLEAR:
            if snapshot is None or snapshot.server_id is None:
                return None
            await self._gateway.delete_timer(snapshot.server_id)
            return None

        assert nxt is not None
        if nxt.server_id is None:
            raise NotFoundError("Timer has no persisted record yet", task_id=nxt.task_id)
        return await self._gateway.update_timer(
            nxt.server_id,
            nxt.status,
            nxt.accumulated_seconds,
            started_at=nxt.started_at,
            ended_at=nxt.ended_at,
        )
