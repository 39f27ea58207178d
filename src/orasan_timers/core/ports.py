# src/orasan_timers/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the timer engine.

The engine depends on Protocols instead of concrete gateways.
This keeps the persistence side swappable (SQLite, REST API) and makes testing easier.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from ..timers.models import Timer, TimerStatus


class PersistenceGateway(Protocol):
    """
    Remote CRUD for time records; authoritative on conflict.

    Every method is a suspension point. Implementations raise the typed
    errors from core.errors:
    - ConflictError: a record already exists for the task (create)
    - NotFoundError: the targeted record is gone (update/delete)
    - BatchValidationError: not every id in a batch is eligible
    - NetworkFailure: transport/server failure (retryable)
    """

    async def create_timer(self, task_id: str, project_id: str, *, started_at: float) -> Timer: ...

    async def update_timer(
            self,
            server_id: str,
            status: TimerStatus,
            accumulated_seconds: float,
            *,
            started_at: float | None = None,
            ended_at: float | None = None,
    ) -> Timer: ...

    async def delete_timer(self, server_id: str) -> None: ...

    async def batch_transition(
            self,
            server_ids: Sequence[str],
            target_status: TimerStatus,
            *,
            at: float,
            durations: Mapping[str, float],
            project_id: str | None = None,
    ) -> int: ...

    async def list_active_timers(self, project_id: str | None = None) -> list[Timer]: ...

    async def get_timer_for_task(self, task_id: str) -> Timer | None: ...

    async def aclose(self) -> None: ...


class TickListener(Protocol):
    """Receives fresh view models for running timers on every tick."""

    def __call__(self, views: Sequence[Any]) -> None: ...
