# src/orasan_timers/timers/models.py

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum


class TimerStatus(StrEnum):
    """Persisted timer status (matches the time_entries.timer_status column)."""

    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"

    @classmethod
    def from_db(cls, raw: str | None) -> TimerStatus:
        if not raw:
            return cls.PAUSED
        try:
            return cls(raw)
        except ValueError:
            return cls.PAUSED


class TimerPhase(StrEnum):
    """
    State-machine phase of a task.

    Same as TimerStatus plus IDLE, which means "no record for this task".
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class TimerAction(StrEnum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    RESET = "reset"
    CLEAR = "clear"


ACTIVE_STATUSES = frozenset({TimerStatus.RUNNING, TimerStatus.PAUSED})


@dataclass(frozen=True, slots=True)
class Timer:
    """
    One logical timer per task.

    Instances are immutable: every transition builds a new value, so any
    instance doubles as a snapshot for rollback.

    Invariants (checked on construction):
    - started_at is set iff status == running
    - ended_at is set iff status == stopped
    - accumulated_seconds >= 0
    """

    task_id: str
    project_id: str
    status: TimerStatus
    started_at: float | None = None
    accumulated_seconds: float = 0.0
    server_id: str | None = None
    ended_at: float | None = None
    updated_at: float | None = None

    def __post_init__(self) -> None:
        running = self.status == TimerStatus.RUNNING
        stopped = self.status == TimerStatus.STOPPED
        if running != (self.started_at is not None):
            raise ValueError(f"started_at must be set iff running (task_id={self.task_id})")
        if stopped != (self.ended_at is not None):
            raise ValueError(f"ended_at must be set iff stopped (task_id={self.task_id})")
        if self.accumulated_seconds < 0:
            raise ValueError(f"accumulated_seconds must be >= 0 (task_id={self.task_id})")

    @property
    def phase(self) -> TimerPhase:
        return TimerPhase(self.status.value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def elapsed(self, now: float) -> float:
        """Total tracked seconds at `now`, computed from started_at (never from ticks)."""
        if self.status == TimerStatus.RUNNING and self.started_at is not None:
            return self.accumulated_seconds + max(0.0, now - self.started_at)
        return self.accumulated_seconds

    def evolve(self, **changes) -> Timer:
        return replace(self, **changes)


def phase_of(timer: Timer | None) -> TimerPhase:
    return TimerPhase.IDLE if timer is None else timer.phase
