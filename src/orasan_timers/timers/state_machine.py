# src/orasan_timers/timers/state_machine.py

from __future__ import annotations

"""
Timer state machine.

A pure mapping (current timer, action) -> Ok(next timer | None) | Err(error).
No I/O, no clock reads, no store access: callers pass `now` explicitly and
run the limit check themselves (it needs the store snapshot).

Phases:
  idle --start--> running --pause--> paused --resume--> running
  running|paused --stop--> stopped --clear--> idle
  any --reset(confirmed)--> stopped with 0 seconds

`idle` and `stopped` are resting phases; `stopped` is terminal until reset/clear.
A no-op transition returns the *same* Timer object, so callers can detect it
with `is` and skip persistence.
"""

from dataclasses import dataclass

from ..core.errors import (
    ConfirmationRequiredError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from ..core.result import Err, Ok, Result
from .models import Timer, TimerAction, TimerPhase, TimerStatus, phase_of


@dataclass(frozen=True, slots=True)
class Capabilities:
    can_start: bool
    can_pause: bool
    can_resume: bool
    can_stop: bool
    can_reset: bool
    can_clear: bool


def capabilities(timer: Timer | None) -> Capabilities:
    """Control flags for the presentation layer; a pure projection of the phase."""
    phase = phase_of(timer)
    return Capabilities(
        can_start=phase == TimerPhase.IDLE,
        can_pause=phase == TimerPhase.RUNNING,
        can_resume=phase == TimerPhase.PAUSED,
        can_stop=phase in (TimerPhase.RUNNING, TimerPhase.PAUSED),
        can_reset=phase != TimerPhase.IDLE,
        can_clear=phase == TimerPhase.STOPPED,
    )


def _fold(timer: Timer, now: float) -> float:
    """Bank the open running interval (if any) into accumulated_seconds."""
    return timer.elapsed(now)


def _reject(action: TimerAction, timer: Timer | None, task_id: str) -> Err:
    return Err(
        InvalidTransitionError(
            f"Cannot {action.value} a timer that is {phase_of(timer).value}",
            task_id=task_id,
        )
    )


def transition(
        current: Timer | None,
        action: TimerAction,
        *,
        now: float,
        task_id: str,
        project_id: str | None = None,
        confirmed: bool = False,
) -> Result[Timer | None]:
    """
    Compute the next timer for `action`.

    Returns Ok(None) when the record is (or stays) absent.
    """
    phase = phase_of(current)

    if action == TimerAction.START:
        if current is not None and current.is_active:
            return Err(
                ConflictError(
                    f"A {phase.value} timer already exists for this task",
                    task_id=task_id,
                    existing_server_id=current.server_id,
                )
            )
        if current is not None:
            # Stopped record: the task keeps a single record until reset/clear.
            return Err(
                InvalidTransitionError(
                    "Timer is stopped; reset or clear it before starting again",
                    task_id=task_id,
                )
            )
        if not project_id:
            return Err(InvalidTransitionError("project_id is required to start a timer", task_id=task_id))
        return Ok(
            Timer(
                task_id=task_id,
                project_id=project_id,
                status=TimerStatus.RUNNING,
                started_at=now,
                accumulated_seconds=0.0,
            )
        )

    if action == TimerAction.PAUSE:
        if phase == TimerPhase.PAUSED:
            return Ok(current)
        if phase != TimerPhase.RUNNING or current is None:
            return _reject(action, current, task_id)
        return Ok(
            current.evolve(
                status=TimerStatus.PAUSED,
                accumulated_seconds=_fold(current, now),
                started_at=None,
            )
        )

    if action == TimerAction.RESUME:
        if phase != TimerPhase.PAUSED or current is None:
            return _reject(action, current, task_id)
        return Ok(current.evolve(status=TimerStatus.RUNNING, started_at=now))

    if action == TimerAction.STOP:
        if current is None or not current.is_active:
            return _reject(action, current, task_id)
        return Ok(
            current.evolve(
                status=TimerStatus.STOPPED,
                accumulated_seconds=_fold(current, now),
                started_at=None,
                ended_at=now,
            )
        )

    if action == TimerAction.RESET:
        if not confirmed:
            return Err(ConfirmationRequiredError("Reset discards tracked time and must be confirmed", task_id=task_id))
        if current is None:
            return Ok(None)
        return Ok(
            current.evolve(
                status=TimerStatus.STOPPED,
                accumulated_seconds=0.0,
                started_at=None,
                ended_at=current.ended_at if current.status == TimerStatus.STOPPED else now,
            )
        )

    if action == TimerAction.CLEAR:
        if current is None:
            return Err(NotFoundError("No timer to clear for this task", task_id=task_id))
        if phase != TimerPhase.STOPPED:
            return _reject(action, current, task_id)
        return Ok(None)

    raise ValueError(f"Unknown timer action: {action!r}")


def is_noop(current: Timer | None, nxt: Timer | None) -> bool:
    return nxt is current
