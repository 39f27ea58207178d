# src/orasan_timers/timers/view.py

from __future__ import annotations

from dataclasses import dataclass

from .models import TimerPhase, phase_of
from .state_machine import capabilities
from .store import TimerStore


def format_duration(seconds: float) -> str:
    """Format seconds as '1h 2m 3s', '2m 3s' or '3s'."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    mins, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}h {mins}m {secs}s"
    if mins > 0:
        return f"{mins}m {secs}s"
    return f"{secs}s"


@dataclass(frozen=True, slots=True)
class TimerView:
    """What the presentation layer renders for one task."""

    task_id: str
    project_id: str | None
    status: TimerPhase
    duration: int
    formatted: str
    frozen: bool
    can_start: bool
    can_pause: bool
    can_resume: bool
    can_stop: bool
    can_reset: bool
    can_clear: bool


def build_view(store: TimerStore, task_id: str, now: float) -> TimerView:
    timer = store.get(task_id)
    caps = capabilities(timer)
    seconds = int(store.display_seconds(task_id, now))
    return TimerView(
        task_id=task_id,
        project_id=timer.project_id if timer is not None else None,
        status=phase_of(timer),
        duration=seconds,
        formatted=format_duration(seconds),
        frozen=store.is_frozen(task_id),
        can_start=caps.can_start,
        can_pause=caps.can_pause,
        can_resume=caps.can_resume,
        can_stop=caps.can_stop,
        can_reset=caps.can_reset,
        can_clear=caps.can_clear,
    )
