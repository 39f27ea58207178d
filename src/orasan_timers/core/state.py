# src/orasan_timers/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..timers.engine import TimerEngine
from ..timers.view import TimerView


@dataclass
class AppState:
    """Per-session wiring shared by connectors and commands."""

    # Settings object (config.Settings or a test double).
    settings: Any
    engine: TimerEngine

    # Last views pushed by the tick loop, keyed by task_id.
    tick_views: dict[str, TimerView] = field(default_factory=dict)

    def record_tick(self, views: list[TimerView]) -> None:
        for v in views:
            self.tick_views[v.task_id] = v
