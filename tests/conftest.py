# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from orasan_timers.core.state import AppState
from orasan_timers.timers.engine import TimerEngine

from .fakes import FakeClock, FakeGateway


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="orasan-test",
        log_level="DEBUG",
        gateway="sqlite",
        api_base_url="http://testserver",
        api_token=None,
        http_timeout_seconds=1.0,
        user_id="u1",
        data_dir=tmp_path,
        db_path=tmp_path / "timers.sqlite3",
        max_running_timers=0,
        tick_interval_seconds=0.01,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def engine(gateway: FakeGateway, clock: FakeClock) -> TimerEngine:
    return TimerEngine(gateway, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, engine: TimerEngine) -> AppState:
    return AppState(settings=settings, engine=engine)
