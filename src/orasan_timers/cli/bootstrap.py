# src/orasan_timers/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the persistence gateway (SQLite or REST API),
- wires the TimerEngine into AppState.
"""

from __future__ import annotations

import logging

from ..config import GATEWAY_HTTP, get_settings
from ..core.ports import PersistenceGateway
from ..core.state import AppState
from ..gateway.http_gateway import HttpTimerGateway
from ..gateway.sqlite_gateway import SqliteTimerGateway
from ..timers.engine import TimerEngine

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_gateway(settings) -> PersistenceGateway:
    if settings.gateway == GATEWAY_HTTP:
        logger.info("Using REST gateway base_url=%s", settings.api_base_url)
        return HttpTimerGateway(
            settings.api_base_url,
            token=settings.api_token,
            timeout_seconds=settings.http_timeout_seconds,
        )
    return SqliteTimerGateway(settings.db_path, user_id=settings.user_id)


def create_initial_state(*, settings=None, gateway: PersistenceGateway | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if gateway is None:
        gateway = create_gateway(settings)

    engine = TimerEngine(gateway, max_running=settings.max_running_timers)
    return AppState(settings=settings, engine=engine)
