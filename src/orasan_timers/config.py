# src/orasan_timers/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Components receive settings by injection; get_settings() is only for the entrypoint.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "ORASAN"

GATEWAY_SQLITE = "sqlite"
GATEWAY_HTTP = "http"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Persistence gateway ----
    gateway: str
    api_base_url: str
    api_token: str | None
    http_timeout_seconds: float
    user_id: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Timer engine ----
    max_running_timers: int
    tick_interval_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="orasan") or "orasan"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        gateway = _env(_k("GATEWAY"), GATEWAY_SQLITE).strip().lower()
        if gateway not in (GATEWAY_SQLITE, GATEWAY_HTTP):
            gateway = GATEWAY_SQLITE

        api_base_url = (_env(_k("API_BASE_URL"), "http://localhost:3000") or "").strip()
        api_token = _first_env(_k("API_TOKEN"), default=None)
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0)
        user_id = (_env(_k("USER_ID"), "local") or "local").strip()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/orasan"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "timers.sqlite3")

        # 0 (or negative) means "no plan cap".
        max_running_timers = _env_int(_k("MAX_RUNNING_TIMERS"), 0)
        tick_interval_seconds = _env_float(_k("TICK_INTERVAL_SECONDS"), 1.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            gateway=gateway,
            api_base_url=api_base_url,
            api_token=api_token,
            http_timeout_seconds=http_timeout_seconds,
            user_id=user_id,
            data_dir=data_dir,
            db_path=db_path,
            max_running_timers=max_running_timers,
            tick_interval_seconds=tick_interval_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
