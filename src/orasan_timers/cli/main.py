# src/orasan_timers/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads active timers from the gateway,
then runs the display tick in the background and the console REPL in the
foreground, all on one event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..timers.ticker import run_ticker

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState, ticker: asyncio.Task | None) -> None:
    """Best-effort shutdown: let pending mutations land before closing the gateway."""
    if ticker is not None:
        ticker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ticker

    try:
        await state.engine.aclose()
    except Exception:
        logger.exception("Engine shutdown failed.")


async def run(state: AppState) -> None:
    res = await state.engine.load()
    if not res.ok:
        logger.warning("Starting with an empty timer list: %s", res.error.message)

    interval = float(getattr(state.settings, "tick_interval_seconds", 1.0))
    ticker = asyncio.create_task(run_ticker(state.engine.store, state.record_tick, interval_seconds=interval))

    try:
        await run_console_loop(state)
    finally:
        await _shutdown(state, ticker)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
