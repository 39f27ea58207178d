# tests/test_commands.py

from __future__ import annotations

import pytest

from orasan_timers.cli.commands import CommandRegistry, cmd_limit, registry
from orasan_timers.timers.models import TimerStatus

from .fakes import make_timer, seed


@pytest.mark.asyncio
async def test_command_registry_routes_sync_and_async_handlers(state) -> None:
    reg = CommandRegistry()
    called = {"sync": 0, "async": 0}

    def h_sync(state, args):
        called["sync"] += 1
        return "sync:" + ",".join(args)

    async def h_async(state, args):
        called["async"] += 1
        return "async"

    reg.register("a", h_sync, "a", aliases=["aa"])
    reg.register("b", h_async, "b")

    assert await reg.handle(state, "/a x y") == "sync:x,y"
    assert await reg.handle(state, "/AA") == "sync:"
    assert await reg.handle(state, "/b") == "async"
    assert called == {"sync": 2, "async": 1}
    assert "/a - a" in reg.build_help()


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_start_pause_and_list_commands(state) -> None:
    reply = await registry.handle(state, "/start t1 p1")
    assert "t1 [running]" in reply

    reply = await registry.handle(state, "/pause t1")
    assert "[paused]" in reply
    assert "resume" in reply

    reply = await registry.handle(state, "/ls")
    assert reply.startswith("Timers (0 running, limit unlimited):")


@pytest.mark.asyncio
async def test_usage_and_error_replies(state) -> None:
    assert (await registry.handle(state, "/start t1")).startswith("Usage:")
    assert "invalid_transition" in await registry.handle(state, "/resume t1")
    assert await registry.handle(state, "/list") == "No timers."


@pytest.mark.asyncio
async def test_reset_asks_for_confirmation(state) -> None:
    seed(state.engine, state.engine.gateway, make_timer("t1", accumulated=90))

    reply = await registry.handle(state, "/reset t1")
    assert "--yes" in reply
    assert state.engine.get_timer("t1").accumulated_seconds == 90

    reply = await registry.handle(state, "/reset t1 --yes")
    assert "[stopped] 0s" in reply


@pytest.mark.asyncio
async def test_batch_commands(state) -> None:
    seed(state.engine, state.engine.gateway, make_timer("a"))
    seed(state.engine, state.engine.gateway, make_timer("b", TimerStatus.PAUSED))

    assert await registry.handle(state, "/pauseall") == "Paused 1 timer(s)."
    assert "valid 0 of 1" in await registry.handle(state, "/pauseall srv-1")
    assert await registry.handle(state, "/stopall p1") == "Stopped 2 timer(s) for project p1."
    assert await registry.handle(state, "/stopall p1") == "No active timers for project p1."


@pytest.mark.asyncio
async def test_clear_and_sync_commands(state) -> None:
    seed(state.engine, state.engine.gateway, make_timer("t1", TimerStatus.STOPPED))

    assert await registry.handle(state, "/clear t1") == "Timer for t1 cleared."
    assert await registry.handle(state, "/sync") == "Loaded 0 active timer(s)."


def test_limit_command(state) -> None:
    # /limit is a plain function, so it can be driven without an event loop.
    assert cmd_limit(state, []) == "Running timer limit: unlimited."
    assert cmd_limit(state, ["3"]) == "Running timer limit set to 3."
    assert cmd_limit(state, ["x"]).startswith("Usage:")
    assert state.engine.limits.max_running == 3
