# tests/test_batch.py

from __future__ import annotations

import asyncio

import pytest

from orasan_timers.core.errors import ErrorKind, NetworkFailure
from orasan_timers.timers.models import TimerAction, TimerStatus

from .fakes import make_timer, seed, settle


@pytest.mark.asyncio
async def test_pause_all_pauses_every_timer_with_one_call(engine, gateway, clock) -> None:
    a = seed(engine, gateway, make_timer("a", now=clock.now))
    b = seed(engine, gateway, make_timer("b", now=clock.now, accumulated=5))
    clock.advance(30)

    res = await engine.pause_all([a.server_id, b.server_id])

    assert res.ok
    outcome = res.value
    assert outcome.applied_count == 2
    assert outcome.at == clock.now
    assert engine.get_timer("a").accumulated_seconds == 30
    assert engine.get_timer("b").accumulated_seconds == 35
    assert {t.updated_at for t in outcome.timers} == {clock.now}
    assert all(r.status == TimerStatus.PAUSED for r in gateway.records.values())
    assert len(gateway.ops("batch_transition")) == 1
    assert not engine.store.is_frozen("a")


@pytest.mark.asyncio
async def test_pause_all_is_all_or_nothing(engine, gateway) -> None:
    a = seed(engine, gateway, make_timer("a"))
    b = seed(engine, gateway, make_timer("b", TimerStatus.PAUSED))

    res = await engine.pause_all([a.server_id, b.server_id])

    assert res.kind == ErrorKind.VALIDATION_ERROR
    assert (res.error.valid_count, res.error.requested_count) == (1, 2)
    assert "1/2 valid" in res.error.message
    assert engine.get_timer("a") == a
    assert gateway.ops("batch_transition") == []


@pytest.mark.asyncio
async def test_pause_all_rejects_unknown_ids(engine, gateway) -> None:
    a = seed(engine, gateway, make_timer("a"))

    res = await engine.pause_all([a.server_id, "someone-elses"])

    assert res.kind == ErrorKind.VALIDATION_ERROR
    assert res.error.valid_count == 1
    assert engine.get_timer("a").status == TimerStatus.RUNNING


@pytest.mark.asyncio
async def test_pause_all_trusts_server_over_stale_local_state(engine, gateway) -> None:
    a = seed(engine, gateway, make_timer("a"))
    gateway.records[a.server_id] = a.evolve(status=TimerStatus.PAUSED, started_at=None)

    res = await engine.pause_all([a.server_id])

    assert res.kind == ErrorKind.VALIDATION_ERROR
    assert (res.error.valid_count, res.error.requested_count) == (0, 1)


@pytest.mark.asyncio
async def test_pause_all_empty_request_is_rejected(engine, gateway) -> None:
    res = await engine.pause_all([])
    assert res.kind == ErrorKind.VALIDATION_ERROR
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_pause_all_rolls_back_every_timer_on_failure(engine, gateway, clock) -> None:
    a = seed(engine, gateway, make_timer("a"))
    b = seed(engine, gateway, make_timer("b"))
    clock.advance(10)
    gateway.fail_next["batch_transition"] = NetworkFailure("offline")

    res = await engine.pause_all([a.server_id, b.server_id])

    assert res.kind == ErrorKind.NETWORK_FAILURE
    assert engine.get_timer("a") == a
    assert engine.get_timer("b") == b


@pytest.mark.asyncio
async def test_pause_all_adopts_timers_missing_locally(engine, gateway) -> None:
    remote = gateway.seed(make_timer("remote"))

    res = await engine.pause_all([remote.server_id])

    assert res.ok
    assert engine.get_timer("remote").status == TimerStatus.PAUSED


@pytest.mark.asyncio
async def test_pause_all_running_pauses_only_running(engine, gateway) -> None:
    seed(engine, gateway, make_timer("a"))
    seed(engine, gateway, make_timer("b"))
    seed(engine, gateway, make_timer("c", TimerStatus.PAUSED))

    res = await engine.pause_all_running()

    assert res.value.applied_count == 2
    assert engine.running_count() == 0


@pytest.mark.asyncio
async def test_pause_all_running_with_nothing_running(engine, gateway) -> None:
    res = await engine.pause_all_running()
    assert res.ok
    assert res.value.applied_count == 0
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_stop_all_stops_project_with_shared_end_time(engine, gateway, clock) -> None:
    seed(engine, gateway, make_timer("a", now=clock.now))
    seed(engine, gateway, make_timer("b", TimerStatus.PAUSED, accumulated=40))
    seed(engine, gateway, make_timer("other", project_id="p2"))
    clock.advance(60)

    res = await engine.stop_all("p1")

    assert res.ok
    assert res.value.applied_count == 2
    a, b = engine.get_timer("a"), engine.get_timer("b")
    assert a.status == b.status == TimerStatus.STOPPED
    assert a.ended_at == b.ended_at == clock.now
    assert a.accumulated_seconds == 60
    assert b.accumulated_seconds == 40
    assert engine.get_timer("other").status == TimerStatus.RUNNING


@pytest.mark.asyncio
async def test_stop_all_with_no_active_timers(engine, gateway) -> None:
    seed(engine, gateway, make_timer("done", TimerStatus.STOPPED))

    res = await engine.stop_all("p1")

    assert res.ok
    assert res.value.applied_count == 0
    assert gateway.ops("batch_transition") == []


@pytest.mark.asyncio
async def test_stop_all_rolls_back_on_failure(engine, gateway) -> None:
    a = seed(engine, gateway, make_timer("a"))
    b = seed(engine, gateway, make_timer("b", TimerStatus.PAUSED))
    gateway.fail_next["batch_transition"] = RuntimeError("boom")

    res = await engine.stop_all("p1")

    assert res.kind == ErrorKind.NETWORK_FAILURE
    assert engine.get_timer("a") == a
    assert engine.get_timer("b") == b


@pytest.mark.asyncio
async def test_batch_waits_for_pending_single_mutation(engine, gateway) -> None:
    a = seed(engine, gateway, make_timer("a"))
    gateway.gate = asyncio.Event()

    pause = engine.dispatch("a", TimerAction.PAUSE)
    batch = asyncio.create_task(engine.pause_all([a.server_id]))
    await settle()

    # Only the single pause reached the gateway; the batch holds until it settles.
    assert [c.op for c in gateway.calls] == ["update_timer"]

    gateway.gate.set()
    assert (await pause.wait()).ok
    res = await batch

    assert res.kind == ErrorKind.VALIDATION_ERROR
    assert engine.get_timer("a").status == TimerStatus.PAUSED


@pytest.mark.asyncio
async def test_stop_all_freezes_display_while_in_flight(engine, gateway, clock) -> None:
    seed(engine, gateway, make_timer("a", now=clock.now))
    clock.advance(10)
    gateway.gate = asyncio.Event()

    batch = asyncio.create_task(engine.stop_all("p1"))
    await settle()
    clock.advance(50)

    assert engine.store.is_frozen("a")
    assert engine.view("a").duration == 10

    gateway.gate.set()
    res = await batch

    assert res.ok
    assert not engine.store.is_frozen("a")
    assert engine.get_timer("a").accumulated_seconds == 10


@pytest.mark.asyncio
async def test_stop_all_queued_behind_resume_ends_after_it(engine, gateway, clock) -> None:
    seed(engine, gateway, make_timer("a", now=clock.now))
    clock.advance(30)
    gateway.gate = asyncio.Event()

    pause = engine.dispatch("a", TimerAction.PAUSE)
    await settle()
    resume = engine.dispatch("a", TimerAction.RESUME)
    clock.advance(10)
    batch = asyncio.create_task(engine.stop_all("p1"))
    await settle()
    clock.advance(10)
    gateway.gate.set()

    assert (await pause.wait()).ok
    resumed = (await resume.wait()).value
    res = await batch

    assert res.ok
    stopped = engine.get_timer("a")
    assert resumed.started_at == clock.now
    assert stopped.status == TimerStatus.STOPPED
    assert stopped.ended_at >= resumed.started_at
    assert stopped.accumulated_seconds == 30
    assert gateway.records["srv-1"].accumulated_seconds == 30


@pytest.mark.asyncio
async def test_stop_all_adopts_server_end_time(engine, gateway, clock) -> None:
    seed(engine, gateway, make_timer("a", now=clock.now))
    clock.advance(60)
    original = gateway.batch_transition

    async def stamp_later(server_ids, target_status, *, at, durations, project_id=None):
        applied = await original(server_ids, target_status, at=at, durations=durations, project_id=project_id)
        for sid in server_ids:
            gateway.records[sid] = gateway.records[sid].evolve(ended_at=at + 3, updated_at=at + 3)
        return applied

    gateway.batch_transition = stamp_later

    res = await engine.stop_all("p1")

    assert res.ok
    assert engine.get_timer("a").ended_at == clock.now + 3
    assert engine.get_timer("a").accumulated_seconds == 60
    assert gateway.ops("get_timer_for_task")
