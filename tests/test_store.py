# tests/test_store.py

from __future__ import annotations

import pytest

from orasan_timers.timers.models import TimerStatus
from orasan_timers.timers.reconcile import merge_server_fields
from orasan_timers.timers.store import TimerStore

from .fakes import make_timer


def test_commit_and_reads() -> None:
    store = TimerStore()
    store.commit("a", make_timer("a", server_id="srv-1"))
    store.commit("b", make_timer("b", TimerStatus.PAUSED, project_id="p2"))
    store.commit("c", make_timer("c", TimerStatus.STOPPED))

    assert len(store) == 3
    assert "a" in store
    assert [t.task_id for t in store.running()] == ["a"]
    assert [t.task_id for t in store.paused()] == ["b"]
    assert {t.task_id for t in store.active()} == {"a", "b"}
    assert [t.task_id for t in store.by_project("p2")] == ["b"]
    assert store.by_server_id("srv-1").task_id == "a"

    store.commit("a", None)
    assert store.get("a") is None


def test_commit_rejects_mismatched_key() -> None:
    with pytest.raises(ValueError):
        TimerStore().commit("a", make_timer("b"))


def test_restore_puts_back_absence() -> None:
    store = TimerStore()
    snap = store.snapshots(["a", "b"])
    store.commit_many({"a": make_timer("a"), "b": make_timer("b")})
    store.restore(snap)
    assert len(store) == 0


def test_listeners_get_one_notification_per_write() -> None:
    store = TimerStore()
    seen: list[dict] = []
    unsubscribe = store.subscribe(lambda changed: seen.append(dict(changed)))

    store.commit_many({"a": make_timer("a"), "b": make_timer("b")})
    assert len(seen) == 1
    assert set(seen[0]) == {"a", "b"}

    unsubscribe()
    store.commit("c", make_timer("c"))
    assert len(seen) == 1


def test_failing_listener_does_not_break_writes() -> None:
    store = TimerStore()
    seen: list[dict] = []

    def broken(changed) -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda changed: seen.append(dict(changed)))
    store.commit("a", make_timer("a"))

    assert store.get("a") is not None
    assert len(seen) == 1


def test_replace_all_reports_removed_tasks() -> None:
    store = TimerStore()
    store.commit_many({"a": make_timer("a"), "b": make_timer("b")})
    seen: list[dict] = []
    store.subscribe(lambda changed: seen.append(dict(changed)))

    store.replace_all([make_timer("b", TimerStatus.PAUSED), make_timer("c")])

    assert {t.task_id for t in store.all()} == {"b", "c"}
    assert seen[0]["a"] is None
    assert seen[0]["b"].status == TimerStatus.PAUSED


def test_freeze_pins_displayed_seconds() -> None:
    store = TimerStore()
    store.commit("a", make_timer("a", now=1_000.0, accumulated=5))

    assert store.display_seconds("a", 1_010.0) == 15
    store.freeze("a", 1_010.0)
    assert store.is_frozen("a")
    assert store.display_seconds("a", 1_060.0) == 15

    store.unfreeze("a")
    assert store.display_seconds("a", 1_060.0) == 65
    assert store.display_seconds("missing", 1_060.0) == 0


def test_replace_all_keeps_only_requested_freezes() -> None:
    store = TimerStore()
    store.commit_many({"a": make_timer("a"), "b": make_timer("b"), "c": make_timer("c")})
    for task_id in ("a", "b", "c"):
        store.freeze(task_id, 1_010.0)

    store.replace_all([make_timer("a"), make_timer("b")], keep_frozen=["a", "c"])

    assert store.is_frozen("a")
    assert store.display_seconds("a", 1_060.0) == 10
    assert not store.is_frozen("b")
    assert not store.is_frozen("c")


def test_freeze_ignores_unknown_task() -> None:
    store = TimerStore()
    store.freeze("nope", 1.0)
    assert not store.is_frozen("nope")


def test_merge_server_fields_keeps_local_intent() -> None:
    local = make_timer("a", TimerStatus.PAUSED, accumulated=30)
    server = make_timer("a", TimerStatus.RUNNING, now=999.0, accumulated=12, server_id="srv-7").evolve(
        updated_at=1_234.0
    )

    merged = merge_server_fields(local, server)
    assert merged.status == TimerStatus.PAUSED
    assert merged.accumulated_seconds == 30
    assert merged.started_at is None
    assert merged.server_id == "srv-7"
    assert merged.updated_at == 1_234.0


def test_merge_server_fields_takes_canonical_timestamps() -> None:
    local = make_timer("a", now=1_000.0)
    server = make_timer("a", now=1_000.5, server_id="srv-1")
    assert merge_server_fields(local, server).started_at == 1_000.5

    assert merge_server_fields(local, None) is local
