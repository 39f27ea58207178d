# src/orasan_timers/gateway/sqlite_gateway.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import sqlite3
import time
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from ..core.errors import BatchValidationError, ConflictError, NetworkFailure, NotFoundError
from ..timers.models import Timer, TimerStatus

logger = logging.getLogger(__name__)


class SqliteTimerGateway:
    """
    SQLite persistence gateway for time records.

    Local authoritative store with the same constraints as the hosted
    time_entries table:
    - one record per task (UNIQUE(task_id))
    - timer_status in running/paused/stopped
    - end_time set iff stopped

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each call opens its own SQLite connection and runs in a worker thread
      (asyncio.to_thread), so the event loop never blocks on disk I/O
    """

    def __init__(self, db_path: str | Path = "timers.sqlite3", *, user_id: str = "local") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._user_id = user_id
        self._ensure_schema()
        try:
            total = self.count_records()
        except sqlite3.Error:
            total = -1
        logger.info("SqliteTimerGateway ready db=%s user=%s total=%s", self._db_path, user_id, total)

    async def aclose(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS time_entries (
                    id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL UNIQUE,
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    start_time REAL,
                    end_time REAL,
                    duration_seconds REAL NOT NULL DEFAULT 0,
                    timer_status TEXT NOT NULL DEFAULT 'paused'
                        CHECK (timer_status IN ('running', 'paused', 'stopped')),
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    CHECK (duration_seconds >= 0),
                    CHECK (
                        (timer_status = 'stopped' AND end_time IS NOT NULL)
                        OR (timer_status IN ('running', 'paused') AND end_time IS NULL)
                    )
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(time_entries)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE time_entries ADD COLUMN {name} {decl}")
                logger.info("SqliteTimerGateway migration: added column %s", name)

            add_col("start_time", "REAL")
            add_col("end_time", "REAL")
            add_col("duration_seconds", "REAL NOT NULL DEFAULT 0")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_time_entries_user_status ON time_entries(user_id, timer_status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_time_entries_project ON time_entries(project_id)")
        finally:
            conn.close()

    @staticmethod
    def _row_to_timer(row: sqlite3.Row) -> Timer:
        status = TimerStatus.from_db(row["timer_status"])
        return Timer(
            task_id=str(row["task_id"]),
            project_id=str(row["project_id"]),
            status=status,
            started_at=float(row["start_time"]) if status == TimerStatus.RUNNING else None,
            accumulated_seconds=float(row["duration_seconds"] or 0.0),
            server_id=str(row["id"]),
            ended_at=float(row["end_time"]) if status == TimerStatus.STOPPED else None,
            updated_at=float(row["updated_at"] or 0.0),
        )

    def _fetch_by_id(self, conn: sqlite3.Connection, server_id: str) -> Timer | None:
        row = conn.execute(
            "SELECT * FROM time_entries WHERE id = ? AND user_id = ?",
            (server_id, self._user_id),
        ).fetchone()
        return self._row_to_timer(row) if row else None

    @staticmethod
    async def _call(fn, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except sqlite3.OperationalError as exc:
            # Locked / busy database: transient, same as a dropped connection.
            raise NetworkFailure(f"SQLite unavailable: {exc}") from exc

    # ---- sync implementations ----

    def count_records(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM time_entries").fetchone()
            return int(n)
        finally:
            conn.close()

    def _create_sync(self, task_id: str, project_id: str, started_at: float) -> Timer:
        now = time.time()
        server_id = str(uuid.uuid4())
        conn = self._get_conn()
        try:
            existing = conn.execute(
                "SELECT id, timer_status FROM time_entries WHERE task_id = ?",
                (task_id,),
            ).fetchone()
            if existing is not None:
                raise ConflictError(
                    "A timer already exists for this task",
                    task_id=task_id,
                    existing_server_id=str(existing["id"]),
                )
            try:
                conn.execute(
                    """
                    INSERT INTO time_entries(
                        id, task_id, project_id, user_id,
                        start_time, end_time, duration_seconds, timer_status,
                        created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, NULL, 0, 'running', ?, ?)
                    """,
                    (server_id, task_id, project_id, self._user_id, float(started_at), now, now),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(str(exc), task_id=task_id) from exc
            logger.debug("Time entry created id=%s task_id=%s", server_id, task_id)
            timer = self._fetch_by_id(conn, server_id)
            assert timer is not None
            return timer
        finally:
            conn.close()

    def _update_sync(
            self,
            server_id: str,
            status: TimerStatus,
            accumulated_seconds: float,
            started_at: float | None,
            ended_at: float | None,
    ) -> Timer:
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE time_entries
                SET timer_status = ?,
                    duration_seconds = ?,
                    start_time = COALESCE(?, start_time),
                    end_time = ?,
                    updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    status.value,
                    max(0.0, float(accumulated_seconds)),
                    started_at,
                    ended_at if status == TimerStatus.STOPPED else None,
                    now,
                    server_id,
                    self._user_id,
                ),
            )
            if cur.rowcount != 1:
                raise NotFoundError(f"Time entry not found: {server_id}")
            timer = self._fetch_by_id(conn, server_id)
            assert timer is not None
            return timer
        finally:
            conn.close()

    def _delete_sync(self, server_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "DELETE FROM time_entries WHERE id = ? AND user_id = ?",
                (server_id, self._user_id),
            )
            if cur.rowcount != 1:
                raise NotFoundError(f"Time entry not found: {server_id}")
        finally:
            conn.close()

    def _batch_sync(
            self,
            server_ids: Sequence[str],
            target_status: TimerStatus,
            at: float,
            durations: Mapping[str, float],
            project_id: str | None,
    ) -> int:
        ids = list(server_ids)
        if not ids:
            return 0
        if target_status == TimerStatus.PAUSED:
            eligible = ("running",)
        elif target_status == TimerStatus.STOPPED:
            eligible = ("running", "paused")
        else:
            raise ValueError(f"Unsupported batch target: {target_status}")

        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                id_marks = ",".join("?" for _ in ids)
                st_marks = ",".join("?" for _ in eligible)
                sql = (
                    f"SELECT id FROM time_entries WHERE id IN ({id_marks}) "
                    f"AND user_id = ? AND timer_status IN ({st_marks})"
                )
                params: list[Any] = [*ids, self._user_id, *eligible]
                if project_id is not None:
                    sql += " AND project_id = ?"
                    params.append(project_id)
                valid = {str(r["id"]) for r in conn.execute(sql, params).fetchall()}

                if len(valid) != len(ids):
                    raise BatchValidationError(valid_count=len(valid), requested_count=len(ids))

                end_time = float(at) if target_status == TimerStatus.STOPPED else None
                for sid in ids:
                    conn.execute(
                        """
                        UPDATE time_entries
                        SET timer_status = ?, duration_seconds = ?, end_time = ?, updated_at = ?
                        WHERE id = ?
                        """,
                        (target_status.value, max(0.0, float(durations.get(sid, 0.0))), end_time, float(at), sid),
                    )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            logger.debug("Batch %s applied to %d time entries", target_status.value, len(ids))
            return len(ids)
        finally:
            conn.close()

    def _list_active_sync(self, project_id: str | None) -> list[Timer]:
        sql = "SELECT * FROM time_entries WHERE user_id = ? AND timer_status IN ('running', 'paused')"
        params: list[Any] = [self._user_id]
        if project_id is not None:
            sql += " AND project_id = ?"
            params.append(project_id)
        sql += " ORDER BY created_at ASC"
        conn = self._get_conn()
        try:
            return [self._row_to_timer(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def _get_for_task_sync(self, task_id: str) -> Timer | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM time_entries WHERE task_id = ? AND user_id = ?",
                (task_id, self._user_id),
            ).fetchone()
            return self._row_to_timer(row) if row else None
        finally:
            conn.close()

    # ---- PersistenceGateway ----

    async def create_timer(self, task_id: str, project_id: str, *, started_at: float) -> Timer:
        return await self._call(self._create_sync, task_id, project_id, started_at)

    async def update_timer(
            self,
            server_id: str,
            status: TimerStatus,
            accumulated_seconds: float,
            *,
            started_at: float | None = None,
            ended_at: float | None = None,
    ) -> Timer:
        return await self._call(self._update_sync, server_id, status, accumulated_seconds, started_at, ended_at)

    async def delete_timer(self, server_id: str) -> None:
        await self._call(self._delete_sync, server_id)

    async def batch_transition(
            self,
            server_ids: Sequence[str],
            target_status: TimerStatus,
            *,
            at: float,
            durations: Mapping[str, float],
            project_id: str | None = None,
    ) -> int:
        return await self._call(self._batch_sync, server_ids, target_status, at, durations, project_id)

    async def list_active_timers(self, project_id: str | None = None) -> list[Timer]:
        return await self._call(self._list_active_sync, project_id)

    async def get_timer_for_task(self, task_id: str) -> Timer | None:
        return await self._call(self._get_for_task_sync, task_id)
