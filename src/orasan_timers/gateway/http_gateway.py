# src/orasan_timers/gateway/http_gateway.py

from __future__ import annotations

"""
REST persistence gateway.

Talks to the time-tracker web API (time_entries resource):
- POST   /api/time-entries                 create (400 + existing_timer_id on duplicate task)
- PATCH  /api/time-entries/{id}            update status/duration/timestamps
- DELETE /api/time-entries/{id}            remove the record
- GET    /api/time-entries?task_id=&project_id=
- POST   /api/time-entries/pause-all       {updates:[...]}; 400 + validCount/requestedCount
- POST   /api/time-entries/stop-all        {project_id}; preceded by one PATCH per
                                           entry carrying its final duration

Timestamps travel as ISO-8601 strings, durations as whole seconds.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from ..core.errors import BatchValidationError, ConflictError, NetworkFailure, NotFoundError, TimerError
from ..timers.models import Timer, TimerStatus

logger = logging.getLogger(__name__)


def _to_iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=UTC).isoformat()


def _from_iso(raw: Any) -> float | None:
    if not raw:
        return None
    try:
        dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp from API: %r", raw)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp()


def entry_to_timer(entry: Mapping[str, Any]) -> Timer:
    """Convert one time_entries JSON row into a Timer (tolerant of missing fields)."""
    status = TimerStatus.from_db(entry.get("timer_status"))
    started_at = _from_iso(entry.get("start_time"))
    ended_at = _from_iso(entry.get("end_time"))
    updated_at = _from_iso(entry.get("updated_at"))

    if status == TimerStatus.RUNNING and started_at is None:
        started_at = updated_at if updated_at is not None else datetime.now(UTC).timestamp()
    if status == TimerStatus.STOPPED and ended_at is None:
        ended_at = updated_at if updated_at is not None else datetime.now(UTC).timestamp()

    return Timer(
        task_id=str(entry.get("task_id") or ""),
        project_id=str(entry.get("project_id") or (entry.get("task") or {}).get("project_id") or ""),
        status=status,
        started_at=started_at if status == TimerStatus.RUNNING else None,
        accumulated_seconds=float(entry.get("duration_seconds") or 0),
        server_id=str(entry["id"]) if entry.get("id") is not None else None,
        ended_at=ended_at if status == TimerStatus.STOPPED else None,
        updated_at=updated_at,
    )


class HttpTimerGateway:
    """
    httpx-based gateway. One AsyncClient per session; close with aclose().

    Transport errors and 5xx responses become NetworkFailure (retryable).
    """

    def __init__(
            self,
            base_url: str,
            *,
            token: str | None = None,
            timeout_seconds: float = 10.0,
            client: httpx.AsyncClient | None = None,
    ) -> None:
        if client is None:
            if not base_url or not base_url.strip():
                raise RuntimeError("API base URL is not set. Set ORASAN_API_BASE_URL in your .env.")
            headers = {"Accept": "application/json"}
            if token:
                headers["Authorization"] = f"Bearer {token}"
            client = httpx.AsyncClient(
                base_url=base_url.rstrip("/"),
                headers=headers,
                timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
            )
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"Request timed out: {method} {url}") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"Connection error: {method} {url}: {exc}") from exc

        if response.status_code >= 500:
            raise NetworkFailure(
                f"Server error {response.status_code}: {self._error_text(response)}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _error_text(self, response: httpx.Response) -> str:
        return str(self._json(response).get("error") or response.reason_phrase or response.status_code)

    def _raise_for_client_error(self, response: httpx.Response, *, task_id: str | None = None) -> None:
        if response.is_success:
            return
        message = self._error_text(response)
        if response.status_code == 404:
            raise NotFoundError(message, task_id=task_id)
        if response.status_code == 409:
            raise ConflictError(message, task_id=task_id)
        if response.status_code == 401:
            raise NetworkFailure(f"Unauthorized: {message}", task_id=task_id, status_code=401)
        raise TimerError(f"HTTP {response.status_code}: {message}", task_id=task_id)

    # ---- PersistenceGateway ----

    async def create_timer(self, task_id: str, project_id: str, *, started_at: float) -> Timer:
        response = await self._request(
            "POST",
            "/api/time-entries",
            json={
                "task_id": task_id,
                "project_id": project_id,
                "start_time": _to_iso(started_at),
                "duration_seconds": 0,
                "timer_status": TimerStatus.RUNNING.value,
            },
        )
        data = self._json(response)
        if response.status_code == 400 and data.get("existing_timer_id"):
            raise ConflictError(
                str(data.get("error") or "A timer already exists for this task"),
                task_id=task_id,
                existing_server_id=str(data["existing_timer_id"]),
            )
        self._raise_for_client_error(response, task_id=task_id)
        return entry_to_timer(data.get("time_entry") or {})

    async def update_timer(
            self,
            server_id: str,
            status: TimerStatus,
            accumulated_seconds: float,
            *,
            started_at: float | None = None,
            ended_at: float | None = None,
    ) -> Timer:
        payload: dict[str, Any] = {
            "duration_seconds": int(round(max(0.0, accumulated_seconds))),
            "timer_status": status.value,
            "end_time": _to_iso(ended_at) if status == TimerStatus.STOPPED else None,
        }
        if started_at is not None:
            payload["start_time"] = _to_iso(started_at)

        response = await self._request("PATCH", f"/api/time-entries/{server_id}", json=payload)
        self._raise_for_client_error(response)
        return entry_to_timer(self._json(response).get("time_entry") or {})

    async def delete_timer(self, server_id: str) -> None:
        response = await self._request("DELETE", f"/api/time-entries/{server_id}")
        self._raise_for_client_error(response)

    async def batch_transition(
            self,
            server_ids: Sequence[str],
            target_status: TimerStatus,
            *,
            at: float,
            durations: Mapping[str, float],
            project_id: str | None = None,
    ) -> int:
        if target_status == TimerStatus.PAUSED:
            stamp = _to_iso(at)
            response = await self._request(
                "POST",
                "/api/time-entries/pause-all",
                json={
                    "updates": [
                        {
                            "id": sid,
                            "duration_seconds": int(round(max(0.0, durations.get(sid, 0.0)))),
                            "updated_at": stamp,
                        }
                        for sid in server_ids
                    ]
                },
            )
            data = self._json(response)
            if response.status_code == 400 and "validCount" in data:
                raise BatchValidationError(
                    str(data.get("error") or ""),
                    valid_count=int(data.get("validCount") or 0),
                    requested_count=int(data.get("requestedCount") or len(server_ids)),
                )
            self._raise_for_client_error(response)
            return int(data.get("pausedCount") or 0)

        if target_status == TimerStatus.STOPPED:
            if not project_id:
                raise ValueError("stop batches are scoped to a project; project_id is required")
            # stop-all only stamps status and end_time, so final durations go first.
            # If stop-all fails the rows stay paused with their final durations.
            for sid in server_ids:
                response = await self._request(
                    "PATCH",
                    f"/api/time-entries/{sid}",
                    json={
                        "duration_seconds": int(round(max(0.0, durations.get(sid, 0.0)))),
                        "timer_status": TimerStatus.PAUSED.value,
                        "end_time": None,
                    },
                )
                self._raise_for_client_error(response)
            response = await self._request("POST", "/api/time-entries/stop-all", json={"project_id": project_id})
            self._raise_for_client_error(response)
            return int(self._json(response).get("stoppedCount") or 0)

        raise ValueError(f"Unsupported batch target: {target_status}")

    async def list_active_timers(self, project_id: str | None = None) -> list[Timer]:
        params = {"project_id": project_id} if project_id else None
        response = await self._request("GET", "/api/time-entries", params=params)
        self._raise_for_client_error(response)
        entries = self._json(response).get("time_entries") or []
        timers = [entry_to_timer(e) for e in entries if isinstance(e, dict)]
        return [t for t in timers if t.is_active]

    async def get_timer_for_task(self, task_id: str) -> Timer | None:
        response = await self._request("GET", "/api/time-entries", params={"task_id": task_id})
        self._raise_for_client_error(response, task_id=task_id)
        entries = [e for e in self._json(response).get("time_entries") or [] if isinstance(e, dict)]
        if not entries:
            return None
        return entry_to_timer(entries[0])
