# src/orasan_timers/core/errors.py

from __future__ import annotations

"""
Error taxonomy for timer actions.

Gateways raise these exceptions; the engine turns them into Err results.
None of them is fatal: every one is recoverable at the level of a single
user action or batch call.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    CONFLICT = "conflict"
    LIMIT_EXCEEDED = "limit_exceeded"
    NOT_FOUND = "not_found"
    NETWORK_FAILURE = "network_failure"
    VALIDATION_ERROR = "validation_error"
    INVALID_TRANSITION = "invalid_transition"
    CONFIRMATION_REQUIRED = "confirmation_required"


class TimerError(Exception):
    """Base class for every typed timer error."""

    kind: ErrorKind = ErrorKind.INVALID_TRANSITION

    def __init__(self, message: str = "", *, task_id: str | None = None) -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.task_id = task_id

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.NETWORK_FAILURE

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, task_id={self.task_id!r})"


class ConflictError(TimerError):
    """A non-stopped timer already exists for the task."""

    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        message: str = "",
        *,
        task_id: str | None = None,
        existing_server_id: str | None = None,
    ) -> None:
        super().__init__(message or "A timer already exists for this task", task_id=task_id)
        self.existing_server_id = existing_server_id


class LimitExceededError(TimerError):
    kind = ErrorKind.LIMIT_EXCEEDED

    def __init__(
        self,
        message: str = "",
        *,
        task_id: str | None = None,
        limit: int | None = None,
        running: int | None = None,
    ) -> None:
        super().__init__(message or f"Timer limit reached ({running}/{limit} running)", task_id=task_id)
        self.limit = limit
        self.running = running


class NotFoundError(TimerError):
    kind = ErrorKind.NOT_FOUND


class NetworkFailure(TimerError):
    """Transient transport/server failure. Safe to retry after rollback."""

    kind = ErrorKind.NETWORK_FAILURE

    def __init__(
        self,
        message: str = "",
        *,
        task_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message or "Network failure", task_id=task_id)
        self.status_code = status_code


class BatchValidationError(TimerError):
    """A batch request included ids that are not all eligible."""

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str = "", *, valid_count: int, requested_count: int) -> None:
        super().__init__(
            message
            or (
                "Some timers are invalid, not running, or do not belong to you "
                f"({valid_count}/{requested_count} valid)"
            )
        )
        self.valid_count = valid_count
        self.requested_count = requested_count


class InvalidTransitionError(TimerError):
    kind = ErrorKind.INVALID_TRANSITION


class ConfirmationRequiredError(TimerError):
    kind = ErrorKind.CONFIRMATION_REQUIRED
