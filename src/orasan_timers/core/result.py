# src/orasan_timers/core/result.py

from __future__ import annotations

"""
Explicit per-action result: Ok(value) | Err(error).

Callers branch on `.ok`; `unwrap()` re-raises the typed error for code that
prefers exceptions.
"""

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from .errors import ErrorKind, TimerError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> Literal[True]:
        return True

    @property
    def error(self) -> None:
        return None

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    error: TimerError

    @property
    def ok(self) -> Literal[False]:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    def unwrap(self):
        raise self.error


Result = Ok[T] | Err
