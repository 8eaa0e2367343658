from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


class ErrorKind(str, Enum):
    HTTP_ERROR = "http_error"
    CONNECT = "connect"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    PROTOCOL = "protocol"
    CANCELLED = "cancelled"


class RetryDecision(str, Enum):
    RETRY = "retry"
    STOP = "stop"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class AttemptOutcome:
    """Outcome of a single transport attempt.

    Either a success (response metadata only) or a failure (error kind and
    message, plus the status code when the server answered with >= 400)."""

    ok: bool
    status_code: Optional[int] = None
    body_size: Optional[int] = None
    latency_ms: int = 0
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, status_code: int, body_size: int, latency_ms: int = 0) -> "AttemptOutcome":
        return cls(ok=True, status_code=status_code, body_size=body_size, latency_ms=latency_ms)

    @classmethod
    def failure(
        cls,
        error_kind: ErrorKind,
        error: str,
        status_code: Optional[int] = None,
        latency_ms: int = 0,
    ) -> "AttemptOutcome":
        return cls(ok=False, status_code=status_code, latency_ms=latency_ms, error_kind=error_kind, error=error)


@dataclass(frozen=True)
class Task:
    index: int
    item: str
    attempt_fn: Callable[..., AttemptOutcome]

    def attempt(self, cancelled: Optional[threading.Event] = None) -> AttemptOutcome:
        return self.attempt_fn(cancelled)


@dataclass(frozen=True)
class FetchResult:
    index: int
    item: str
    status: ResultStatus
    attempts: int
    status_code: Optional[int] = None
    body_size: Optional[int] = None
    latency_ms: int = 0
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @classmethod
    def from_outcome(cls, task: Task, outcome: AttemptOutcome, attempts: int) -> "FetchResult":
        return cls(
            index=task.index,
            item=task.item,
            status=ResultStatus.SUCCESS if outcome.ok else ResultStatus.FAILURE,
            attempts=attempts,
            status_code=outcome.status_code,
            body_size=outcome.body_size,
            latency_ms=outcome.latency_ms,
            error_kind=outcome.error_kind,
            error=outcome.error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "item": self.item,
            "status": self.status.value,
            "attempts": self.attempts,
            "status_code": self.status_code,
            "body_size": self.body_size,
            "latency_ms": self.latency_ms,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class RunStatistics:
    success: int
    failure: int
    not_attempted: int = 0
    elapsed_secs: float = 0.0

    @property
    def total(self) -> int:
        return self.success + self.failure + self.not_attempted
