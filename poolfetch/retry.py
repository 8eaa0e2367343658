from __future__ import annotations

import random
from dataclasses import dataclass

from .errors import ConfigurationError
from .models import AttemptOutcome, ErrorKind, RetryDecision


@dataclass(frozen=True)
class RetryPolicy:
    """Decides whether a failed attempt is repeated.

    attempt_number is the number of retries already issued for the item
    (0 after the first attempt). Every status >= 400 counts as retryable,
    client errors included, and so does a failure to establish the
    connection. Timeouts, malformed requests and protocol errors are final."""

    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")

    def decide(self, attempt_number: int, outcome: AttemptOutcome) -> RetryDecision:
        if attempt_number >= self.max_retries:
            return RetryDecision.STOP
        if not (self.is_server_error(outcome) or self.is_connect_error(outcome)):
            return RetryDecision.STOP
        return RetryDecision.RETRY

    def describe(self, item: str, attempt_number: int, outcome: AttemptOutcome) -> str:
        """Human readable line for a retry that is about to happen."""
        if outcome.status_code is not None:
            reason = f"status code: {outcome.status_code}"
        else:
            reason = outcome.error or "unknown error"
        return f"Retrying GET {item} {attempt_number + 1}/{self.max_retries}, {reason}"

    @staticmethod
    def is_server_error(outcome: AttemptOutcome) -> bool:
        return not outcome.ok and outcome.status_code is not None and outcome.status_code >= 400

    @staticmethod
    def is_connect_error(outcome: AttemptOutcome) -> bool:
        return not outcome.ok and outcome.error_kind is ErrorKind.CONNECT


class BackoffStrategy:
    """Exponential backoff with optional jitter for retry delays.

    Computes sleep duration as base * 2^(attempt-1) capped at max_seconds,
    plus up to jitter * that value. jitter=0 gives a deterministic delay."""

    def __init__(self, base_seconds: float = 0.5, max_seconds: float = 10.0, jitter: float = 0.1) -> None:
        if base_seconds < 0 or max_seconds < 0 or jitter < 0:
            raise ConfigurationError("backoff values must be non-negative")
        self._base = base_seconds
        self._max = max_seconds
        self._jitter = jitter

    def get_sleep(self, attempt: int) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        if not self._jitter:
            return exp
        return exp + random.uniform(0, exp * self._jitter)
