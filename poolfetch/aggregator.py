from __future__ import annotations

from threading import Lock
from typing import Dict, List

from .errors import SchedulerError
from .models import FetchResult, ResultStatus, RunStatistics


class ResultAggregator:
    """Thread-safe sink for terminal per-item results.

    Each input index may be recorded once; counts are meant to be read after
    the pool has drained."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._results: Dict[int, FetchResult] = {}
        self._counts = {status: 0 for status in ResultStatus}

    def record(self, result: FetchResult) -> None:
        with self._lock:
            if result.index in self._results:
                raise SchedulerError(f"item {result.index} ({result.item}) already has a terminal outcome")
            self._results[result.index] = result
            self._counts[result.status] += 1

    @property
    def success_count(self) -> int:
        return self._counts[ResultStatus.SUCCESS]

    @property
    def failure_count(self) -> int:
        return self._counts[ResultStatus.FAILURE]

    @property
    def not_attempted_count(self) -> int:
        return self._counts[ResultStatus.NOT_ATTEMPTED]

    def results(self) -> List[FetchResult]:
        """Return all recorded results ordered by original input index."""
        with self._lock:
            return [self._results[i] for i in sorted(self._results)]

    def statistics(self, elapsed_secs: float = 0.0) -> RunStatistics:
        with self._lock:
            return RunStatistics(
                success=self._counts[ResultStatus.SUCCESS],
                failure=self._counts[ResultStatus.FAILURE],
                not_attempted=self._counts[ResultStatus.NOT_ATTEMPTED],
                elapsed_secs=elapsed_secs,
            )

    def export_json(self) -> List[Dict]:
        """Export all recorded results as a list of dictionaries."""
        return [r.to_dict() for r in self.results()]
