from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .aggregator import ResultAggregator
from .config import PoolConfig
from .errors import ConfigurationError, SchedulerError
from .log import get_logger
from .models import AttemptOutcome, ErrorKind, FetchResult, ResultStatus, RetryDecision, RunStatistics, Task
from .retry import BackoffStrategy, RetryPolicy


class PoolScheduler:
    """Runs tasks on a bounded thread pool with a sliding admission window.

    A task takes a slot when admitted and keeps it through all of its retries;
    the next task is pulled from the source only once a slot is released, so
    no more than config.concurrency attempts are ever outstanding.

    Cancellation (cancel() or the run timeout) stops admission and hands the
    cancel event to every in-flight attempt. run() returns without waiting
    for those attempts: tasks never started are recorded NOT_ATTEMPTED, tasks
    in flight are recorded FAILURE with ErrorKind.CANCELLED, and whatever an
    abandoned attempt returns later is discarded.
    """

    POLL_SECS = 0.05

    def __init__(
        self,
        config: PoolConfig,
        policy: Optional[RetryPolicy] = None,
        backoff: Optional[BackoffStrategy] = None,
        logger: Any = None,
        on_result: Optional[Callable[[FetchResult], None]] = None,
    ) -> None:
        self._config = config
        self._policy = policy or RetryPolicy(max_retries=config.max_retries)
        self._backoff = backoff
        self._logger = logger or get_logger(__name__)
        self._on_result = on_result

        self._lock = threading.Lock()
        # held while a terminal outcome is claimed and recorded
        self._record_lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._active = 0
        self._cancelled = threading.Event()
        self._fault: Optional[SchedulerError] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop admitting tasks and cancel the ones in flight."""
        self._cancelled.set()
        with self._cv:
            self._cv.notify_all()

    def run(
        self,
        tasks: Iterable[Task],
        aggregator: Optional[ResultAggregator] = None,
        timeout: Optional[float] = None,
    ) -> RunStatistics:
        """Drive every task to a terminal outcome and return the run statistics.

        Blocks until the pool has drained or the run is cancelled. Raises
        ConfigurationError for a non-positive timeout and SchedulerError if
        the task source or the aggregator fails."""
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(f"run timeout must be > 0, got {timeout}")

        aggregator = aggregator if aggregator is not None else ResultAggregator()
        self._cancelled.clear()
        self._active = 0
        self._fault = None
        # index -> (task, attempts issued so far); an entry is removed by
        # whoever records the task's terminal outcome
        in_flight: Dict[int, Tuple[Task, int]] = {}

        start = time.monotonic()
        timer = None
        if timeout is not None:
            timer = threading.Timer(timeout, self._expire, args=(timeout,))
            timer.daemon = True
            timer.start()

        executor = ThreadPoolExecutor(max_workers=self._config.concurrency, thread_name_prefix="poolfetch")
        futures: List[Future] = []
        try:
            try:
                self._admit(iter(tasks), executor, aggregator, futures, in_flight)
            except SchedulerError as exc:
                self._fail(exc)
            except Exception as exc:  # noqa: BLE001
                self._fail(self._wrap_fault("task source failed", exc))
            self._wait(futures)
        finally:
            if timer is not None:
                timer.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        if self._fault is None and self._cancelled.is_set():
            try:
                self._abandon(in_flight, aggregator)
            except SchedulerError:
                raise
            except Exception as exc:
                raise self._wrap_fault("recording cancelled tasks failed", exc) from exc
        if self._fault is not None:
            raise self._fault
        return aggregator.statistics(time.monotonic() - start)

    def _admit(
        self,
        source,
        executor: ThreadPoolExecutor,
        aggregator: ResultAggregator,
        futures: List[Future],
        in_flight: Dict[int, Tuple[Task, int]],
    ) -> None:
        for task in source:
            with self._cv:
                while not self._cancelled.is_set() and self._active >= self._config.concurrency:
                    self._cv.wait(timeout=0.5)
                admitted = not self._cancelled.is_set()
                if admitted:
                    self._active += 1
                    in_flight[task.index] = (task, 0)

            if not admitted:
                self._skip(task, aggregator)
                for rest in source:
                    self._skip(rest, aggregator)
                return

            futures.append(executor.submit(self._wrap_task, task, aggregator, in_flight))

    def _wait(self, futures: List[Future]) -> None:
        pending = set(futures)
        while pending and not self._cancelled.is_set():
            _, pending = wait(pending, timeout=self.POLL_SECS, return_when=FIRST_COMPLETED)

    def _wrap_task(
        self, task: Task, aggregator: ResultAggregator, in_flight: Dict[int, Tuple[Task, int]]
    ) -> Optional[FetchResult]:
        try:
            return self._run_task(task, aggregator, in_flight)
        except SchedulerError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            self._fail(self._wrap_fault("worker failed", exc))
            raise
        finally:
            with self._cv:
                self._active = max(0, self._active - 1)
                self._cv.notify_all()

    def _run_task(
        self, task: Task, aggregator: ResultAggregator, in_flight: Dict[int, Tuple[Task, int]]
    ) -> Optional[FetchResult]:
        attempts = 0
        while True:
            attempts += 1
            with self._lock:
                if task.index in in_flight:
                    in_flight[task.index] = (task, attempts)
            self._logger.info("attempt_started", index=task.index, url=task.item, attempt=attempts)
            outcome = task.attempt(self._cancelled)

            if self._cancelled.is_set():
                outcome = self._cancelled_outcome(outcome.latency_ms)
                break
            if outcome.ok:
                break

            retries_done = attempts - 1
            decision = self._policy.decide(retries_done, outcome)
            self._logger.info(
                "retry_decision",
                index=task.index,
                url=task.item,
                attempt=attempts,
                decision=decision.value,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                status_code=outcome.status_code,
                description=self._policy.describe(task.item, retries_done, outcome)
                if decision is RetryDecision.RETRY
                else None,
            )
            if decision is RetryDecision.STOP:
                break

            if self._backoff is not None and self._cancelled.wait(self._backoff.get_sleep(attempts)):
                outcome = self._cancelled_outcome(outcome.latency_ms)
                break

        result = FetchResult.from_outcome(task, outcome, attempts=attempts)
        with self._record_lock:
            if not self._claim(task, in_flight):
                # already recorded as cancelled by run()
                return None
            self._record(result, aggregator)
        return result

    def _claim(self, task: Task, in_flight: Dict[int, Tuple[Task, int]]) -> bool:
        with self._lock:
            return in_flight.pop(task.index, None) is not None

    def _abandon(self, in_flight: Dict[int, Tuple[Task, int]], aggregator: ResultAggregator) -> None:
        with self._record_lock, self._lock:
            leftovers = sorted(in_flight.values(), key=lambda entry: entry[0].index)
            in_flight.clear()
        for task, attempts in leftovers:
            if attempts == 0:
                self._skip(task, aggregator)
                continue
            self._logger.warning("attempt_abandoned", index=task.index, url=task.item, attempt=attempts)
            result = FetchResult.from_outcome(task, self._cancelled_outcome(0), attempts=attempts)
            self._record(result, aggregator)

    def _skip(self, task: Task, aggregator: ResultAggregator) -> None:
        result = FetchResult(
            index=task.index,
            item=task.item,
            status=ResultStatus.NOT_ATTEMPTED,
            attempts=0,
            error_kind=ErrorKind.CANCELLED,
            error="run cancelled before the item was started",
        )
        self._record(result, aggregator)

    def _record(self, result: FetchResult, aggregator: ResultAggregator) -> None:
        aggregator.record(result)
        if self._on_result is not None:
            self._on_result(result)

    def _fail(self, fault: SchedulerError) -> None:
        with self._lock:
            if self._fault is None:
                self._fault = fault
        self.cancel()

    def _expire(self, timeout: float) -> None:
        self._logger.warning("run_timeout", timeout_secs=timeout)
        self.cancel()

    @staticmethod
    def _wrap_fault(message: str, exc: Exception) -> SchedulerError:
        fault = SchedulerError(f"{message}: {exc}")
        fault.__cause__ = exc
        return fault

    @staticmethod
    def _cancelled_outcome(latency_ms: int) -> AttemptOutcome:
        return AttemptOutcome.failure(ErrorKind.CANCELLED, "run cancelled", latency_ms=latency_ms)
