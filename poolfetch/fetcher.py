from __future__ import annotations

from typing import List, Optional, Sequence

from .aggregator import ResultAggregator
from .config import PoolConfig
from .controller import PoolScheduler
from .errors import ConfigurationError
from .factory import TRANSPORTS, create_transport
from .log import get_logger
from .models import FetchResult, RunStatistics
from .retry import BackoffStrategy, RetryPolicy
from .tasks import iter_tasks
from .transport import Transport

logger = get_logger(__name__)


class ConcurrentFetcher:
    """GET a list of URLs through a bounded pool, retrying transient failures.

    The configuration is fixed at construction. Without an explicit transport
    a fresh one is built from transport_name for every run and closed
    afterwards; a transport passed in is left open for the caller."""

    def __init__(
        self,
        config: Optional[PoolConfig] = None,
        transport: Optional[Transport] = None,
        transport_name: str = "requests",
        policy: Optional[RetryPolicy] = None,
        backoff: Optional[BackoffStrategy] = None,
    ) -> None:
        self._config = config or PoolConfig()
        if transport is None and transport_name not in TRANSPORTS:
            raise ConfigurationError(f"Unknown transport: {transport_name}")
        self._transport = transport
        self._transport_name = transport_name
        self._policy = policy or RetryPolicy(max_retries=self._config.max_retries)
        self._backoff = backoff
        self._aggregator = ResultAggregator()
        self._scheduler: Optional[PoolScheduler] = None

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def concurrency(self) -> int:
        return self._config.concurrency

    @property
    def success(self) -> int:
        return self._aggregator.success_count

    @property
    def failed(self) -> int:
        return self._aggregator.failure_count

    @property
    def not_attempted(self) -> int:
        return self._aggregator.not_attempted_count

    @property
    def results(self) -> List[FetchResult]:
        return self._aggregator.results()

    def process_all(self, items: Sequence[str], timeout: Optional[float] = None) -> RunStatistics:
        """Fetch every item and block until each has a terminal outcome.

        timeout bounds the whole run; when it elapses the run is cancelled."""
        self._aggregator = ResultAggregator()
        self._scheduler = PoolScheduler(
            self._config,
            policy=self._policy,
            backoff=self._backoff,
            on_result=self._report,
        )
        transport = self._transport or create_transport(self._transport_name, self._config)
        try:
            stats = self._scheduler.run(iter_tasks(items, transport), self._aggregator, timeout=timeout)
        finally:
            if transport is not self._transport:
                transport.close()
        logger.info(
            "run_finished",
            total=stats.total,
            success=stats.success,
            failure=stats.failure,
            not_attempted=stats.not_attempted,
            elapsed_secs=round(stats.elapsed_secs, 3),
        )
        return stats

    def cancel(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel()

    @staticmethod
    def _report(result: FetchResult) -> None:
        if result.success:
            logger.info(
                "item_succeeded",
                url=result.item,
                index=result.index,
                body_size=result.body_size,
                status_code=result.status_code,
                attempts=result.attempts,
            )
        elif result.attempts:
            logger.warning(
                "item_failed",
                url=result.item,
                index=result.index,
                reason=result.error,
                error_kind=result.error_kind.value if result.error_kind else None,
                attempts=result.attempts,
            )
        else:
            logger.warning("item_not_attempted", url=result.item, index=result.index)
