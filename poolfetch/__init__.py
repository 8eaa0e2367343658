"""Concurrent HTTP fetch pool with retries.

Fetches a list of URLs with a fixed concurrency cap, retries transient
failures and records exactly one terminal outcome per URL.

Key modules:
    fetcher     -- ConcurrentFetcher, the caller-facing entry point
    controller  -- PoolScheduler, bounded sliding-window execution
    retry       -- RetryPolicy decisions and BackoffStrategy delays
    tasks       -- iter_tasks, the lazy task source
    transport   -- Transport base class, RequestsTransport, CurlTransport
    factory     -- create_transport by name
    aggregator  -- ResultAggregator for terminal outcomes
    config      -- PoolConfig
    models      -- Task, AttemptOutcome, FetchResult, RunStatistics
    errors      -- ConfigurationError, SchedulerError
    log         -- structlog setup
"""

from .config import PoolConfig
from .errors import ConfigurationError, PoolFetchError, SchedulerError
from .fetcher import ConcurrentFetcher
from .models import RunStatistics

__all__ = [
    "ConcurrentFetcher",
    "ConfigurationError",
    "PoolConfig",
    "PoolFetchError",
    "RunStatistics",
    "SchedulerError",
]
