from __future__ import annotations


class PoolFetchError(Exception):
    """Base class for fatal poolfetch errors."""


class ConfigurationError(PoolFetchError, ValueError):
    """Raised at construction time for invalid pool or transport settings."""


class SchedulerError(PoolFetchError):
    """Unrecoverable fault inside the scheduler (task source, aggregator)."""
