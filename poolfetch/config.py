from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from .errors import ConfigurationError


@dataclass(frozen=True)
class PoolConfig:
    """Immutable settings for one pool run.

    concurrency      -- max tasks in flight (>= 1)
    max_retries      -- retries after the first attempt (>= 0)
    connect_timeout  -- seconds allowed to establish a connection (> 0)
    timeout          -- total seconds allowed per attempt (> 0)
    """

    concurrency: int = 8
    max_retries: int = 2
    connect_timeout: int = 2
    timeout: int = 5

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{f.name} must be an integer, got {value!r}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.connect_timeout <= 0:
            raise ConfigurationError(f"connect_timeout must be > 0, got {self.connect_timeout}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout}")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "PoolConfig":
        """Build a config from loosely typed values (CLI flags, env strings).

        Keys that are None or missing fall back to the defaults."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        kwargs: dict[str, int] = {}
        for name, raw in values.items():
            if raw is None:
                continue
            if isinstance(raw, str):
                try:
                    raw = int(raw.strip())
                except ValueError:
                    raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
            kwargs[name] = raw
        return cls(**kwargs)
