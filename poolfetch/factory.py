from __future__ import annotations

from .config import PoolConfig
from .errors import ConfigurationError
from .transport import CurlTransport, RequestsTransport, Transport

TRANSPORTS = ("requests", "curl")


def create_transport(name: str, config: PoolConfig) -> Transport:
    """Build the transport registered under name, using the config's timeouts."""
    if name == "requests":
        return RequestsTransport(connect_timeout=config.connect_timeout, timeout=config.timeout)
    if name == "curl":
        return CurlTransport(connect_timeout=config.connect_timeout, timeout=config.timeout)
    raise ConfigurationError(f"Unknown transport: {name}")
