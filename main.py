from __future__ import annotations

import argparse
import os
import sys
import time

from poolfetch.config import PoolConfig
from poolfetch.errors import PoolFetchError
from poolfetch.factory import TRANSPORTS
from poolfetch.fetcher import ConcurrentFetcher
from poolfetch.log import configure_logging

ENV_PREFIX = "POOLFETCH_"


def _load_urls(path: str) -> list[str]:
    urls: list[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            urls.append(url)
    return urls


def _env(name: str, default: int):
    return os.environ.get(ENV_PREFIX + name, default)


def build_parser() -> argparse.ArgumentParser:
    defaults = PoolConfig()
    parser = argparse.ArgumentParser(description="Fetch URLs concurrently with retries")
    parser.add_argument("urls", nargs="*", help="URLs to fetch")
    parser.add_argument("--input", help="Path to a file with one URL per line")

    # integer settings are validated by PoolConfig, env vars supply the defaults
    parser.add_argument("--concurrency", default=_env("CONCURRENCY", defaults.concurrency), help="Max requests in flight")
    parser.add_argument("--retries", default=_env("RETRIES", defaults.max_retries), help="Max retries per URL")
    parser.add_argument(
        "--connect-timeout", default=_env("CONNECT_TIMEOUT", defaults.connect_timeout), help="Connect timeout (s)"
    )
    parser.add_argument("--timeout", default=_env("TIMEOUT", defaults.timeout), help="Total timeout per request (s)")
    parser.add_argument("--transport", choices=TRANSPORTS, default="requests", help="HTTP client to use")
    parser.add_argument("--deadline", type=float, default=None, help="Cancel the whole run after this many seconds")

    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    return parser


def run(args: argparse.Namespace) -> int:
    config = PoolConfig.from_mapping(
        {
            "concurrency": args.concurrency,
            "max_retries": args.retries,
            "connect_timeout": args.connect_timeout,
            "timeout": args.timeout,
        }
    )
    urls = list(args.urls)
    if args.input:
        urls.extend(_load_urls(args.input))
    if not urls:
        raise PoolFetchError("No URLs given. Pass them as arguments or with --input.")

    fetcher = ConcurrentFetcher(config, transport_name=args.transport)
    start = time.time()
    stats = fetcher.process_all(urls, timeout=args.deadline)
    elapsed = time.time() - start

    print(f"{len(urls)} urls done in {elapsed}s")
    print(f"success: {stats.success}")
    print(f"failed: {stats.failure}")
    if stats.not_attempted:
        print(f"not attempted: {stats.not_attempted}")
    print(f"concurrency: {fetcher.concurrency}")
    print(f"speed per page: {elapsed / len(urls)}s")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_output=args.json_logs)
    try:
        return run(args)
    except (PoolFetchError, OSError) as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
