from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests
from curl_cffi import requests as curl_requests
from curl_cffi.const import CurlECode
from requests import exceptions as req_exc
from urllib3 import exceptions as urllib3_exc

from .models import AttemptOutcome, ErrorKind


class AttemptCancelled(Exception):
    """Raised inside fetch() when the run is cancelled mid-transfer."""


class Transport(ABC):
    """Performs one GET attempt for an item and classifies what happened.

    attempt() never raises for request-level problems: any exception from the
    underlying client is turned into a failed AttemptOutcome carrying an
    ErrorKind. Responses with status >= 400 are failures too. When the
    cancel event is set the attempt ends as ErrorKind.CANCELLED."""

    def __init__(self, connect_timeout: float, timeout: float) -> None:
        self._connect_timeout = connect_timeout
        self._timeout = timeout

    def attempt(self, item: Any, cancelled: Optional[threading.Event] = None) -> AttemptOutcome:
        try:
            self.validate(item)
        except ValueError as exc:
            return AttemptOutcome.failure(ErrorKind.INVALID_REQUEST, str(exc))
        if cancelled is not None and cancelled.is_set():
            return AttemptOutcome.failure(ErrorKind.CANCELLED, "run cancelled")

        start_ms = self._now_ms()
        try:
            status_code, body_size = self.fetch(item, cancelled)
        except AttemptCancelled as exc:
            return AttemptOutcome.failure(ErrorKind.CANCELLED, str(exc), latency_ms=self._now_ms() - start_ms)
        except Exception as exc:  # noqa: BLE001
            return AttemptOutcome.failure(
                self.classify(exc),
                f"{type(exc).__name__}: {exc}",
                latency_ms=self._now_ms() - start_ms,
            )

        latency_ms = self._now_ms() - start_ms
        if status_code >= 400:
            return AttemptOutcome.failure(
                ErrorKind.HTTP_ERROR,
                f"HTTP_{status_code}",
                status_code=status_code,
                latency_ms=latency_ms,
            )
        return AttemptOutcome.success(status_code, body_size, latency_ms=latency_ms)

    def validate(self, item: Any) -> None:
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"url is required, got {item!r}")

    @abstractmethod
    def fetch(self, item: str, cancelled: Optional[threading.Event] = None) -> tuple[int, int]:
        """Issue the request and return (status_code, body_size).

        Implementations that can stop mid-transfer raise AttemptCancelled
        once cancelled is set."""

    @abstractmethod
    def classify(self, exc: Exception) -> ErrorKind:
        """Map a client exception onto an ErrorKind."""

    def close(self) -> None:
        pass

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)


class RequestsTransport(Transport):
    """Transport backed by a shared requests.Session.

    The body is streamed so the total timeout covers the whole transfer,
    not just the gap between two socket reads."""

    CHUNK_SIZE = 16 * 1024

    def __init__(
        self,
        connect_timeout: float,
        timeout: float,
        session: Optional[requests.Session] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(connect_timeout, timeout)
        self._session = session or requests.Session()
        if headers:
            self._session.headers.update(headers)

    def fetch(self, item: str, cancelled: Optional[threading.Event] = None) -> tuple[int, int]:
        deadline = time.monotonic() + self._timeout
        with self._session.get(item, timeout=(self._connect_timeout, self._timeout), stream=True) as resp:
            size = 0
            for chunk in resp.iter_content(chunk_size=self.CHUNK_SIZE):
                size += len(chunk)
                if cancelled is not None and cancelled.is_set():
                    raise AttemptCancelled(f"run cancelled while reading {item}")
                if time.monotonic() > deadline:
                    raise req_exc.ReadTimeout(f"total timeout of {self._timeout}s exceeded for {item}")
            return resp.status_code, size

    def classify(self, exc: Exception) -> ErrorKind:
        if isinstance(exc, req_exc.ConnectTimeout):
            return ErrorKind.CONNECT
        if isinstance(exc, req_exc.Timeout):
            return ErrorKind.TIMEOUT
        if isinstance(exc, (req_exc.MissingSchema, req_exc.InvalidSchema, req_exc.InvalidURL, req_exc.URLRequired)):
            return ErrorKind.INVALID_REQUEST
        if isinstance(exc, req_exc.ConnectionError):
            # requests wraps mid-body failures in ConnectionError as well
            cause = exc.args[0] if exc.args else None
            if isinstance(cause, urllib3_exc.ReadTimeoutError):
                return ErrorKind.TIMEOUT
            if isinstance(cause, urllib3_exc.ProtocolError):
                return ErrorKind.PROTOCOL
            return ErrorKind.CONNECT
        return ErrorKind.PROTOCOL

    def close(self) -> None:
        self._session.close()


class CurlTransport(Transport):
    """Transport backed by curl_cffi with browser TLS impersonation.

    A Session is built per attempt; curl handles are not shared between
    worker threads."""

    CONNECT_CODES = frozenset(
        {
            CurlECode.COULDNT_RESOLVE_PROXY,
            CurlECode.COULDNT_RESOLVE_HOST,
            CurlECode.COULDNT_CONNECT,
            CurlECode.SSL_CONNECT_ERROR,
        }
    )
    INVALID_CODES = frozenset({CurlECode.URL_MALFORMAT, CurlECode.UNSUPPORTED_PROTOCOL})

    def __init__(self, connect_timeout: float, timeout: float, impersonate: str = "chrome120") -> None:
        super().__init__(connect_timeout, timeout)
        self._impersonate = impersonate

    def fetch(self, item: str, cancelled: Optional[threading.Event] = None) -> tuple[int, int]:
        with curl_requests.Session() as session:
            resp = session.get(
                item,
                timeout=(self._connect_timeout, self._timeout),
                impersonate=self._impersonate,
            )
            return resp.status_code, len(resp.content)

    def classify(self, exc: Exception) -> ErrorKind:
        code = getattr(exc, "code", None)
        if code in self.CONNECT_CODES:
            return ErrorKind.CONNECT
        if code == CurlECode.OPERATION_TIMEDOUT:
            # curl reports connect and transfer timeouts with the same code
            if "connection timed out" in str(exc).lower():
                return ErrorKind.CONNECT
            return ErrorKind.TIMEOUT
        if code in self.INVALID_CODES:
            return ErrorKind.INVALID_REQUEST
        return ErrorKind.PROTOCOL
