"""Tests for the transport classes and the transport factory."""

import itertools
import threading
import unittest
from unittest import mock

from requests import exceptions as req_exc
from urllib3 import exceptions as urllib3_exc
from curl_cffi.const import CurlECode

from poolfetch.config import PoolConfig
from poolfetch.errors import ConfigurationError
from poolfetch.factory import create_transport
from poolfetch.models import ErrorKind
from poolfetch.transport import CurlTransport, RequestsTransport


def _session_returning(status_code, chunks):
    session = mock.MagicMock()
    resp = mock.Mock(status_code=status_code)
    resp.iter_content.return_value = chunks
    session.get.return_value.__enter__.return_value = resp
    return session


class FakeCurlError(Exception):
    """Mimics curl_cffi's error carrying a curl error code."""

    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


class TestRequestsTransportAttempt(unittest.TestCase):
    """Verify attempt() turns responses and exceptions into outcomes."""

    def test_success_reports_status_and_size(self):
        """A 200 response is a success carrying the streamed body size."""
        session = _session_returning(200, [b"abc", b"de"])
        transport = RequestsTransport(connect_timeout=2, timeout=5, session=session)
        outcome = transport.attempt("http://example.com/")
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.status_code, 200)
        self.assertEqual(outcome.body_size, 5)
        session.get.assert_called_once_with("http://example.com/", timeout=(2, 5), stream=True)

    def test_status_400_and_above_is_failure(self):
        """A 503 response is an HTTP_ERROR failure with its status code."""
        transport = RequestsTransport(2, 5, session=_session_returning(503, [b"down"]))
        outcome = transport.attempt("http://example.com/")
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error_kind, ErrorKind.HTTP_ERROR)
        self.assertEqual(outcome.status_code, 503)
        self.assertEqual(outcome.error, "HTTP_503")

    def test_redirect_status_is_success(self):
        """Statuses below 400 count as success."""
        transport = RequestsTransport(2, 5, session=_session_returning(304, []))
        self.assertTrue(transport.attempt("http://example.com/").ok)

    def test_exception_is_classified_not_raised(self):
        """Client exceptions become failed outcomes instead of propagating."""
        session = mock.MagicMock()
        session.get.side_effect = req_exc.ConnectionError("connection refused")
        transport = RequestsTransport(2, 5, session=session)
        outcome = transport.attempt("http://example.com/")
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error_kind, ErrorKind.CONNECT)
        self.assertIn("ConnectionError", outcome.error)
        self.assertIsNone(outcome.status_code)

    def test_empty_url_is_invalid_request(self):
        """An empty URL fails validation without issuing a request."""
        session = mock.MagicMock()
        transport = RequestsTransport(2, 5, session=session)
        outcome = transport.attempt("")
        self.assertEqual(outcome.error_kind, ErrorKind.INVALID_REQUEST)
        self.assertIn("url", outcome.error)
        session.get.assert_not_called()

    def test_non_string_item_is_invalid_request(self):
        """Only string descriptors can be fetched."""
        transport = RequestsTransport(2, 5, session=mock.MagicMock())
        self.assertEqual(transport.attempt(None).error_kind, ErrorKind.INVALID_REQUEST)

    def test_total_timeout_covers_body_read(self):
        """A slow body that exceeds the total timeout is a TIMEOUT failure."""
        transport = RequestsTransport(2, 5, session=_session_returning(200, [b"a", b"b", b"c"]))
        with mock.patch("poolfetch.transport.time.monotonic", side_effect=itertools.count(0, 4)):
            outcome = transport.attempt("http://example.com/")
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error_kind, ErrorKind.TIMEOUT)

    def test_cancelled_before_start_sends_nothing(self):
        """A set cancel event ends the attempt before any request is made."""
        session = mock.MagicMock()
        cancelled = threading.Event()
        cancelled.set()
        outcome = RequestsTransport(2, 5, session=session).attempt("http://example.com/", cancelled)
        self.assertEqual(outcome.error_kind, ErrorKind.CANCELLED)
        session.get.assert_not_called()

    def test_cancel_stops_body_read(self):
        """Cancelling mid-transfer stops reading further chunks."""
        cancelled = threading.Event()
        read = []

        def chunks(chunk_size):
            for chunk in (b"a", b"b", b"c"):
                read.append(chunk)
                if chunk == b"b":
                    cancelled.set()
                yield chunk

        session = _session_returning(200, [])
        session.get.return_value.__enter__.return_value.iter_content.side_effect = chunks
        outcome = RequestsTransport(2, 5, session=session).attempt("http://example.com/", cancelled)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error_kind, ErrorKind.CANCELLED)
        self.assertEqual(read, [b"a", b"b"])

    def test_close_closes_session(self):
        """Leaving the context manager closes the shared session."""
        session = mock.MagicMock()
        with RequestsTransport(2, 5, session=session):
            pass
        session.close.assert_called_once()


class TestRequestsTransportClassify(unittest.TestCase):
    """Verify exception classification for requests errors."""

    def setUp(self):
        self.transport = RequestsTransport(2, 5, session=mock.MagicMock())

    def test_connect_timeout_is_connect(self):
        """A connect timeout is a connection-establishment failure."""
        self.assertEqual(self.transport.classify(req_exc.ConnectTimeout()), ErrorKind.CONNECT)

    def test_read_timeout_is_timeout(self):
        """A read timeout is a plain timeout."""
        self.assertEqual(self.transport.classify(req_exc.ReadTimeout()), ErrorKind.TIMEOUT)

    def test_malformed_url_is_invalid_request(self):
        """URLs requests cannot build a request from are invalid."""
        self.assertEqual(self.transport.classify(req_exc.MissingSchema()), ErrorKind.INVALID_REQUEST)
        self.assertEqual(self.transport.classify(req_exc.InvalidURL()), ErrorKind.INVALID_REQUEST)

    def test_connection_error_is_connect(self):
        """A bare ConnectionError means the connection could not be made."""
        self.assertEqual(self.transport.classify(req_exc.ConnectionError("refused")), ErrorKind.CONNECT)

    def test_wrapped_read_timeout_is_timeout(self):
        """A read timeout wrapped by requests during the body read stays a timeout."""
        cause = urllib3_exc.ReadTimeoutError(None, "http://example.com/", "read timed out")
        self.assertEqual(self.transport.classify(req_exc.ConnectionError(cause)), ErrorKind.TIMEOUT)

    def test_wrapped_protocol_error_is_protocol(self):
        """A dropped connection mid-response is a protocol error."""
        cause = urllib3_exc.ProtocolError("Connection aborted.")
        self.assertEqual(self.transport.classify(req_exc.ConnectionError(cause)), ErrorKind.PROTOCOL)

    def test_other_errors_are_protocol(self):
        """Anything unrecognised falls into the protocol bucket."""
        self.assertEqual(self.transport.classify(req_exc.TooManyRedirects()), ErrorKind.PROTOCOL)
        self.assertEqual(self.transport.classify(RuntimeError("boom")), ErrorKind.PROTOCOL)


class TestCurlTransport(unittest.TestCase):
    """Verify the curl_cffi transport with a mocked session class."""

    def setUp(self):
        self.transport = CurlTransport(connect_timeout=2, timeout=5)
        patcher = mock.patch("poolfetch.transport.curl_requests.Session")
        self.session_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.session = self.session_cls.return_value.__enter__.return_value

    def test_success_reports_body_size(self):
        """Status and body length come from the curl response."""
        self.session.get.return_value = mock.Mock(status_code=200, content=b"hello")
        outcome = self.transport.attempt("https://example.com/")
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.body_size, 5)
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["timeout"], (2, 5))
        self.assertEqual(kwargs["impersonate"], "chrome120")

    def test_each_attempt_uses_its_own_session(self):
        """No curl session is shared between attempts, so none between threads."""
        self.session.get.return_value = mock.Mock(status_code=200, content=b"")
        self.transport.attempt("https://example.com/a")
        self.transport.attempt("https://example.com/b")
        self.assertEqual(self.session_cls.call_count, 2)
        self.assertEqual(self.session_cls.return_value.__exit__.call_count, 2)

    def test_connect_codes_are_connect(self):
        """DNS and connect failures are connection-establishment failures."""
        for code in (CurlECode.COULDNT_CONNECT, CurlECode.COULDNT_RESOLVE_HOST):
            self.assertEqual(self.transport.classify(FakeCurlError("failed", code)), ErrorKind.CONNECT)

    def test_timeout_code_split_by_phase(self):
        """curl code 28 is a connect failure only during the connect phase."""
        connect = FakeCurlError("Connection timed out after 2001 milliseconds", CurlECode.OPERATION_TIMEDOUT)
        transfer = FakeCurlError("Operation timed out after 5000 milliseconds", CurlECode.OPERATION_TIMEDOUT)
        self.assertEqual(self.transport.classify(connect), ErrorKind.CONNECT)
        self.assertEqual(self.transport.classify(transfer), ErrorKind.TIMEOUT)

    def test_malformed_url_is_invalid_request(self):
        """curl's malformed-URL code maps to INVALID_REQUEST."""
        exc = FakeCurlError("bad url", CurlECode.URL_MALFORMAT)
        self.assertEqual(self.transport.classify(exc), ErrorKind.INVALID_REQUEST)

    def test_error_without_code_is_protocol(self):
        """Exceptions without a curl code are protocol errors."""
        self.assertEqual(self.transport.classify(ValueError("x")), ErrorKind.PROTOCOL)

    def test_session_exception_becomes_failure(self):
        """A curl error raised by the session is classified, not raised."""
        self.session.get.side_effect = FakeCurlError("refused", CurlECode.COULDNT_CONNECT)
        outcome = self.transport.attempt("https://example.com/")
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error_kind, ErrorKind.CONNECT)


class TestCreateTransport(unittest.TestCase):
    """Verify that the factory creates the correct transport type."""

    def test_creates_requests_transport(self):
        """'requests' builds a RequestsTransport."""
        transport = create_transport("requests", PoolConfig(connect_timeout=3, timeout=9))
        self.assertIsInstance(transport, RequestsTransport)
        transport.close()

    def test_creates_curl_transport(self):
        """'curl' builds a CurlTransport."""
        transport = create_transport("curl", PoolConfig())
        self.assertIsInstance(transport, CurlTransport)
        transport.close()

    def test_unknown_transport_raises_error(self):
        """An unrecognized transport name should raise ConfigurationError."""
        with self.assertRaises(ConfigurationError) as ctx:
            create_transport("carrier-pigeon", PoolConfig())
        self.assertIn("carrier-pigeon", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
