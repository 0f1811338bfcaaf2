# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Unit test for RequestsTransport and the retry logic below it."""

import logging
import sys
import unittest
from typing import Dict, Iterable, Optional
from unittest import mock

import requests
import urllib3

from anchorage.api import exceptions
from anchorage.client._internal.requests_transport import RequestsTransport
from anchorage.client._internal.retry import RetryState
from anchorage.client.config import RetrySettings
from tests import utils

logger = logging.getLogger(__name__)

URL = "https://example.com/metadata/timestamp.json"


def _response(
    status: int,
    chunks: Iterable[object] = (),
    headers: Optional[Dict[str, str]] = None,
) -> mock.Mock:
    """Return a mock streamed response. 'chunks' are returned (or raised)
    by consecutive body reads, then the body is at EOF."""
    chunk_iter = iter(chunks)

    def read(size: int) -> object:
        chunk = next(chunk_iter, b"")
        if isinstance(chunk, Exception):
            raise chunk
        return chunk

    response = mock.Mock()
    response.status_code = status
    response.headers = headers or {}
    response.raw.read.side_effect = read
    return response


def _range(headers: Dict[str, str], start: int) -> Dict[str, str]:
    """Return 'headers' with a Content-Range starting at 'start'"""
    return {**headers, "Content-Range": f"bytes {start}-2/3"}


def _protocol_error() -> urllib3.exceptions.ProtocolError:
    return urllib3.exceptions.ProtocolError("Connection broken")


@mock.patch("time.sleep")
@mock.patch.object(requests.Session, "get")
class TestRequestsTransport(unittest.TestCase):
    """Test RequestsTransport with mocked sessions: no network is used."""

    def setUp(self) -> None:
        self.transport = RequestsTransport()

    def _headers(self, mock_get: mock.Mock, call: int) -> Dict[str, str]:
        return mock_get.call_args_list[call].kwargs["headers"]

    def test_fetch(self, mock_get: mock.Mock, mock_sleep: mock.Mock) -> None:
        mock_get.return_value = _response(200, [b"some ", b"data", b""])
        with self.transport.fetch(URL) as stream:
            self.assertEqual(stream.read(), b"some data")

        self.assertEqual(mock_get.call_count, 1)
        self.assertEqual(self._headers(mock_get, 0), {})
        kwargs = mock_get.call_args.kwargs
        self.assertTrue(kwargs["stream"])
        self.assertEqual(kwargs["timeout"], (10.0, 30.0))
        mock_sleep.assert_not_called()

    def test_server_errors_are_retried(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [
            _response(503),
            _response(500),
            _response(502),
            _response(200, [b"data", b""]),
        ]
        with self.transport.fetch(URL) as stream:
            self.assertEqual(stream.read(), b"data")

        self.assertEqual(mock_get.call_count, 4)
        waits = [c.args[0] for c in mock_sleep.call_args_list]
        self.assertEqual(len(waits), 3)
        for wait, expected in zip(waits, [0.1, 0.15, 0.225]):
            self.assertAlmostEqual(wait, expected)

    def test_retries_exhausted(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [_response(503) for _ in range(4)]
        with self.assertRaises(exceptions.DownloadHTTPError) as e:
            self.transport.fetch(URL)
        self.assertEqual(e.exception.status_code, 503)
        self.assertEqual(mock_get.call_count, 4)
        self.assertEqual(mock_sleep.call_count, 3)

    def test_backoff_is_capped(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        self.transport = RequestsTransport(
            RetrySettings(tries=6, backoff_factor=4.0, max_backoff=0.5)
        )
        mock_get.side_effect = [_response(503) for _ in range(6)]
        with self.assertRaises(exceptions.DownloadHTTPError):
            self.transport.fetch(URL)

        waits = [c.args[0] for c in mock_sleep.call_args_list]
        self.assertEqual(len(waits), 5)
        self.assertAlmostEqual(waits[0], 0.1)
        self.assertAlmostEqual(waits[1], 0.4)
        for wait in waits[2:]:
            self.assertAlmostEqual(wait, 0.5)

    def test_not_found(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        for status in [403, 404]:
            with self.subTest(status=status):
                mock_get.reset_mock()
                mock_get.side_effect = [_response(status)]
                with self.assertRaises(exceptions.DownloadNotFoundError) as e:
                    self.transport.fetch(URL)
                self.assertEqual(e.exception.status_code, status)
                self.assertEqual(mock_get.call_count, 1)
        mock_sleep.assert_not_called()

    def test_client_errors_are_not_retried(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [_response(400)]
        with self.assertRaises(exceptions.DownloadHTTPError) as e:
            self.transport.fetch(URL)
        self.assertEqual(e.exception.status_code, 400)
        self.assertEqual(mock_get.call_count, 1)
        mock_sleep.assert_not_called()

    def test_request_errors_are_retried(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [
            requests.ConnectionError("refused"),
            requests.Timeout("slow"),
            _response(200, [b"data", b""]),
        ]
        with self.transport.fetch(URL) as stream:
            self.assertEqual(stream.read(), b"data")
        self.assertEqual(mock_sleep.call_count, 2)

    def test_timeouts_exhaust_retries(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = requests.Timeout("slow")
        with self.assertRaises(exceptions.SlowRetrievalError) as e:
            self.transport.fetch(URL)
        self.assertIsInstance(e.exception.__cause__, requests.Timeout)
        self.assertEqual(mock_get.call_count, 4)

        mock_get.reset_mock()
        mock_get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(exceptions.DownloadError) as e:
            self.transport.fetch(URL)
        self.assertNotIsInstance(e.exception, exceptions.SlowRetrievalError)

    def test_resume_with_range(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [
            _response(
                200,
                [b"abc", _protocol_error()],
                {"Accept-Ranges": "bytes"},
            ),
            _response(
                206,
                [b"def", b""],
                {"Accept-Ranges": "bytes", "Content-Range": "bytes 3-5/6"},
            ),
        ]
        with self.transport.fetch(URL) as stream:
            self.assertEqual(stream.read(), b"abcdef")

        self.assertEqual(mock_get.call_count, 2)
        self.assertEqual(self._headers(mock_get, 0), {})
        self.assertEqual(self._headers(mock_get, 1), {"Range": "bytes=3-"})
        self.assertEqual(mock_sleep.call_count, 1)

    def test_resume_shares_retry_budget(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        ranges = {"Accept-Ranges": "bytes"}
        mock_get.side_effect = [
            _response(503),
            _response(200, [b"a", _protocol_error()], ranges),
            _response(206, [b"b", _protocol_error()], _range(ranges, 1)),
            _response(206, [b"c", _protocol_error()], _range(ranges, 2)),
        ]
        with self.transport.fetch(URL) as stream:
            with self.assertRaises(exceptions.DownloadError):
                stream.read()

        # one initial try and three retries, whatever failed
        self.assertEqual(mock_get.call_count, 4)
        self.assertEqual(self._headers(mock_get, 3), {"Range": "bytes=2-"})

    def test_no_resume_without_range_support(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [_response(200, [b"abc", _protocol_error()])]
        with self.transport.fetch(URL) as stream:
            with self.assertLogs(
                "anchorage.client._internal.retry", logging.ERROR
            ):
                with self.assertRaises(exceptions.DownloadError):
                    stream.read()
        self.assertEqual(mock_get.call_count, 1)

    def test_resume_requires_partial_content(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        ranges = {"Accept-Ranges": "bytes"}
        mock_get.side_effect = [
            _response(200, [b"abc", _protocol_error()], ranges),
            _response(200, [b"abcdef", b""], ranges),
        ]
        with self.transport.fetch(URL) as stream:
            with self.assertRaises(exceptions.DownloadError):
                stream.read()
        self.assertEqual(mock_get.call_count, 2)

    def test_resume_requires_requested_range(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        ranges = {"Accept-Ranges": "bytes"}
        for content_range in [None, "bytes 0-5/6", "bytes */6", "items 3-5"]:
            with self.subTest(content_range=content_range):
                headers = dict(ranges)
                if content_range is not None:
                    headers["Content-Range"] = content_range
                mock_get.reset_mock()
                mock_get.side_effect = [
                    _response(200, [b"abc", _protocol_error()], ranges),
                    _response(206, [b"abcdef", b""], headers),
                ]
                with self.transport.fetch(URL) as stream:
                    with self.assertRaises(exceptions.DownloadError):
                        stream.read()
                self.assertEqual(mock_get.call_count, 2)

    def test_download_bytes(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        mock_get.side_effect = [_response(200, [b"0123456789", b""])]
        self.assertEqual(self.transport.download_bytes(URL, 10), b"0123456789")

        mock_get.side_effect = [_response(200, [b"0123456789", b""])]
        with self.assertRaises(exceptions.DownloadLengthMismatchError):
            self.transport.download_bytes(URL, 9)

    def test_unsupported_scheme(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        with self.assertRaises(exceptions.UnsupportedURLSchemeError):
            self.transport.fetch("ftp://example.com/timestamp.json")
        mock_get.assert_not_called()

    def test_session_headers(
        self, mock_get: mock.Mock, mock_sleep: mock.Mock
    ) -> None:
        transport = RequestsTransport(app_user_agent="MyApp/1.0")
        session = transport._get_session(URL)
        self.assertEqual(session.headers["Accept-Encoding"], "identity")
        user_agent = session.headers["User-Agent"]
        self.assertTrue(user_agent.startswith("MyApp/1.0 anchorage/"))
        self.assertIn("python-requests", user_agent)

        # sessions are reused per scheme and host
        self.assertIs(transport._get_session(URL), session)
        other = transport._get_session("http://example.com/x")
        self.assertIsNot(other, session)


class TestRetryState(unittest.TestCase):
    """Backoff progression of RetryState."""

    def test_increment(self) -> None:
        settings = RetrySettings()
        state = RetryState(settings.initial_backoff)
        waits = []
        while not state.exhausted(settings):
            state.increment(settings)
            waits.append(state.wait)

        self.assertEqual(state.current_try, 3)
        for wait, expected in zip(waits, [0.1, 0.15, 0.225]):
            self.assertAlmostEqual(wait, expected)


# Run unit test.
if __name__ == "__main__":
    utils.configure_test_logging(sys.argv)
    unittest.main()
