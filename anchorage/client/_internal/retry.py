# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Retry, backoff and byte range resume for HTTP downloads.

The retry counters live in a ``RetryState`` owned by a single download: the
same state is used for the initial request and for any request that resumes
the body after a read error, so a flaky server cannot reset the budget by
failing mid-stream.
"""

import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests
import urllib3

from anchorage.api import exceptions
from anchorage.client.config import RetrySettings

logger = logging.getLogger(__name__)

# Sends one GET request for the url with the given extra headers
SendFunction = Callable[[str, Dict[str, str]], requests.Response]

# Errors that can be raised by reading the body of a streamed response
_READ_ERRORS = (
    urllib3.exceptions.HTTPError,
    requests.RequestException,
    OSError,
)


@dataclass
class RetryState:
    """Retry counters of one download.

    Attributes:
        wait: Seconds to wait before the next attempt.
        current_try: Number of retries done so far, 0 for the first attempt.
        next_byte: Offset of the next body byte the reader expects.
    """

    wait: float
    current_try: int = 0
    next_byte: int = 0

    def increment(self, settings: RetrySettings) -> None:
        """Account for one more retry. The wait only starts to grow from the
        second retry on.
        """
        if self.current_try > 0:
            self.wait = min(
                self.wait * settings.backoff_factor, settings.max_backoff
            )
        self.current_try += 1

    def exhausted(self, settings: RetrySettings) -> bool:
        return self.current_try >= settings.tries - 1


def _range_headers(state: RetryState) -> Dict[str, str]:
    if state.next_byte > 0:
        return {"Range": f"bytes={state.next_byte}-"}
    return {}


def _content_range_start(response: requests.Response) -> Optional[int]:
    """Return the first byte position of a "bytes" Content-Range, or None."""
    header = response.headers.get("Content-Range", "")
    unit, _, byte_range = header.strip().partition(" ")
    start, sep, _ = byte_range.partition("-")
    if unit.lower() != "bytes" or not sep or not start.isdigit():
        return None
    return int(start)


def _check_response(
    url: str, response: requests.Response, state: RetryState
) -> Optional[exceptions.DownloadError]:
    """Classify ``response``.

    Returns None on success, or an error that may be retried.

    Raises:
        exceptions.DownloadNotFoundError: 403 or 404.
        exceptions.DownloadHTTPError: Any other non-retryable status.
        exceptions.DownloadError: A resume request was not answered with
            partial content starting at the requested byte.
    """
    status = response.status_code
    if 200 <= status < 300:
        if state.next_byte == 0:
            return None
        if status != 206:
            response.close()
            raise exceptions.DownloadError(
                f"Expected partial content resuming {url} at byte "
                f"{state.next_byte}, got status {status}"
            )
        if _content_range_start(response) != state.next_byte:
            response.close()
            raise exceptions.DownloadError(
                f"Expected content from byte {state.next_byte} resuming "
                f"{url}, got Content-Range "
                f"{response.headers.get('Content-Range')!r}"
            )
        return None

    response.close()
    if status in (403, 404):
        raise exceptions.DownloadNotFoundError(
            f"{url} not found (status {status})", status
        )
    error = exceptions.DownloadHTTPError(f"Status {status} for {url}", status)
    if 500 <= status < 600:
        return error
    raise error


def fetch_with_retries(
    send: SendFunction,
    url: str,
    settings: RetrySettings,
    state: RetryState,
) -> requests.Response:
    """Request ``url`` until a usable response arrives or retries run out.

    A request error without a response and a 5xx status are retried,
    sleeping ``state.wait`` before each retry. Any other failure is raised
    immediately. When retries run out the last error is raised.

    Raises:
        exceptions.DownloadError: The request failed.
    """
    while True:
        try:
            response = send(url, _range_headers(state))
        except requests.RequestException as e:
            error: exceptions.DownloadError
            if isinstance(e, requests.Timeout):
                error = exceptions.SlowRetrievalError(f"Timed out on {url}")
            else:
                error = exceptions.DownloadError(f"Failed to request {url}")
            error.__cause__ = e
        else:
            retryable = _check_response(url, response, state)
            if retryable is None:
                return response
            error = retryable

        if state.exhausted(settings):
            raise error

        state.increment(settings)
        logger.debug(
            "Retry %d for %s in %.3fs: %s",
            state.current_try,
            url,
            state.wait,
            error,
        )
        time.sleep(state.wait)


def _accepts_ranges(response: requests.Response) -> bool:
    return response.headers.get("Accept-Ranges", "").strip().lower() == "bytes"


class RetryStream(io.RawIOBase):
    """Raw stream over a response body that resumes the body with a range
    request when a read fails.

    A read error fails the read when retries are exhausted, and when the
    server did not advertise ``Accept-Ranges: bytes``: without range
    support there is no safe way to continue from ``next_byte``.
    """

    def __init__(
        self,
        send: SendFunction,
        url: str,
        settings: RetrySettings,
        state: RetryState,
        response: requests.Response,
    ):
        super().__init__()
        self._send = send
        self._url = url
        self._settings = settings
        self._state = state
        self._response = response

    @property
    def state(self) -> RetryState:
        return self._state

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:  # noqa: ANN401
        while True:
            try:
                data = self._response.raw.read(len(buffer))
            except _READ_ERRORS as e:
                self._resume(e)
                continue

            size = len(data)
            buffer[:size] = data
            self._state.next_byte += size
            return size

    def _resume(self, error: Exception) -> None:
        """Replace the broken response with one that continues at
        ``next_byte``, or raise.
        """
        if self._state.exhausted(self._settings):
            raise exceptions.DownloadError(
                f"Failed to read {self._url} at byte {self._state.next_byte}"
            ) from error

        self._state.increment(self._settings)
        if not _accepts_ranges(self._response):
            logger.error(
                "Cannot resume %s at byte %d: no range support",
                self._url,
                self._state.next_byte,
            )
            raise exceptions.DownloadError(
                f"Failed to read {self._url}, server does not support ranges"
            ) from error

        logger.debug(
            "Resuming %s at byte %d in %.3fs",
            self._url,
            self._state.next_byte,
            self._state.wait,
        )
        self._response.close()
        time.sleep(self._state.wait)
        self._response = fetch_with_retries(
            self._send, self._url, self._settings, self._state
        )

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()
