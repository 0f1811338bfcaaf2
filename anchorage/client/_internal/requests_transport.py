# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Provides an implementation of ``TransportInterface`` using the Requests
HTTP library, with retries and byte range resume.
"""

import io
import logging
import threading
from typing import IO, Dict, Optional, Tuple
from urllib import parse

# Imports
import requests

import anchorage
from anchorage.api import exceptions
from anchorage.client._internal.retry import (
    RetryState,
    RetryStream,
    fetch_with_retries,
)
from anchorage.client.config import RetrySettings
from anchorage.client.transport import TransportInterface

# Globals
logger = logging.getLogger(__name__)


# Classes
class RequestsTransport(TransportInterface):
    """An implementation of ``TransportInterface`` based on requests.

    Every returned stream owns its own retry counters (see
    ``anchorage.client._internal.retry``).

    Attributes:
        settings: Timeouts and retry policy.
        app_user_agent: Application user agent, e.g. "MyApp/1.0.0", prefixed
            to the anchorage user agent.
    """

    def __init__(
        self,
        settings: Optional[RetrySettings] = None,
        app_user_agent: Optional[str] = None,
    ) -> None:
        # NOTE: We use a separate requests.Session per scheme+hostname
        # combination, in order to reuse connections to the same hostname,
        # but avoiding sharing state between different hosts-scheme
        # combinations. Sessions are not shared across threads either.
        self._local = threading.local()

        self.settings = settings or RetrySettings()
        self.app_user_agent = app_user_agent

    def _fetch(self, url: str) -> IO[bytes]:
        """Open a HTTP/HTTPS ``url`` for streamed reading.

        Raises:
            exceptions.UnsupportedURLSchemeError: Not a HTTP/HTTPS url.
            exceptions.DownloadNotFoundError: Status 403 or 404.
            exceptions.DownloadHTTPError: Non retryable HTTP error code, or
                a server error on the last try.
            exceptions.DownloadError: Request failed on the last try.
        """
        session = self._get_session(url)
        timeout = (self.settings.connect_timeout, self.settings.timeout)

        def send(url: str, headers: Dict[str, str]) -> requests.Response:
            # Defer downloading the response body with stream=True.
            return session.get(
                url, headers=headers, stream=True, timeout=timeout
            )

        state = RetryState(self.settings.initial_backoff)
        response = fetch_with_retries(send, url, self.settings, state)
        return io.BufferedReader(
            RetryStream(send, url, self.settings, state, response)
        )

    def _get_session(self, url: str) -> requests.Session:
        """Return a customized requests.Session for this thread and the
        schema+hostname of ``url``.

        Raises:
            exceptions.UnsupportedURLSchemeError: Not a HTTP/HTTPS url.
        """
        parsed_url = parse.urlparse(url)

        if parsed_url.scheme not in ("http", "https"):
            raise exceptions.UnsupportedURLSchemeError(
                f"Unsupported URL scheme in {url}"
            )

        sessions: Dict[Tuple[str, str], requests.Session] = getattr(
            self._local, "sessions", {}
        )
        self._local.sessions = sessions

        session_index = (parsed_url.scheme, parsed_url.hostname or "")
        session = sessions.get(session_index)

        if not session:
            session = requests.Session()
            sessions[session_index] = session

            requests_ua = session.headers["User-Agent"]
            ua = f"anchorage/{anchorage.__version__} {requests_ua}"
            if self.app_user_agent is not None:
                ua = f"{self.app_user_agent} {ua}"
            session.headers.update(
                {
                    # Byte offsets used for resuming must be offsets into
                    # the file itself, not into a compressed encoding of it.
                    "Accept-Encoding": "identity",
                    "User-Agent": ua,
                }
            )

            logger.debug("Made new session %s", session_index)
        else:
            logger.debug("Reusing session %s", session_index)

        return session
