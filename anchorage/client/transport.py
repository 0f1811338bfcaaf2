# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Provides an interface for IO abstraction, and a local file transport."""

# Imports
import abc
import logging
from typing import IO
from urllib import parse, request

from anchorage.api import exceptions

logger = logging.getLogger(__name__)


# Classes
class TransportInterface(metaclass=abc.ABCMeta):
    """Defines an interface for abstract file retrieval.

    By providing a concrete implementation of the abstract interface,
    users can plug-in their preferred/customized network or storage stack.
    A single transport instance is used from every thread that reads from
    a ``Repository``, so implementations must be thread-safe.

    Implementations of TransportInterface only need to implement ``_fetch()``.
    The public API of the class is already implemented.
    """

    @abc.abstractmethod
    def _fetch(self, url: str) -> IO[bytes]:
        """Open ``url`` for reading.

        Implementations must raise ``DownloadNotFoundError`` when the file
        does not exist. They may raise any other errors: the ones that are not
        ``DownloadErrors`` will be wrapped in a ``DownloadError`` by
        ``fetch()``.

        Args:
            url: URL string that represents a file location.

        Raises:
            exceptions.DownloadNotFoundError: The file does not exist.

        Returns:
            Readable binary stream. The caller closes it.
        """
        raise NotImplementedError  # pragma: no cover

    def fetch(self, url: str) -> IO[bytes]:
        """Open ``url`` for reading.

        Raises:
            exceptions.DownloadNotFoundError: The file does not exist.
            exceptions.DownloadError: Any other error during retrieval.

        Returns:
            Readable binary stream. The caller closes it.
        """
        # Ensure that fetch() only raises DownloadErrors, regardless of the
        # transport implementation
        try:
            return self._fetch(url)
        except exceptions.DownloadError as e:
            raise e
        except Exception as e:
            raise exceptions.DownloadError(f"Failed to download {url}") from e

    def download_bytes(self, url: str, max_length: int) -> bytes:
        """Download at most ``max_length`` bytes from ``url``.

        Raises:
            exceptions.DownloadNotFoundError: The file does not exist.
            exceptions.DownloadLengthMismatchError: The file is longer than
                ``max_length``.
            exceptions.DownloadError: Any other error during retrieval.
        """
        logger.debug("Downloading: %s", url)

        data = bytearray()
        stream = self.fetch(url)
        try:
            # one byte more than allowed is enough to detect an oversized file
            while len(data) <= max_length:
                chunk = stream.read(max_length + 1 - len(data))
                if not chunk:
                    break
                data += chunk
        except exceptions.DownloadError as e:
            raise e
        except Exception as e:
            raise exceptions.DownloadError(f"Failed to read {url}") from e
        finally:
            stream.close()

        if len(data) > max_length:
            raise exceptions.DownloadLengthMismatchError(
                f"Downloaded over {max_length} bytes from {url}"
            )

        logger.debug("Downloaded %d bytes from %s", len(data), url)
        return bytes(data)


class FilesystemTransport(TransportInterface):
    """Transport for ``file://`` URLs.

    A missing file is reported as ``DownloadNotFoundError``, every other
    ``OSError`` as a plain ``DownloadError``.
    """

    def _fetch(self, url: str) -> IO[bytes]:
        parsed_url = parse.urlparse(url)
        if parsed_url.scheme != "file":
            raise exceptions.UnsupportedURLSchemeError(
                f"Unsupported URL scheme in {url}"
            )

        path = request.url2pathname(parsed_url.path)
        try:
            return open(path, "rb")  # noqa: SIM115
        except FileNotFoundError as e:
            raise exceptions.DownloadNotFoundError(f"{path} not found") from e
        except OSError as e:
            raise exceptions.DownloadError(f"Failed to open {path}") from e
