# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""
Define the exceptions raised by anchorage.

There are two families. ``RepositoryError`` and its subclasses mean the
repository content could not be trusted: a load that raises one of these
must be treated as a security failure. ``DownloadError`` and its subclasses
mean that content could not be retrieved at all.

The names chosen for Exception classes should end in 'Error' except where
there is a good reason not to, and provide that reason in those cases.
"""

from typing import Optional

#### Repository errors ####


class RepositoryError(Exception):
    """An error with a repository's state, such as bad signatures.

    It covers all exceptions that come from the repository side when
    looking from the perspective of the client.

    Args:
        role: Name of the metadata role the error is about, if known.
    """

    def __init__(self, *args: object, role: Optional[str] = None):
        super().__init__(*args)
        self.role = role


class UnsignedMetadataError(RepositoryError):
    """An error about metadata object with insufficient threshold of
    signatures.
    """


class BadVersionNumberError(RepositoryError):
    """An error for metadata that contains an invalid version number."""


class InconsistentVersionError(BadVersionNumberError):
    """A previously seen version number was served with different content."""


class ExpiredMetadataError(RepositoryError):
    """Indicate that a metadata file has expired."""


class LengthOrHashMismatchError(RepositoryError):
    """An error while checking the length and hash values of an object."""


class MalformedMetadataError(RepositoryError):
    """Metadata could not be parsed or violates the document format."""


class MaxRootRotationsError(RepositoryError):
    """More root versions are available than the client is willing to
    rotate through in one load.
    """


class MaxDelegationDepthError(RepositoryError):
    """A delegation chain is deeper than the configured limit."""


#### Download Errors ####


class DownloadError(Exception):
    """An error occurred while attempting to download a file."""


class DownloadNotFoundError(DownloadError):
    """The requested file does not exist on the remote.

    Args:
        message: Error message
        status_code: HTTP status code (403 or 404) if the transport is HTTP
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DownloadLengthMismatchError(DownloadError):
    """Indicate that a mismatch of lengths was seen while downloading a file."""


class SlowRetrievalError(DownloadError):
    """Indicate that downloading a file took an unreasonably long time."""


class UnsupportedURLSchemeError(DownloadError):
    """The transport does not handle the scheme of the requested URL."""


class DownloadHTTPError(DownloadError):
    """
    Raised by transports for an HTTP error status: immediately for a
    status that is not retried, and for a 5xx once retries run out.

    Args:
        message: The HTTP error messsage
        status_code: The HTTP status code
    """

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code
