# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""anchorage client public API."""

from anchorage.api.metadata import TargetFile
from anchorage.client._internal.requests_transport import RequestsTransport
from anchorage.client.config import (
    ExpirationMode,
    LoadSettings,
    Limits,
    RetrySettings,
)
from anchorage.client.ledger import VersionLedger
from anchorage.client.repository import Repository
from anchorage.client.transport import FilesystemTransport, TransportInterface

__all__ = [
    ExpirationMode.__name__,
    FilesystemTransport.__name__,
    Limits.__name__,
    LoadSettings.__name__,
    Repository.__name__,
    RequestsTransport.__name__,
    RetrySettings.__name__,
    TargetFile.__name__,
    TransportInterface.__name__,
    VersionLedger.__name__,
]
