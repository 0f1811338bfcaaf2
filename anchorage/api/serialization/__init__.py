# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Abstract base classes for metadata de/serialization.

- Metadata deserializers convert from wireline formats.
- Signed serializers canonicalize payloads for signature generation and
  verification.
"""

import abc
from typing import TYPE_CHECKING

from anchorage.api.exceptions import MalformedMetadataError, RepositoryError

if TYPE_CHECKING:
    from anchorage.api.metadata import Metadata, Signed


class SerializationError(RepositoryError):
    """Error during serialization."""


class DeserializationError(MalformedMetadataError):
    """Error during deserialization."""


class MetadataDeserializer(metaclass=abc.ABCMeta):
    """Abstract base class for deserialization of Metadata objects."""

    @abc.abstractmethod
    def deserialize(self, raw_data: bytes) -> "Metadata":
        """Deserialize bytes to Metadata object."""
        raise NotImplementedError


class SignedSerializer(metaclass=abc.ABCMeta):
    """Abstract base class for serialization of Signed objects."""

    @abc.abstractmethod
    def serialize(self, signed_obj: "Signed") -> bytes:
        """Serialize Signed object to bytes."""
        raise NotImplementedError
