# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""JSON wireline format for metadata, and OLPC Canonical JSON for the
signed payload.
"""

import json

from securesystemslib.formats import encode_canonical

from anchorage.api.metadata import Metadata, Signed
from anchorage.api.serialization import (
    DeserializationError,
    MetadataDeserializer,
    SerializationError,
    SignedSerializer,
)


class JSONDeserializer(MetadataDeserializer):
    """Provides JSON to Metadata deserialize method."""

    def deserialize(self, raw_data: bytes) -> Metadata:
        """Deserialize utf-8 encoded JSON bytes into Metadata object."""
        try:
            json_dict = json.loads(raw_data.decode("utf-8"))
            if not isinstance(json_dict, dict):
                raise ValueError("Metadata must be a JSON object")
            metadata_obj = Metadata.from_dict(json_dict)

        except Exception as e:
            raise DeserializationError(
                f"Failed to deserialize JSON: {e}"
            ) from e

        return metadata_obj


class CanonicalJSONSerializer(SignedSerializer):
    """Provides Signed to OLPC Canonical JSON serialize method."""

    def serialize(self, signed_obj: Signed) -> bytes:
        """Serialize Signed object into canonical utf-8 bytes."""
        try:
            return encode_canonical(signed_obj.to_dict()).encode("utf-8")
        except Exception as e:
            raise SerializationError from e
