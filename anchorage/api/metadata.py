# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""The signed document envelope.

A ``Metadata`` object represents a single metadata file: a ``signed`` payload
(one of ``Root``, ``Timestamp``, ``Snapshot`` or ``Targets``) plus the
signatures over the canonical form of that payload. ``Metadata`` can be type
constrained, e.g. the signed attribute of ``Metadata[Root]`` is a ``Root``.

When a document is parsed from bytes the canonical form of the *received*
``signed`` object is captured before the payload classes interpret it. That
capture is what signatures are verified against, so fields anchorage does
not understand are still covered by the signatures.
"""

import logging
from typing import Any, Dict, Generic, Optional, Type, cast

from securesystemslib.formats import encode_canonical
from securesystemslib.signer import Signature

# Expose payload classes via ``anchorage.api.metadata``
from anchorage.api._payload import (  # noqa: F401
    _ROOT,
    _SNAPSHOT,
    _TARGETS,
    _TIMESTAMP,
    SPECIFICATION_VERSION,
    TOP_LEVEL_ROLE_NAMES,
    BaseFile,
    DelegatedRole,
    Delegations,
    Key,
    MetaFile,
    Role,
    Root,
    Signed,
    Snapshot,
    T,
    TargetFile,
    Targets,
    Timestamp,
    VerificationResult,
)
from anchorage.api.serialization import MetadataDeserializer

logger = logging.getLogger(__name__)

_PAYLOAD_CLASSES: Dict[str, Type[Signed]] = {
    _ROOT: Root,
    _TIMESTAMP: Timestamp,
    _SNAPSHOT: Snapshot,
    _TARGETS: Targets,
}


class Metadata(Generic[T]):
    """A container for signed metadata.

    New documents can be created from scratch with::

        one_day = datetime.now(timezone.utc) + timedelta(days=1)
        timestamp = Metadata(Timestamp(expires=one_day))

    *All parameters named below are not just constructor arguments but also
    instance attributes.*

    Args:
        signed: Actual metadata payload, i.e. one of ``Targets``,
            ``Snapshot``, ``Timestamp`` or ``Root``.
        signatures: Ordered dictionary of keyids to ``Signature`` objects.
        unrecognized_fields: Dictionary of envelope attributes that are not
            managed by anchorage. These fields are NOT signed.
    """

    def __init__(
        self,
        signed: T,
        signatures: Optional[Dict[str, Signature]] = None,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        self.signed: T = signed
        self.signatures = signatures if signatures is not None else {}
        self.unrecognized_fields = unrecognized_fields or {}
        # canonical bytes of "signed" as received, set by from_dict()
        self._received_signed_bytes: Optional[bytes] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Metadata):
            return False

        return (
            list(self.signatures.items()) == list(other.signatures.items())
            and self.signed == other.signed
            and self.unrecognized_fields == other.unrecognized_fields
        )

    @property
    def signed_bytes(self) -> bytes:
        """Canonical JSON bytes of the current ``self.signed``."""

        # Use local scope import to avoid circular import errors
        from anchorage.api.serialization.json import CanonicalJSONSerializer

        return CanonicalJSONSerializer().serialize(self.signed)

    @property
    def verification_payload(self) -> bytes:
        """Bytes that signatures must be verified against.

        This is the canonical form of ``signed`` as it was received when the
        document was parsed, and ``signed_bytes`` for documents built locally.
        """
        if self._received_signed_bytes is not None:
            return self._received_signed_bytes

        return self.signed_bytes

    @classmethod
    def from_dict(cls, metadata: Dict[str, Any]) -> "Metadata[T]":
        """Create ``Metadata`` object from its json/dict representation.

        Only the first signature of a keyid is kept: one key never counts
        more than once toward a threshold.

        Raises:
            ValueError, KeyError, TypeError: Invalid arguments.

        Side Effect:
            Destroys the metadata dict passed by reference.
        """
        signed_dict = metadata.pop("signed")
        _type = signed_dict["_type"]
        inner_cls = _PAYLOAD_CLASSES.get(_type)
        if inner_cls is None:
            raise ValueError(f'unrecognized metadata type "{_type}"')

        received = encode_canonical(signed_dict).encode("utf-8")

        signatures: Dict[str, Signature] = {}
        for sig_dict in metadata.pop("signatures"):
            sig = Signature.from_dict(sig_dict)
            if sig.keyid in signatures:
                logger.debug("Ignoring duplicate signature by %s", sig.keyid)
                continue
            signatures[sig.keyid] = sig

        md = cls(
            # Specific type T is not known at static type check time: use cast
            signed=cast(T, inner_cls.from_dict(signed_dict)),
            signatures=signatures,
            unrecognized_fields=metadata,
        )
        md._received_signed_bytes = received
        return md

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        deserializer: Optional[MetadataDeserializer] = None,
    ) -> "Metadata[T]":
        """Load metadata from raw data.

        Raises:
            anchorage.api.serialization.DeserializationError:
                The data cannot be deserialized.
        """

        if deserializer is None:
            # Use local scope import to avoid circular import errors
            from anchorage.api.serialization.json import JSONDeserializer

            deserializer = JSONDeserializer()

        return deserializer.deserialize(data)

    def to_dict(self) -> Dict[str, Any]:
        """Return the dict representation of self."""

        return {
            "signatures": [sig.to_dict() for sig in self.signatures.values()],
            "signed": self.signed.to_dict(),
            **self.unrecognized_fields,
        }
