# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Verification of the metadata chain that hangs off a trusted root.

``MetadataChain`` accepts timestamp, snapshot, targets and delegated
targets metadata strictly in that order. Each document is only accepted
when:

* it is signed by a threshold of the keys its delegator assigns to it,
* its length and hashes match those pinned by the document above it
  (snapshot in timestamp, targets roles in snapshot),
* its version equals the pinned version,
* it does not roll back versions recorded in the ``VersionLedger``, and
* it passes the ``ExpirationPolicy``.

Calling the update methods out of order raises ``RuntimeError``.

Example::

    chain = MetadataChain(root, policy, ledger)
    chain.update_timestamp(timestamp_bytes)
    chain.update_snapshot(snapshot_bytes)
    chain.update_targets(targets_bytes)
    chain.update_delegated_targets(role1_bytes, "role1", "targets")
"""

import logging
from typing import Dict, Optional, Type, Union

from anchorage.api import exceptions
from anchorage.api.metadata import (
    Metadata,
    MetaFile,
    Root,
    Snapshot,
    T,
    Targets,
    Timestamp,
)
from anchorage.api.serialization import DeserializationError
from anchorage.client._internal.expiration import ExpirationPolicy
from anchorage.client.ledger import VersionLedger

logger = logging.getLogger(__name__)

Delegator = Union[Root, Targets]


def load_document(data: bytes, role_name: str, role: Type[T]) -> Metadata[T]:
    """Parse ``data`` as metadata of payload type ``role``.

    Signatures are not checked here.

    Raises:
        MalformedMetadataError: ``data`` is not metadata of the right type.
    """
    try:
        md = Metadata[T].from_bytes(data)
    except DeserializationError as e:
        raise exceptions.MalformedMetadataError(
            f"Failed to load {role_name}: {e}", role=role_name
        ) from e

    if md.signed.type != role.type:
        raise exceptions.MalformedMetadataError(
            f"Expected '{role.type}', got '{md.signed.type}'", role=role_name
        )

    return md


def _verify_pinned(meta: MetaFile, data: bytes, role_name: str) -> None:
    try:
        meta.verify_length_and_hashes(data)
    except exceptions.LengthOrHashMismatchError as e:
        raise exceptions.LengthOrHashMismatchError(
            f"{role_name}: {e}", role=role_name
        ) from e


class MetadataChain:
    """Verified timestamp, snapshot and targets metadata for one load.

    Args:
        root: Final trusted root. Its expiry is checked here.
        policy: Expiration policy of this load.
        ledger: Versions accepted earlier in the session. It is told about
            ``root`` so that versions signed by replaced keys stop binding.

    Raises:
        ExpiredMetadataError: ``root`` expired and expiry is enforced.
    """

    def __init__(
        self, root: Root, policy: ExpirationPolicy, ledger: VersionLedger
    ):
        policy.check(root, Root.type)
        ledger.trust_root(root)
        self._root = root
        self._policy = policy
        self._ledger = ledger
        self._timestamp: Optional[Timestamp] = None
        self._snapshot: Optional[Snapshot] = None
        self._targets: Dict[str, Targets] = {}

    @property
    def root(self) -> Root:
        return self._root

    @property
    def timestamp(self) -> Timestamp:
        """Verified timestamp. Raises RuntimeError before it is loaded."""
        if self._timestamp is None:
            raise RuntimeError("Timestamp is not loaded")
        return self._timestamp

    @property
    def snapshot(self) -> Snapshot:
        """Verified snapshot. Raises RuntimeError before it is loaded."""
        if self._snapshot is None:
            raise RuntimeError("Snapshot is not loaded")
        return self._snapshot

    @property
    def targets(self) -> Targets:
        """Verified top-level targets. Raises RuntimeError before it is
        loaded.
        """
        return self.get_targets(Targets.type)

    def get_targets(self, role_name: str) -> Targets:
        if role_name not in self._targets:
            raise RuntimeError(f"{role_name} is not loaded")
        return self._targets[role_name]

    def __contains__(self, role_name: str) -> bool:
        return role_name in self._targets

    def update_timestamp(self, data: bytes) -> Timestamp:
        """Verify and load ``data`` as the timestamp.

        Raises:
            RuntimeError: Timestamp is already loaded.
            RepositoryError: Metadata failed to load or verify. The actual
                error type and content will contain more details.
        """
        if self._timestamp is not None:
            raise RuntimeError("Cannot update timestamp twice")

        md = load_document(data, Timestamp.type, Timestamp)
        payload = md.verification_payload
        self._root.verify_delegate(Timestamp.type, payload, md.signatures)
        timestamp = md.signed

        self._ledger.check("timestamp.json", timestamp.version, payload)
        snapshot_version = timestamp.snapshot_meta.version
        self._check_floor("snapshot.json", snapshot_version)
        self._policy.check(timestamp, Timestamp.type)

        self._ledger.record("timestamp.json", timestamp.version, payload)
        self._ledger.pin("snapshot.json", snapshot_version)
        self._timestamp = timestamp
        logger.debug("Updated timestamp v%d", timestamp.version)
        return timestamp

    def update_snapshot(self, data: bytes) -> Snapshot:
        """Verify and load ``data`` as the snapshot pinned by timestamp.

        Raises:
            RuntimeError: Called before timestamp, or twice.
            RepositoryError: Metadata failed to load or verify. The actual
                error type and content will contain more details.
        """
        if self._timestamp is None:
            raise RuntimeError("Cannot update snapshot before timestamp")
        if self._snapshot is not None:
            raise RuntimeError("Cannot update snapshot twice")

        snapshot_meta = self._timestamp.snapshot_meta
        _verify_pinned(snapshot_meta, data, Snapshot.type)

        md = load_document(data, Snapshot.type, Snapshot)
        payload = md.verification_payload
        self._root.verify_delegate(Snapshot.type, payload, md.signatures)
        snapshot = md.signed

        if snapshot.version != snapshot_meta.version:
            raise exceptions.BadVersionNumberError(
                f"Expected snapshot version {snapshot_meta.version}, "
                f"got {snapshot.version}",
                role=Snapshot.type,
            )
        self._ledger.check("snapshot.json", snapshot.version, payload)
        for filename, meta in snapshot.meta.items():
            self._check_floor(filename, meta.version)
        self._policy.check(snapshot, Snapshot.type)

        self._ledger.record("snapshot.json", snapshot.version, payload)
        for filename, meta in snapshot.meta.items():
            self._ledger.pin(filename, meta.version)
        self._snapshot = snapshot
        logger.debug("Updated snapshot v%d", snapshot.version)
        return snapshot

    def update_targets(self, data: bytes) -> Targets:
        """Verify and load ``data`` as the top-level targets.

        Raises:
            RuntimeError: Called before snapshot.
            RepositoryError: Metadata failed to load or verify. The actual
                error type and content will contain more details.
        """
        return self._update_targets_role(data, Targets.type, self._root)

    def update_delegated_targets(
        self, data: bytes, role_name: str, delegator_name: str
    ) -> Targets:
        """Verify and load ``data`` as the targets of ``role_name``,
        delegated by the already loaded ``delegator_name``.

        Raises:
            RuntimeError: Called before snapshot or before the delegator.
            RepositoryError: Metadata failed to load or verify. The actual
                error type and content will contain more details.
        """
        delegator = self._targets.get(delegator_name)
        if delegator is None:
            raise RuntimeError(f"Cannot load {role_name} before its delegator")

        return self._update_targets_role(data, role_name, delegator)

    def meta_for(self, role_name: str) -> MetaFile:
        """Return the snapshot entry pinning ``role_name``.

        Raises:
            RuntimeError: Snapshot is not loaded.
            RepositoryError: Snapshot does not list ``role_name``.
        """
        meta = self.snapshot.meta.get(f"{role_name}.json")
        if meta is None:
            raise exceptions.RepositoryError(
                f"Snapshot does not contain information for '{role_name}'",
                role=role_name,
            )
        return meta

    def _update_targets_role(
        self, data: bytes, role_name: str, delegator: Delegator
    ) -> Targets:
        if self._snapshot is None:
            raise RuntimeError("Cannot load targets before snapshot")
        if role_name in self._targets:
            raise RuntimeError(f"Cannot update {role_name} twice")

        logger.debug("Updating %s", role_name)
        meta = self.meta_for(role_name)
        _verify_pinned(meta, data, role_name)

        md = load_document(data, role_name, Targets)
        payload = md.verification_payload
        try:
            delegator.verify_delegate(role_name, payload, md.signatures)
        except ValueError as e:
            raise exceptions.RepositoryError(
                f"{role_name} is not delegated: {e}", role=role_name
            ) from e
        targets = md.signed

        if targets.version != meta.version:
            raise exceptions.BadVersionNumberError(
                f"Expected {role_name} v{meta.version}, got v{targets.version}",
                role=role_name,
            )
        filename = f"{role_name}.json"
        self._ledger.check(filename, targets.version, payload)
        self._policy.check(targets, role_name)

        self._ledger.record(filename, targets.version, payload)
        self._targets[role_name] = targets
        logger.debug("Updated %s v%d", role_name, targets.version)
        return targets

    def _check_floor(self, filename: str, version: int) -> None:
        floor = self._ledger.floor(filename)
        if floor is not None and version < floor:
            role_name = filename[: -len(".json")]
            raise exceptions.BadVersionNumberError(
                f"{role_name} version {version} is older than {floor}",
                role=role_name,
            )
