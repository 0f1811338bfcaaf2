# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Client API to load a repository and read verified targets.

``Repository.load()`` establishes trust in a repository and returns a
read-only ``Repository``: it rotates the trusted root to the newest
version, then loads timestamp, snapshot and top-level targets metadata,
verifying each against the one above it. Any failure fails the whole load.

A loaded ``Repository`` answers target lookups. Delegated targets metadata
is loaded on demand while searching for a target and is cached for the
lifetime of the ``Repository``. Lookups and target reads may run from
several threads.

Below is a simple example of using the Repository to read a target::

    with open("trusted_root.json", "rb") as f:
        settings = LoadSettings(
            root=f.read(),
            metadata_base_url="https://example.com/metadata/",
            targets_base_url="https://example.com/targets/",
            datastore="~/.local/share/myapp/roots",
        )

    repository = Repository.load(RequestsTransport(), settings)
    stream = repository.read_target("file.txt")
    if stream is None:
        raise RuntimeError("file.txt is not a trusted target")
    with stream:
        content = stream.read()
"""

import io
import logging
import threading
from typing import IO, Dict, Iterator, Optional, Tuple
from urllib import parse

from anchorage.api.metadata import (
    Metadata,
    Root,
    Snapshot,
    TargetFile,
    Targets,
    Timestamp,
)
from anchorage.client._internal.delegation import DelegationResolver
from anchorage.client._internal.expiration import ExpirationPolicy
from anchorage.client._internal.metadata_chain import MetadataChain
from anchorage.client._internal.trust_store import RootTrustStore
from anchorage.client._internal.verified_stream import VerifiedStream
from anchorage.client.config import LoadSettings
from anchorage.client.ledger import VersionLedger
from anchorage.client.transport import TransportInterface

logger = logging.getLogger(__name__)


class Repository:
    """A verified view of a remote repository.

    Instances are created with ``Repository.load()``.
    """

    def __init__(
        self,
        transport: TransportInterface,
        settings: LoadSettings,
        trust_store: RootTrustStore,
        chain: MetadataChain,
    ):
        self._transport = transport
        self._settings = settings
        self._trust_store = trust_store
        self._chain = chain
        self._metadata_base_url = _ensure_trailing_slash(
            settings.metadata_base_url
        )
        self._targets_base_url: Optional[str] = None
        if settings.targets_base_url is not None:
            self._targets_base_url = _ensure_trailing_slash(
                settings.targets_base_url
            )
        # serializes lazy loading of delegated targets metadata
        self._lock = threading.RLock()
        self._resolver = DelegationResolver(
            chain.targets,
            self._load_delegated_targets,
            settings.limits.max_delegation_depth,
        )

    @classmethod
    def load(
        cls,
        transport: TransportInterface,
        settings: LoadSettings,
        ledger: Optional[VersionLedger] = None,
    ) -> "Repository":
        """Load and verify the repository described by ``settings``.

        Args:
            transport: Transport used for all downloads.
            settings: Trust anchor, locations, limits and expiration mode.
            ledger: Versions accepted by earlier loads in this session.
                Passing the same ledger to consecutive loads protects
                against rollback between them.

        Raises:
            RepositoryError: Metadata failed to load or verify. The actual
                error type and content will contain more details.
            DownloadError: Download of a metadata file failed in some way.
        """
        if ledger is None:
            ledger = VersionLedger()
        limits = settings.limits
        base_url = _ensure_trailing_slash(settings.metadata_base_url)

        def download_root(version: int) -> bytes:
            return _download_metadata(
                transport, base_url, Root.type, limits.root_max_length, version
            )

        trust_store = RootTrustStore(settings.root, settings.datastore)
        trust_store.rotate(download_root, limits.max_root_rotations)
        root = trust_store.root

        policy = ExpirationPolicy(settings.expiration_mode)
        chain = MetadataChain(root, policy, ledger)

        data = _download_metadata(
            transport, base_url, Timestamp.type, limits.timestamp_max_length
        )
        chain.update_timestamp(data)

        snapshot_meta = chain.timestamp.snapshot_meta
        version = snapshot_meta.version if root.consistent_snapshot else None
        data = _download_metadata(
            transport,
            base_url,
            Snapshot.type,
            snapshot_meta.length or limits.snapshot_max_length,
            version,
        )
        chain.update_snapshot(data)

        targets_meta = chain.meta_for(Targets.type)
        version = targets_meta.version if root.consistent_snapshot else None
        data = _download_metadata(
            transport,
            base_url,
            Targets.type,
            targets_meta.length or limits.targets_max_length,
            version,
        )
        chain.update_targets(data)

        logger.info(
            "Loaded root v%d, timestamp v%d, snapshot v%d, targets v%d",
            root.version,
            chain.timestamp.version,
            chain.snapshot.version,
            chain.targets.version,
        )
        return cls(transport, settings, trust_store, chain)

    @property
    def root(self) -> Root:
        """Newest trusted root."""
        return self._chain.root

    @property
    def root_history(self) -> Dict[int, Metadata[Root]]:
        """Every root accepted during the load, keyed by version."""
        return self._trust_store.history

    @property
    def timestamp(self) -> Timestamp:
        return self._chain.timestamp

    @property
    def snapshot(self) -> Snapshot:
        return self._chain.snapshot

    @property
    def targets(self) -> Targets:
        """Top-level targets."""
        return self._chain.targets

    def all_targets(self) -> Iterator[Tuple[str, TargetFile]]:
        """Iterate over the targets listed directly by top-level targets.

        Delegated targets are only found through ``get_targetinfo()``.
        """
        yield from self._chain.targets.targets.items()

    def get_targetinfo(self, target_path: str) -> Optional[TargetFile]:
        """Return the trusted ``TargetFile`` for ``target_path``, or None if
        no trusted role lists it.

        Delegated targets metadata needed for the search is downloaded and
        verified here.

        Raises:
            MaxDelegationDepthError: Delegations nest deeper than allowed.
            DownloadError: Delegated metadata download failed for another
                reason than absence.
        """
        return self._resolver.find(target_path)

    def read_target(self, target_path: str) -> Optional[IO[bytes]]:
        """Open the content of ``target_path`` for reading, or return None
        if no trusted role lists it.

        The returned stream fails with ``LengthOrHashMismatchError`` as soon
        as the content read deviates from the trusted length and hashes.

        Raises:
            ValueError: Settings have no targets base URL.
            DownloadError: The target could not be downloaded.
        """
        target = self.get_targetinfo(target_path)
        if target is None:
            return None

        return self.open_target(target)

    def open_target(self, target: TargetFile) -> IO[bytes]:
        """Open the content of a ``TargetFile`` returned by
        ``get_targetinfo()``.

        Raises:
            ValueError: Settings have no targets base URL.
            DownloadError: The target could not be downloaded.
        """
        if self._targets_base_url is None:
            raise ValueError("targets_base_url must be set to read targets")

        target_path = target.path
        if (
            self._chain.root.consistent_snapshot
            and self._settings.prefix_targets_with_hash
        ):
            target_path = target.get_prefixed_paths()[0]

        url = f"{self._targets_base_url}{target_path}"
        logger.debug("Reading target %s from %s", target.path, url)
        return io.BufferedReader(
            VerifiedStream(self._transport.fetch(url), target)
        )

    def _load_delegated_targets(
        self, role_name: str, delegator_name: str
    ) -> Targets:
        """Return verified targets of delegated ``role_name``, downloading
        them on first use.
        """
        with self._lock:
            if role_name in self._chain:
                return self._chain.get_targets(role_name)

            meta = self._chain.meta_for(role_name)
            version = None
            if self._chain.root.consistent_snapshot:
                version = meta.version

            data = _download_metadata(
                self._transport,
                self._metadata_base_url,
                role_name,
                meta.length or self._settings.limits.targets_max_length,
                version,
            )
            return self._chain.update_delegated_targets(
                data, role_name, delegator_name
            )


def _download_metadata(
    transport: TransportInterface,
    base_url: str,
    role_name: str,
    length: int,
    version: Optional[int] = None,
) -> bytes:
    """Download a metadata file and return its bytes."""
    encoded_name = parse.quote(role_name, "")
    if version is None:
        url = f"{base_url}{encoded_name}.json"
    else:
        url = f"{base_url}{version}.{encoded_name}.json"
    return transport.download_bytes(url, length)


def _ensure_trailing_slash(url: str) -> str:
    """Return url guaranteed to end in a slash."""
    return url if url.endswith("/") else f"{url}/"
