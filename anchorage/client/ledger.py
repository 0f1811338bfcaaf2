# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Session wide record of accepted metadata versions.

A ``VersionLedger`` can be shared by consecutive ``Repository.load()`` calls
to detect rollback and equivocation between loads: a document may never be
older than one accepted before, and the same version may never come back
with different content.

Timestamp and snapshot versions are only binding while the keys that
signed them are trusted. When a new root changes the timestamp or snapshot
keys, the ledger forgets the timestamp and snapshot versions and every
version they pinned, so a repository can recover from a fast-forward attack
by rotating those keys.
"""

import hashlib
import logging
import threading
from typing import Dict, Optional, Tuple

from anchorage.api import exceptions
from anchorage.api.metadata import Root, Snapshot, Timestamp

logger = logging.getLogger(__name__)

# (sorted keyids, threshold) of the timestamp and snapshot roles
_SigningKeys = Tuple[Tuple[Tuple[str, ...], int], ...]


class VersionLedger:
    """Highest accepted version and content digests per metadata filename.

    Filenames are the snapshot-style names: ``timestamp.json``,
    ``snapshot.json``, ``targets.json`` and ``<role>.json``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # filename -> version -> sha256 of canonical signed bytes
        self._digests: Dict[str, Dict[int, str]] = {}
        # filename -> highest version pinned by timestamp or snapshot
        self._pins: Dict[str, int] = {}
        self._signing_keys: Optional[_SigningKeys] = None

    def floor(self, filename: str) -> Optional[int]:
        """Return the lowest version of ``filename`` that is still
        acceptable, or None if nothing is known about it.
        """
        with self._lock:
            return self._floor(filename)

    def trust_root(self, root: Root) -> None:
        """Start trusting ``root``.

        If the timestamp or snapshot role of ``root`` differs from the one
        of the root trusted before, versions of timestamp and snapshot and
        the versions they pinned are forgotten.
        """
        roles = [root.roles[Timestamp.type], root.roles[Snapshot.type]]
        keys = tuple((tuple(sorted(r.keyids)), r.threshold) for r in roles)
        with self._lock:
            if self._signing_keys is not None and keys != self._signing_keys:
                logger.info(
                    "Timestamp or snapshot keys changed in root v%d, "
                    "forgetting their versions",
                    root.version,
                )
                self._digests.pop("timestamp.json", None)
                self._digests.pop("snapshot.json", None)
                self._pins.clear()
            self._signing_keys = keys

    def check(self, filename: str, version: int, payload: bytes) -> None:
        """Check that ``version`` of ``filename`` with canonical ``payload``
        is consistent with everything accepted before.

        Raises:
            BadVersionNumberError: ``version`` is lower than a version that
                was accepted or pinned earlier.
            InconsistentVersionError: ``version`` was accepted earlier with
                different content.
        """
        role = filename[: -len(".json")]
        digest = hashlib.sha256(payload).hexdigest()
        with self._lock:
            floor = self._floor(filename)
            if floor is not None and version < floor:
                raise exceptions.BadVersionNumberError(
                    f"New {role} version {version} must be >= {floor}",
                    role=role,
                )

            seen = self._digests.get(filename, {}).get(version)
            if seen is not None and seen != digest:
                raise exceptions.InconsistentVersionError(
                    f"{role} version {version} changed content",
                    role=role,
                )

    def record(self, filename: str, version: int, payload: bytes) -> None:
        """Record an accepted ``version`` of ``filename``."""
        digest = hashlib.sha256(payload).hexdigest()
        with self._lock:
            self._digests.setdefault(filename, {})[version] = digest
        logger.debug("Recorded %s v%d", filename, version)

    def pin(self, filename: str, version: int) -> None:
        """Raise the floor of ``filename`` to a version that a trusted
        document pinned, without knowing its content.
        """
        with self._lock:
            if version > self._pins.get(filename, 0):
                self._pins[filename] = version

    def _floor(self, filename: str) -> Optional[int]:
        versions = list(self._digests.get(filename, {}))
        if filename in self._pins:
            versions.append(self._pins[filename])
        return max(versions, default=None)
