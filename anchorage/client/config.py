# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Configuration options for ``Repository.load()``."""

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Optional


@unique
class ExpirationMode(Enum):
    """How expired metadata is treated during a load.

    Args:
        ENFORCING: Expired metadata fails the load.
        PERMISSIVE: Expired metadata is accepted with a warning. Only useful
            for inspecting old repositories: never use it to decide what to
            install.
    """

    ENFORCING = "enforcing"
    PERMISSIVE = "permissive"


@dataclass
class Limits:
    """Bounds on the work and memory an untrusted repository can cause.

    Args:
        max_root_rotations: Maximum number of root versions to rotate through
            in one load.
        max_delegation_depth: Maximum depth of the delegation tree searched
            for a target, top-level targets being depth 0.
        root_max_length: Maximum length of a root metadata file.
        timestamp_max_length: Maximum length of a timestamp metadata file.
        snapshot_max_length: Maximum length of a snapshot metadata file, used
            when timestamp does not pin the length.
        targets_max_length: Maximum length of a targets metadata file, used
            when snapshot does not pin the length.
    """

    max_root_rotations: int = 256
    max_delegation_depth: int = 32
    root_max_length: int = 512000  # bytes
    timestamp_max_length: int = 16384  # bytes
    snapshot_max_length: int = 2000000  # bytes
    targets_max_length: int = 5000000  # bytes


@dataclass
class RetrySettings:
    """Timeouts and retry policy of the HTTP transport.

    The wait before the first retry is ``initial_backoff``. From the second
    retry on, each wait is the previous one times ``backoff_factor``, capped
    at ``max_backoff``.

    Args:
        timeout: Read timeout in seconds.
        connect_timeout: Connection timeout in seconds.
        tries: Total number of attempts for one request, including the first.
        initial_backoff: Wait before the first retry, in seconds.
        max_backoff: Upper bound for any wait, in seconds.
        backoff_factor: Multiplier applied to the wait between retries.
    """

    timeout: float = 30.0
    connect_timeout: float = 10.0
    tries: int = 4
    initial_backoff: float = 0.1
    max_backoff: float = 1.0
    backoff_factor: float = 1.5


@dataclass
class LoadSettings:
    """Everything ``Repository.load()`` needs besides a transport.

    Args:
        root: Bytes of a trusted root metadata file, the trust anchor.
        metadata_base_url: Base URL of the metadata files.
        targets_base_url: Base URL of the target files. Target reads are
            not possible without it.
        datastore: Directory where accepted root versions are persisted as
            ``<version>.root.json``, or None to keep them in memory only.
        limits: Size and recursion limits.
        expiration_mode: Whether expired metadata fails the load.
        prefix_targets_with_hash: When the repository uses consistent
            snapshots, target file names are prefixed with a hash of their
            content by default. Set to ``False`` to fetch unprefixed names.
    """

    root: bytes
    metadata_base_url: str
    targets_base_url: Optional[str] = None
    datastore: Optional[str] = None
    limits: Limits = field(default_factory=Limits)
    expiration_mode: ExpirationMode = ExpirationMode.ENFORCING
    prefix_targets_with_hash: bool = True
