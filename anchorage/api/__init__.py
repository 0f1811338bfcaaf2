# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Public API for ``anchorage.api``."""

from anchorage.api.metadata import (
    SPECIFICATION_VERSION,
    TOP_LEVEL_ROLE_NAMES,
    DelegatedRole,
    Delegations,
    Key,
    Metadata,
    MetaFile,
    Role,
    Root,
    Signed,
    Snapshot,
    TargetFile,
    Targets,
    Timestamp,
    VerificationResult,
)

__all__ = [
    "SPECIFICATION_VERSION",
    "TOP_LEVEL_ROLE_NAMES",
    DelegatedRole.__name__,
    Delegations.__name__,
    Key.__name__,
    Metadata.__name__,
    MetaFile.__name__,
    Role.__name__,
    Root.__name__,
    Signed.__name__,
    Snapshot.__name__,
    TargetFile.__name__,
    Targets.__name__,
    Timestamp.__name__,
    VerificationResult.__name__,
]
