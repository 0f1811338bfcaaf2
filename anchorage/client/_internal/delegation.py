# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Target search over the delegation tree."""

import logging
from typing import Callable, List, Optional, Set, Tuple

from anchorage.api import exceptions
from anchorage.api.metadata import TargetFile, Targets

logger = logging.getLogger(__name__)

# Loads and verifies the targets of a role, given the role name and the name
# of the role delegating to it
RoleLoader = Callable[[str, str], Targets]


class DelegationResolver:
    """Finds the authoritative ``TargetFile`` for a target path.

    The search is a preorder depth-first walk starting at the top-level
    targets: a role's own entry wins over its delegations, and delegations
    are tried in the order the delegating role lists them. A matching
    terminating delegation ends the search once its subtree is exhausted.

    Args:
        top_level: Verified top-level targets.
        load_role: Loader for delegated targets metadata.
        max_depth: Deepest delegation level that may be searched, the
            top-level targets being level 0.
    """

    def __init__(
        self, top_level: Targets, load_role: RoleLoader, max_depth: int
    ):
        self._top_level = top_level
        self._load_role = load_role
        self._max_depth = max_depth

    def find(self, target_path: str) -> Optional[TargetFile]:
        """Return the target info for ``target_path``, or None if no trusted
        role provides it.

        A delegated role whose metadata is missing, longer than allowed or
        fails verification ends the search without a result: later
        delegations are not consulted in its place.

        Raises:
            MaxDelegationDepthError: The search needs to go deeper than
                ``max_depth``.
            DownloadError: Delegated metadata could not be downloaded for
                another reason than absence or excess length.
        """
        # (role name, delegating role name, depth)
        to_visit: List[Tuple[str, str, int]] = [(Targets.type, "", 0)]
        visited: Set[str] = set()

        while to_visit:
            role_name, delegator_name, depth = to_visit.pop()

            # Skip any visited current role to prevent cycles.
            if role_name in visited:
                logger.debug("Skipping visited role %s", role_name)
                continue
            visited.add(role_name)

            if depth == 0:
                targets = self._top_level
            else:
                try:
                    targets = self._load_role(role_name, delegator_name)
                except (
                    exceptions.DownloadNotFoundError,
                    exceptions.DownloadLengthMismatchError,
                    exceptions.RepositoryError,
                ) as e:
                    logger.warning(
                        "Delegated role %s is unusable, %s not found: %s",
                        role_name,
                        target_path,
                        e,
                    )
                    return None

            target = targets.targets.get(target_path)
            if target is not None:
                logger.debug("Found %s in role %s", target_path, role_name)
                return target

            if targets.delegations is None:
                continue

            children = []
            for child_name, terminating in (
                targets.delegations.get_roles_for_target(target_path)
            ):
                children.append(child_name)
                if terminating:
                    logger.debug("%s is terminating", child_name)
                    to_visit = []
                    break

            if children and depth + 1 > self._max_depth:
                raise exceptions.MaxDelegationDepthError(
                    f"Delegations of {role_name} exceed the maximum depth "
                    f"{self._max_depth}",
                    role=role_name,
                )

            # Children are popped from the end: push them in reverse order.
            for child_name in reversed(children):
                to_visit.append((child_name, role_name, depth + 1))

        logger.debug("%s not found", target_path)
        return None
