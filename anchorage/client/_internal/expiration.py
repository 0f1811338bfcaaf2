# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Expiration gate applied to every verified metadata document."""

import logging
from datetime import datetime, timezone
from typing import Optional

from anchorage.api import exceptions
from anchorage.api.metadata import Signed
from anchorage.client.config import ExpirationMode

logger = logging.getLogger(__name__)


class ExpirationPolicy:
    """Checks expiry of documents against one reference time.

    The reference time is fixed when the policy is created, so every
    document of one load is judged against the same instant.

    Args:
        mode: ``ENFORCING`` raises on expired documents, ``PERMISSIVE`` only
            logs them.
        reference_time: Time to compare against. Default is now.
    """

    def __init__(
        self,
        mode: ExpirationMode,
        reference_time: Optional[datetime] = None,
    ):
        self.mode = mode
        self.reference_time = reference_time or datetime.now(timezone.utc)

    def check(self, signed: Signed, role: str) -> None:
        """Check that ``signed`` (the payload of ``role``) has not expired.

        Raises:
            ExpiredMetadataError: The document expired and the mode is
                ``ENFORCING``.
        """
        if not signed.is_expired(self.reference_time):
            return

        if self.mode is ExpirationMode.PERMISSIVE:
            logger.warning(
                "Accepting expired %s v%d (expired %s)",
                role,
                signed.version,
                signed.expires,
            )
            return

        raise exceptions.ExpiredMetadataError(
            f"{role} v{signed.version} expired at {signed.expires}",
            role=role,
        )
