# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Target content stream bound to the length and hashes in targets
metadata.
"""

import hashlib
import io
import logging
from typing import IO, Any, Dict

from anchorage.api import exceptions
from anchorage.api.metadata import TargetFile

logger = logging.getLogger(__name__)


class VerifiedStream(io.RawIOBase):
    """Reads a target from ``source`` and fails unless the content matches
    ``target``.

    Reading more than ``target.length`` bytes fails immediately. When the
    source ends, the length and every listed hash are checked before the
    end of stream is reported to the reader, so a reader that got EOF
    without an error has read exactly the trusted content.

    Raises (from read methods):
        LengthOrHashMismatchError: Content does not match ``target``.
    """

    def __init__(self, source: IO[bytes], target: TargetFile):
        super().__init__()
        self._source = source
        self._target = target
        self._received = 0
        self._digests: Dict[str, Any] = {}
        for algo in target.hashes:
            try:
                self._digests[algo] = hashlib.new(algo)
            except ValueError as e:
                source.close()
                raise exceptions.LengthOrHashMismatchError(
                    f"Unsupported algorithm '{algo}'"
                ) from e
        self._verified = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:  # noqa: ANN401
        if self._verified:
            return 0

        # ask for one byte more than allowed to notice overlong content
        remaining = self._target.length - self._received
        data = self._source.read(min(len(buffer), remaining + 1))
        if not data:
            self._verify()
            return 0

        self._received += len(data)
        if self._received > self._target.length:
            raise exceptions.LengthOrHashMismatchError(
                f"{self._target.path} is longer than {self._target.length} "
                "bytes"
            )

        for digest_object in self._digests.values():
            digest_object.update(data)
        size = len(data)
        buffer[:size] = data
        return size

    def _verify(self) -> None:
        if self._received != self._target.length:
            raise exceptions.LengthOrHashMismatchError(
                f"Observed length {self._received} of {self._target.path} "
                f"does not match expected length {self._target.length}"
            )

        for algo, digest_object in self._digests.items():
            observed = digest_object.hexdigest()
            if observed != self._target.hashes[algo]:
                raise exceptions.LengthOrHashMismatchError(
                    f"Observed {algo} hash {observed} of {self._target.path} "
                    f"does not match expected {self._target.hashes[algo]}"
                )

        logger.debug("Verified %s", self._target.path)
        self._verified = True

    def close(self) -> None:
        if not self.closed:
            self._source.close()
        super().close()
