# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Trusted root history and root rotation.

Root versions are only ever appended: version N+1 is accepted when it is
signed by a threshold of the root keys of version N *and* by a threshold of
its own root keys. The history keeps every accepted version so the path
from the trust anchor to the current root stays inspectable.
"""

import contextlib
import logging
import os
import tempfile
from typing import Callable, Dict, Optional

from anchorage.api import exceptions
from anchorage.api.metadata import Metadata, Root
from anchorage.client._internal.metadata_chain import load_document

logger = logging.getLogger(__name__)

# Downloads the root metadata of the given version
RootDownloader = Callable[[int], bytes]


class RootTrustStore:
    """Accepted root metadata, keyed by version.

    Args:
        root_data: Trusted root metadata bytes. They are only checked against
            themselves: this is the trust anchor.
        datastore: Directory holding ``<version>.root.json`` files of roots
            accepted by earlier loads. Newly accepted roots are written there.

    Raises:
        RepositoryError: ``root_data`` is not valid root metadata.
    """

    def __init__(self, root_data: bytes, datastore: Optional[str] = None):
        md = load_document(root_data, Root.type, Root)
        md.signed.verify_delegate(
            Root.type, md.verification_payload, md.signatures
        )
        self._history: Dict[int, Metadata[Root]] = {md.signed.version: md}
        self._datastore = datastore
        logger.debug("Trust anchor is root v%d", md.signed.version)

        if datastore is not None:
            os.makedirs(datastore, exist_ok=True)
            self._resume_from_datastore()

    @property
    def root(self) -> Root:
        """Newest accepted root."""
        return self._history[max(self._history)].signed

    @property
    def history(self) -> Dict[int, Metadata[Root]]:
        """Copy of all accepted roots keyed by version."""
        return dict(self._history)

    def accept(self, data: bytes) -> Root:
        """Verify ``data`` as the next root version and append it.

        Raises:
            RepositoryError: Metadata failed to load or verify. The actual
                error type and content will contain more details.
        """
        current = self.root
        new_md = load_document(data, Root.type, Root)
        payload = new_md.verification_payload

        # Verify that new root is signed by the trusted root
        current.verify_delegate(Root.type, payload, new_md.signatures)

        expected = current.version + 1
        if new_md.signed.version != expected:
            raise exceptions.BadVersionNumberError(
                f"Expected root version {expected}"
                f" instead got version {new_md.signed.version}",
                role=Root.type,
            )

        # Verify that new root is signed by itself
        new_md.signed.verify_delegate(Root.type, payload, new_md.signatures)

        self._history[expected] = new_md
        logger.debug("Accepted root v%d", expected)
        return new_md.signed

    def rotate(self, download: RootDownloader, max_rotations: int) -> None:
        """Accept newer roots from ``download`` until none is left.

        A missing next version ends the rotation. When ``max_rotations``
        roots were accepted one more version is probed: if it exists the
        rotation fails instead of silently stopping at a stale root.

        Raises:
            MaxRootRotationsError: More than ``max_rotations`` newer roots.
            RepositoryError: A root failed to load or verify.
            DownloadError: A root could not be downloaded.
        """
        for _ in range(max_rotations):
            try:
                data = download(self.root.version + 1)
            except exceptions.DownloadNotFoundError:
                logger.debug("Root v%d is the newest", self.root.version)
                return

            self.accept(data)
            self._persist(self.root.version, data)

        try:
            download(self.root.version + 1)
        except exceptions.DownloadNotFoundError:
            return

        raise exceptions.MaxRootRotationsError(
            f"Root v{self.root.version + 1} exists but at most "
            f"{max_rotations} root rotations are allowed",
            role=Root.type,
        )

    def _root_path(self, version: int) -> str:
        assert self._datastore is not None
        return os.path.join(self._datastore, f"{version}.root.json")

    def _resume_from_datastore(self) -> None:
        """Accept roots persisted by earlier loads.

        The first missing or invalid file ends the resume: rotation over the
        network then starts from there.
        """
        while True:
            path = self._root_path(self.root.version + 1)
            try:
                with open(path, "rb") as f:
                    data = f.read()
            except FileNotFoundError:
                return
            except OSError as e:
                logger.warning("Failed to read cached root %s: %s", path, e)
                return

            try:
                self.accept(data)
            except exceptions.RepositoryError as e:
                logger.warning("Ignoring invalid cached root %s: %s", path, e)
                return

    def _persist(self, version: int, data: bytes) -> None:
        """Write root metadata to the datastore atomically."""
        if self._datastore is None:
            return

        temp_file_name: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=self._datastore, delete=False
            ) as temp_file:
                temp_file_name = temp_file.name
                temp_file.write(data)
            os.replace(temp_file.name, self._root_path(version))
        except OSError as e:
            # remove tempfile if we managed to create one,
            # then let the exception happen
            if temp_file_name is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.remove(temp_file_name)
            raise e
