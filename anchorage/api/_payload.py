# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0


"""Payload classes of the signed metadata documents."""

import abc
import fnmatch
import hashlib
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    IO,
    Any,
    ClassVar,
    Dict,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from securesystemslib.signer import Key, Signature

from anchorage.api.exceptions import (
    LengthOrHashMismatchError,
    UnsignedMetadataError,
)
from anchorage.api.signature import compute_keyid, verify_signature

_ROOT = "root"
_SNAPSHOT = "snapshot"
_TARGETS = "targets"
_TIMESTAMP = "timestamp"

# Input metadata must have the same major version (the first number) as ours.
SPECIFICATION_VERSION = ["1", "0", "31"]
TOP_LEVEL_ROLE_NAMES = {_ROOT, _TIMESTAMP, _SNAPSHOT, _TARGETS}

EXPIRES_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_HASH_ALGORITHM = "sha256"
_CHUNK_SIZE = 64 * 1024

logger = logging.getLogger(__name__)

# T is a Generic type constraint for container payloads
T = TypeVar("T", "Root", "Timestamp", "Snapshot", "Targets")


def _keys_from_dict(keys_dict: Dict[str, Any]) -> Dict[str, Key]:
    """Parse a keyid to key mapping and check every keyid against the
    identifier computed from the key content.

    Raises:
        ValueError: a keyid does not match its key.
    """
    keys = {}
    for keyid, key_dict in keys_dict.items():
        key = Key.from_dict(keyid, key_dict)
        computed = compute_keyid(key)
        if keyid != computed:
            raise ValueError(f"Key id {keyid} does not match key ({computed})")
        keys[keyid] = key

    return keys


class Signed(metaclass=abc.ABCMeta):
    """A base class for the signed part of metadata.

    *All parameters named below are not just constructor arguments but also
    instance attributes.*

    Args:
        version: Metadata version number. If None, then 1 is assigned.
        spec_version: Supported specification version. If None, then the
            version currently supported by the library is assigned.
        expires: Metadata expiry date in UTC timezone. If None, then current
            date and time is assigned.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage. They are part of the signed content.

    Raises:
        ValueError: Invalid arguments.
    """

    type: ClassVar[str] = "signed"

    @property
    def _type(self) -> str:
        return self.type

    @property
    def expires(self) -> datetime:
        """Get the metadata expiry date."""
        return self._expires

    @expires.setter
    def expires(self, value: datetime) -> None:
        self._expires = value.replace(microsecond=0)
        if self._expires.tzinfo is None:
            self._expires = self._expires.replace(tzinfo=timezone.utc)
        elif self._expires.utcoffset() != timezone.utc.utcoffset(None):
            raise ValueError(f"Expected tz UTC, not {self._expires.tzinfo}")

    def __init__(
        self,
        version: Optional[int],
        spec_version: Optional[str],
        expires: Optional[datetime],
        unrecognized_fields: Optional[Dict[str, Any]],
    ):
        if spec_version is None:
            spec_version = ".".join(SPECIFICATION_VERSION)
        spec_list = spec_version.split(".")
        if len(spec_list) not in [2, 3] or not all(
            el.isdigit() for el in spec_list
        ):
            raise ValueError(f"Failed to parse spec_version {spec_version}")
        if spec_list[0] != SPECIFICATION_VERSION[0]:
            raise ValueError(f"Unsupported spec_version {spec_version}")
        self.spec_version = spec_version

        self.expires = expires or datetime.now(timezone.utc)

        if version is None:
            version = 1
        elif isinstance(version, bool) or not isinstance(version, int):
            raise ValueError(f"version must be an integer, got {version!r}")
        elif version <= 0:
            raise ValueError(f"version must be > 0, got {version}")
        self.version = version

        self.unrecognized_fields = unrecognized_fields or {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signed):
            return False

        return (
            self.type == other.type
            and self.version == other.version
            and self.spec_version == other.spec_version
            and self.expires == other.expires
            and self.unrecognized_fields == other.unrecognized_fields
        )

    @abc.abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Serialize and return a dict representation of self."""
        raise NotImplementedError

    @classmethod
    @abc.abstractmethod
    def from_dict(cls, signed_dict: Dict[str, Any]) -> "Signed":
        """Deserialization helper, creates object from json/dict
        representation.
        """
        raise NotImplementedError

    @classmethod
    def _common_fields_from_dict(
        cls, signed_dict: Dict[str, Any]
    ) -> Tuple[int, str, datetime]:
        """Pop the fields shared by all payloads from ``signed_dict``.

        The result is meant as the leading positional arguments of a subclass
        constructor.
        """
        _type = signed_dict.pop("_type")
        if _type != cls.type:
            raise ValueError(f"Expected type {cls.type}, got {_type}")

        version = signed_dict.pop("version")
        spec_version = signed_dict.pop("spec_version")
        expires = datetime.strptime(
            signed_dict.pop("expires"), EXPIRES_FORMAT
        ).replace(tzinfo=timezone.utc)

        return version, spec_version, expires

    def _common_fields_to_dict(self) -> Dict[str, Any]:
        return {
            "_type": self._type,
            "version": self.version,
            "spec_version": self.spec_version,
            "expires": self.expires.strftime(EXPIRES_FORMAT),
            **self.unrecognized_fields,
        }

    def is_expired(self, reference_time: Optional[datetime] = None) -> bool:
        """Check metadata expiration against a reference time.

        Args:
            reference_time: Time to check expiration date against. Default is
                current UTC date and time.

        Returns:
            ``True`` if expiration time is less than the reference time.
        """
        if reference_time is None:
            reference_time = datetime.now(timezone.utc)

        return reference_time >= self.expires


class Role:
    """Keys and threshold required to sign the metadata of one role.

    Args:
        keyids: Roles signing key identifiers.
        threshold: Number of keys required to sign this role's metadata.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage.

    Raises:
        ValueError: Invalid arguments.
    """

    def __init__(
        self,
        keyids: List[str],
        threshold: int,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        if len(set(keyids)) != len(keyids):
            raise ValueError(f"Nonunique keyids: {keyids}")
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise ValueError(f"threshold must be an integer, got {threshold!r}")
        if threshold < 1:
            raise ValueError("threshold should be at least 1!")
        self.keyids = keyids
        self.threshold = threshold
        self.unrecognized_fields = unrecognized_fields or {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return False

        return (
            self.keyids == other.keyids
            and self.threshold == other.threshold
            and self.unrecognized_fields == other.unrecognized_fields
        )

    @classmethod
    def from_dict(cls, role_dict: Dict[str, Any]) -> "Role":
        """Create ``Role`` object from its json/dict representation.

        Raises:
            ValueError, KeyError: Invalid arguments.
        """
        keyids = role_dict.pop("keyids")
        threshold = role_dict.pop("threshold")
        return cls(keyids, threshold, role_dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyids": self.keyids,
            "threshold": self.threshold,
            **self.unrecognized_fields,
        }


@dataclass
class VerificationResult:
    """Signature threshold verification result for one role.

    Attributes:
        threshold: Number of required signatures.
        signed: dict of keyid to Key, containing keys that have signed.
        unsigned: dict of keyid to Key, containing keys that have not signed.
    """

    threshold: int
    signed: Dict[str, Key]
    unsigned: Dict[str, Key]

    def __bool__(self) -> bool:
        return self.verified

    @property
    def verified(self) -> bool:
        """True if threshold of signatures is met."""
        return len(self.signed) >= self.threshold

    @property
    def missing(self) -> int:
        """Number of additional signatures required to reach threshold."""
        return max(0, self.threshold - len(self.signed))


class _DelegatorMixin(metaclass=abc.ABCMeta):
    """Threshold verification shared by Root and Targets."""

    @abc.abstractmethod
    def get_delegated_role(self, delegated_role: str) -> Role:
        """Return the role object for the given delegated role.

        Raises ValueError if delegated_role is not actually delegated.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def get_key(self, keyid: str) -> Key:
        """Return the key object for the given keyid.

        Raises ValueError if key is not found.
        """
        raise NotImplementedError

    def get_verification_result(
        self,
        delegated_role: str,
        payload: bytes,
        signatures: Dict[str, Signature],
    ) -> VerificationResult:
        """Count the authorized keys of ``delegated_role`` that have a valid
        signature over ``payload``.

        Each key is counted at most once. Keys listed by the role but missing
        from the key map are ignored. This method does not raise when the
        threshold is not met.

        Raises:
            ValueError: no delegation was found for ``delegated_role``.
        """
        role = self.get_delegated_role(delegated_role)

        signed = {}
        unsigned = {}

        for keyid in role.keyids:
            try:
                key = self.get_key(keyid)
            except ValueError:
                logger.info("No key for keyid %s", keyid)
                continue

            sig = signatures.get(keyid)
            if sig is not None and verify_signature(payload, sig, key):
                signed[keyid] = key
            else:
                unsigned[keyid] = key
                logger.info(
                    "No valid signature from %s for %s", keyid, delegated_role
                )

        return VerificationResult(role.threshold, signed, unsigned)

    def verify_delegate(
        self,
        delegated_role: str,
        payload: bytes,
        signatures: Dict[str, Signature],
    ) -> None:
        """Verify that ``signatures`` over ``payload`` meet the threshold of
        ``delegated_role`` as defined by the delegator (``self``).

        Raises:
            UnsignedMetadataError: Threshold not met.
            ValueError: no delegation was found for ``delegated_role``.
        """
        result = self.get_verification_result(
            delegated_role, payload, signatures
        )
        if not result:
            raise UnsignedMetadataError(
                f"{delegated_role} was signed by {len(result.signed)}/"
                f"{result.threshold} keys",
                role=delegated_role,
            )


class Root(Signed, _DelegatorMixin):
    """A container for the signed part of root metadata.

    Args:
        version: Metadata version number. Default is 1.
        spec_version: Supported specification version.
        expires: Metadata expiry date. Default is current date and time.
        keys: Dictionary of keyids to Keys.
        roles: Dictionary of the four top-level role names to Roles. Default
            is roles without keys and a threshold of 1.
        consistent_snapshot: ``True`` if the repository serves versioned
            metadata and hash-prefixed target files.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage.

    Raises:
        ValueError: Invalid arguments.
    """

    type = _ROOT

    def __init__(
        self,
        version: Optional[int] = None,
        spec_version: Optional[str] = None,
        expires: Optional[datetime] = None,
        keys: Optional[Dict[str, Key]] = None,
        roles: Optional[Dict[str, Role]] = None,
        consistent_snapshot: Optional[bool] = True,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(version, spec_version, expires, unrecognized_fields)
        self.consistent_snapshot = consistent_snapshot
        self.keys = keys if keys is not None else {}

        if roles is None:
            roles = {r: Role([], 1) for r in TOP_LEVEL_ROLE_NAMES}
        elif set(roles) != TOP_LEVEL_ROLE_NAMES:
            raise ValueError("Role names must be the top-level metadata roles")
        self.roles = roles

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Root):
            return False

        return (
            super().__eq__(other)
            and self.keys == other.keys
            and self.roles == other.roles
            and self.consistent_snapshot == other.consistent_snapshot
        )

    @classmethod
    def from_dict(cls, signed_dict: Dict[str, Any]) -> "Root":
        """Create ``Root`` object from its json/dict representation.

        Raises:
            ValueError, KeyError, TypeError: Invalid arguments.
        """
        common_args = cls._common_fields_from_dict(signed_dict)
        consistent_snapshot = signed_dict.pop("consistent_snapshot", None)
        keys = _keys_from_dict(signed_dict.pop("keys"))
        roles = {
            name: Role.from_dict(role_dict)
            for name, role_dict in signed_dict.pop("roles").items()
        }

        return cls(*common_args, keys, roles, consistent_snapshot, signed_dict)

    def to_dict(self) -> Dict[str, Any]:
        root_dict = self._common_fields_to_dict()
        if self.consistent_snapshot is not None:
            root_dict["consistent_snapshot"] = self.consistent_snapshot
        root_dict["keys"] = {
            keyid: key.to_dict() for keyid, key in self.keys.items()
        }
        root_dict["roles"] = {
            name: role.to_dict() for name, role in self.roles.items()
        }
        return root_dict

    def get_delegated_role(self, delegated_role: str) -> Role:
        if delegated_role not in self.roles:
            raise ValueError(f"Delegated role {delegated_role} not found")

        return self.roles[delegated_role]

    def get_key(self, keyid: str) -> Key:
        if keyid not in self.keys:
            raise ValueError(f"Key {keyid} not found")

        return self.keys[keyid]


class BaseFile:
    """Length and hash handling shared by ``MetaFile`` and ``TargetFile``."""

    @staticmethod
    def _digest(data: Union[bytes, IO[bytes]], algorithm: str) -> str:
        """Return the hex digest of ``data``.

        Raises:
            ValueError: ``algorithm`` is not supported.
        """
        digest_object = hashlib.new(algorithm)
        if isinstance(data, bytes):
            digest_object.update(data)
        else:
            data.seek(0)
            for chunk in iter(lambda: data.read(_CHUNK_SIZE), b""):
                digest_object.update(chunk)

        return digest_object.hexdigest()

    @classmethod
    def _verify_hashes(
        cls, data: Union[bytes, IO[bytes]], expected_hashes: Dict[str, str]
    ) -> None:
        for algo, exp_hash in expected_hashes.items():
            try:
                observed_hash = cls._digest(data, algo)
            except ValueError as e:
                raise LengthOrHashMismatchError(
                    f"Unsupported algorithm '{algo}'"
                ) from e

            if observed_hash != exp_hash:
                raise LengthOrHashMismatchError(
                    f"Observed {algo} hash {observed_hash} does not match "
                    f"expected hash {exp_hash}"
                )

    @staticmethod
    def _data_length(data: Union[bytes, IO[bytes]]) -> int:
        if isinstance(data, bytes):
            return len(data)

        data.seek(0, io.SEEK_END)
        return data.tell()

    @classmethod
    def _verify_length(
        cls, data: Union[bytes, IO[bytes]], expected_length: int
    ) -> None:
        observed_length = cls._data_length(data)
        if observed_length != expected_length:
            raise LengthOrHashMismatchError(
                f"Observed length {observed_length} does not match "
                f"expected length {expected_length}"
            )

    @staticmethod
    def _validate_hashes(hashes: Dict[str, str]) -> None:
        if not hashes:
            raise ValueError("Hashes must be a non empty dictionary")
        for key, value in hashes.items():
            if not (isinstance(key, str) and isinstance(value, str)):
                raise TypeError("Hashes items must be strings")

    @staticmethod
    def _validate_length(length: int) -> None:
        if isinstance(length, bool) or not isinstance(length, int):
            raise TypeError(f"Length must be an integer, got {length!r}")
        if length < 0:
            raise ValueError(f"Length must be >= 0, got {length}")

    @classmethod
    def _get_length_and_hashes(
        cls, data: Union[bytes, IO[bytes]], hash_algorithms: Optional[List[str]]
    ) -> Tuple[int, Dict[str, str]]:
        if hash_algorithms is None:
            hash_algorithms = [DEFAULT_HASH_ALGORITHM]

        hashes = {algo: cls._digest(data, algo) for algo in hash_algorithms}
        return cls._data_length(data), hashes


class MetaFile(BaseFile):
    """Pinned version, and optionally length and hashes, of a metadata file.

    Args:
        version: Version of the metadata file.
        length: Length of the metadata file in bytes.
        hashes: Dictionary of hash algorithm names to hashes of the metadata
            file content.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage.

    Raises:
        ValueError, TypeError: Invalid arguments.
    """

    def __init__(
        self,
        version: int = 1,
        length: Optional[int] = None,
        hashes: Optional[Dict[str, str]] = None,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        if isinstance(version, bool) or not isinstance(version, int):
            raise TypeError(f"Metafile version must be an integer: {version!r}")
        if version <= 0:
            raise ValueError(f"Metafile version must be > 0, got {version}")
        if length is not None:
            self._validate_length(length)
        if hashes is not None:
            self._validate_hashes(hashes)

        self.version = version
        self.length = length
        self.hashes = hashes
        self.unrecognized_fields = unrecognized_fields or {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetaFile):
            return False

        return (
            self.version == other.version
            and self.length == other.length
            and self.hashes == other.hashes
            and self.unrecognized_fields == other.unrecognized_fields
        )

    @classmethod
    def from_dict(cls, meta_dict: Dict[str, Any]) -> "MetaFile":
        version = meta_dict.pop("version")
        length = meta_dict.pop("length", None)
        hashes = meta_dict.pop("hashes", None)
        return cls(version, length, hashes, meta_dict)

    @classmethod
    def from_data(
        cls,
        version: int,
        data: Union[bytes, IO[bytes]],
        hash_algorithms: Optional[List[str]] = None,
    ) -> "MetaFile":
        """Create a ``MetaFile`` pinning the length and hashes of ``data``."""
        length, hashes = cls._get_length_and_hashes(data, hash_algorithms)
        return cls(version, length, hashes)

    def to_dict(self) -> Dict[str, Any]:
        res_dict: Dict[str, Any] = {
            "version": self.version,
            **self.unrecognized_fields,
        }
        if self.length is not None:
            res_dict["length"] = self.length
        if self.hashes is not None:
            res_dict["hashes"] = self.hashes

        return res_dict

    def verify_length_and_hashes(self, data: Union[bytes, IO[bytes]]) -> None:
        """Verify ``data`` against whichever of length and hashes are set.

        Raises:
            LengthOrHashMismatchError: Calculated length or hashes do not
                match expected values or hash algorithm is not supported.
        """
        if self.length is not None:
            self._verify_length(data, self.length)

        if self.hashes is not None:
            self._verify_hashes(data, self.hashes)


class Timestamp(Signed):
    """A container for the signed part of timestamp metadata.

    The file format wraps the snapshot reference in a ``meta`` dictionary,
    here it is the ``snapshot_meta`` attribute.
    """

    type = _TIMESTAMP

    def __init__(
        self,
        version: Optional[int] = None,
        spec_version: Optional[str] = None,
        expires: Optional[datetime] = None,
        snapshot_meta: Optional[MetaFile] = None,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(version, spec_version, expires, unrecognized_fields)
        self.snapshot_meta = snapshot_meta or MetaFile(1)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Timestamp):
            return False

        return (
            super().__eq__(other) and self.snapshot_meta == other.snapshot_meta
        )

    @classmethod
    def from_dict(cls, signed_dict: Dict[str, Any]) -> "Timestamp":
        common_args = cls._common_fields_from_dict(signed_dict)
        meta_dict = signed_dict.pop("meta")
        snapshot_meta = MetaFile.from_dict(meta_dict["snapshot.json"])
        return cls(*common_args, snapshot_meta, signed_dict)

    def to_dict(self) -> Dict[str, Any]:
        res_dict = self._common_fields_to_dict()
        res_dict["meta"] = {"snapshot.json": self.snapshot_meta.to_dict()}
        return res_dict


class Snapshot(Signed):
    """A container for the signed part of snapshot metadata.

    ``meta`` maps metadata filenames (``targets.json``, ``<role>.json``) to
    the ``MetaFile`` pinning them.
    """

    type = _SNAPSHOT

    def __init__(
        self,
        version: Optional[int] = None,
        spec_version: Optional[str] = None,
        expires: Optional[datetime] = None,
        meta: Optional[Dict[str, MetaFile]] = None,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(version, spec_version, expires, unrecognized_fields)
        self.meta = meta if meta is not None else {"targets.json": MetaFile(1)}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Snapshot):
            return False

        return super().__eq__(other) and self.meta == other.meta

    @classmethod
    def from_dict(cls, signed_dict: Dict[str, Any]) -> "Snapshot":
        common_args = cls._common_fields_from_dict(signed_dict)
        meta = {
            path: MetaFile.from_dict(meta_dict)
            for path, meta_dict in signed_dict.pop("meta").items()
        }
        return cls(*common_args, meta, signed_dict)

    def to_dict(self) -> Dict[str, Any]:
        snapshot_dict = self._common_fields_to_dict()
        snapshot_dict["meta"] = {
            path: meta_info.to_dict() for path, meta_info in self.meta.items()
        }
        return snapshot_dict


class DelegatedRole(Role):
    """A delegation from a targets role to a named role.

    Exactly one of ``paths`` (glob patterns matched per path segment) or
    ``path_hash_prefixes`` (prefixes of the hex SHA-256 of the target path)
    must be set.

    Args:
        name: Delegated role name.
        keyids: Delegated role signing key identifiers.
        threshold: Number of keys required to sign this role's metadata.
        terminating: ``True`` if a match ends the target search here.
        paths: Path patterns.
        path_hash_prefixes: Hash prefixes.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage.

    Raises:
        ValueError: Invalid arguments.
    """

    def __init__(
        self,
        name: str,
        keyids: List[str],
        threshold: int,
        terminating: bool,
        paths: Optional[List[str]] = None,
        path_hash_prefixes: Optional[List[str]] = None,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(keyids, threshold, unrecognized_fields)
        self.name = name
        self.terminating = terminating
        if (paths is None) == (path_hash_prefixes is None):
            raise ValueError(
                "Only one of (paths, path_hash_prefixes) must be set"
            )

        for patterns in (paths, path_hash_prefixes):
            if patterns is not None and any(
                not isinstance(p, str) for p in patterns
            ):
                raise ValueError("Paths and path hash prefixes must be strings")

        self.paths = paths
        self.path_hash_prefixes = path_hash_prefixes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DelegatedRole):
            return False

        return (
            super().__eq__(other)
            and self.name == other.name
            and self.terminating == other.terminating
            and self.paths == other.paths
            and self.path_hash_prefixes == other.path_hash_prefixes
        )

    @classmethod
    def from_dict(cls, role_dict: Dict[str, Any]) -> "DelegatedRole":
        """Create ``DelegatedRole`` object from its json/dict representation.

        Raises:
            ValueError, KeyError, TypeError: Invalid arguments.
        """
        return cls(
            role_dict.pop("name"),
            role_dict.pop("keyids"),
            role_dict.pop("threshold"),
            role_dict.pop("terminating"),
            role_dict.pop("paths", None),
            role_dict.pop("path_hash_prefixes", None),
            role_dict,
        )

    def to_dict(self) -> Dict[str, Any]:
        res_dict = {
            "name": self.name,
            "terminating": self.terminating,
            **super().to_dict(),
        }
        if self.paths is not None:
            res_dict["paths"] = self.paths
        else:
            res_dict["path_hash_prefixes"] = self.path_hash_prefixes
        return res_dict

    @staticmethod
    def _matches_pattern(target_path: str, pattern: str) -> bool:
        # fnmatch does not treat "/" specially: match segment by segment so
        # that "*" never crosses a directory boundary.
        target_parts = target_path.split("/")
        pattern_parts = pattern.split("/")
        if len(target_parts) != len(pattern_parts):
            return False

        return all(
            fnmatch.fnmatchcase(part, pattern_part)
            for part, pattern_part in zip(target_parts, pattern_parts)
        )

    def is_delegated_path(self, target_path: str) -> bool:
        """Return ``True`` if this role is trusted to provide
        ``target_path``.
        """
        if self.path_hash_prefixes is not None:
            path_hash = hashlib.sha256(target_path.encode("utf-8")).hexdigest()
            return any(
                path_hash.startswith(prefix)
                for prefix in self.path_hash_prefixes
            )

        assert self.paths is not None
        return any(
            self._matches_pattern(target_path, pattern)
            for pattern in self.paths
        )


class Delegations:
    """Keys and ordered delegated roles of a targets role.

    Args:
        keys: Dictionary of keyids to Keys used by ``roles``.
        roles: Ordered dictionary of role names to DelegatedRoles. The order
            is the order in which delegations are searched.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage.

    Raises:
        ValueError: Invalid arguments.
    """

    def __init__(
        self,
        keys: Dict[str, Key],
        roles: Dict[str, DelegatedRole],
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        for role in roles:
            if not role or role in TOP_LEVEL_ROLE_NAMES:
                raise ValueError(
                    "Delegated roles cannot be empty or use top-level "
                    "role names"
                )

        self.keys = keys
        self.roles = roles
        self.unrecognized_fields = unrecognized_fields or {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Delegations):
            return False

        return (
            self.keys == other.keys
            # Order of the delegated roles matters
            and list(self.roles.items()) == list(other.roles.items())
            and self.unrecognized_fields == other.unrecognized_fields
        )

    @classmethod
    def from_dict(cls, delegations_dict: Dict[str, Any]) -> "Delegations":
        """Create ``Delegations`` object from its json/dict representation.

        Raises:
            ValueError, KeyError, TypeError: Invalid arguments.
        """
        keys = _keys_from_dict(delegations_dict.pop("keys"))
        roles: Dict[str, DelegatedRole] = {}
        for role_dict in delegations_dict.pop("roles"):
            role = DelegatedRole.from_dict(role_dict)
            if role.name in roles:
                raise ValueError(f"Duplicate role {role.name}")
            roles[role.name] = role

        return cls(keys, roles, delegations_dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keys": {keyid: key.to_dict() for keyid, key in self.keys.items()},
            "roles": [role.to_dict() for role in self.roles.values()],
            **self.unrecognized_fields,
        }

    def get_roles_for_target(
        self, target_path: str
    ) -> Iterator[Tuple[str, bool]]:
        """Yield name and terminating flag of every delegated role that is
        trusted for ``target_path``, in delegation order.
        """
        for role in self.roles.values():
            if role.is_delegated_path(target_path):
                yield role.name, role.terminating


class TargetFile(BaseFile):
    """Length, hashes and custom data of one target file.

    Args:
        length: Length of the target file in bytes.
        hashes: Dictionary of hash algorithm names to hashes of the target
            file content.
        path: URL path to a target file, relative to a base targets URL.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage, including ``custom``.

    Raises:
        ValueError, TypeError: Invalid arguments.
    """

    def __init__(
        self,
        length: int,
        hashes: Dict[str, str],
        path: str,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ):
        self._validate_length(length)
        self._validate_hashes(hashes)

        self.length = length
        self.hashes = hashes
        self.path = path
        self.unrecognized_fields = unrecognized_fields or {}

    @property
    def custom(self) -> Any:  # noqa: ANN401
        """Opaque repository specific data about the target, if any."""
        return self.unrecognized_fields.get("custom")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TargetFile):
            return False

        return (
            self.length == other.length
            and self.hashes == other.hashes
            and self.path == other.path
            and self.unrecognized_fields == other.unrecognized_fields
        )

    @classmethod
    def from_dict(cls, target_dict: Dict[str, Any], path: str) -> "TargetFile":
        length = target_dict.pop("length")
        hashes = target_dict.pop("hashes")
        return cls(length, hashes, path, target_dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "length": self.length,
            "hashes": self.hashes,
            **self.unrecognized_fields,
        }

    @classmethod
    def from_data(
        cls,
        target_path: str,
        data: Union[bytes, IO[bytes]],
        hash_algorithms: Optional[List[str]] = None,
    ) -> "TargetFile":
        """Create ``TargetFile`` describing ``data``.

        Raises:
            ValueError: The hash algorithms list contains an unsupported
                algorithm.
        """
        length, hashes = cls._get_length_and_hashes(data, hash_algorithms)
        return cls(length, hashes, target_path)

    def verify_length_and_hashes(self, data: Union[bytes, IO[bytes]]) -> None:
        """Verify that length and hashes of ``data`` match expected values.

        Raises:
            LengthOrHashMismatchError: Calculated length or hashes do not
                match expected values or hash algorithm is not supported.
        """
        self._verify_length(data, self.length)
        self._verify_hashes(data, self.hashes)

    def get_prefixed_paths(self) -> List[str]:
        """Return hash-prefixed URL paths, one per listed hash."""
        parent, sep, name = self.path.rpartition("/")
        return [
            f"{parent}{sep}{hash_value}.{name}"
            for hash_value in self.hashes.values()
        ]


class Targets(Signed, _DelegatorMixin):
    """A container for the signed part of targets metadata.

    Args:
        version: Metadata version number. Default is 1.
        spec_version: Supported specification version.
        expires: Metadata expiry date. Default is current date and time.
        targets: Dictionary of target paths to TargetFiles.
        delegations: Delegations to other targets roles, if any.
        unrecognized_fields: Dictionary of all attributes that are not managed
            by anchorage.

    Raises:
        ValueError: Invalid arguments.
    """

    type = _TARGETS

    def __init__(
        self,
        version: Optional[int] = None,
        spec_version: Optional[str] = None,
        expires: Optional[datetime] = None,
        targets: Optional[Dict[str, TargetFile]] = None,
        delegations: Optional[Delegations] = None,
        unrecognized_fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(version, spec_version, expires, unrecognized_fields)
        self.targets = targets if targets is not None else {}
        self.delegations = delegations

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Targets):
            return False

        return (
            super().__eq__(other)
            and self.targets == other.targets
            and self.delegations == other.delegations
        )

    @classmethod
    def from_dict(cls, signed_dict: Dict[str, Any]) -> "Targets":
        """Create ``Targets`` object from its json/dict representation.

        Raises:
            ValueError, KeyError, TypeError: Invalid arguments.
        """
        common_args = cls._common_fields_from_dict(signed_dict)
        targets = {
            path: TargetFile.from_dict(info, path)
            for path, info in signed_dict.pop(_TARGETS).items()
        }
        delegations = None
        if "delegations" in signed_dict:
            delegations = Delegations.from_dict(signed_dict.pop("delegations"))

        return cls(*common_args, targets, delegations, signed_dict)

    def to_dict(self) -> Dict[str, Any]:
        targets_dict = self._common_fields_to_dict()
        targets_dict[_TARGETS] = {
            path: target.to_dict() for path, target in self.targets.items()
        }
        if self.delegations is not None:
            targets_dict["delegations"] = self.delegations.to_dict()
        return targets_dict

    def get_delegated_role(self, delegated_role: str) -> Role:
        if self.delegations is None:
            raise ValueError("No delegations found")

        role = self.delegations.roles.get(delegated_role)
        if role is None:
            raise ValueError(f"Delegated role {delegated_role} not found")

        return role

    def get_key(self, keyid: str) -> Key:
        if self.delegations is None:
            raise ValueError("No delegations found")
        if keyid not in self.delegations.keys:
            raise ValueError(f"Key {keyid} not found")

        return self.delegations.keys[keyid]
