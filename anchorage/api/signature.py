# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Signature and key identifier helpers.

Everything here is pure: no network or file access happens. Cryptography is
delegated to ``securesystemslib.signer.Key`` implementations.
"""

import hashlib
import logging

from securesystemslib import exceptions as sslib_exceptions
from securesystemslib.formats import encode_canonical
from securesystemslib.signer import Key, Signature

logger = logging.getLogger(__name__)


def compute_keyid(key: Key) -> str:
    """Return the content derived identifier of ``key``.

    The identifier is the hex encoded SHA-256 digest of the canonical JSON
    form of the key, including any unrecognized fields it was loaded with.
    """
    data = encode_canonical(key.to_dict()).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def verify_signature(payload: bytes, signature: Signature, key: Key) -> bool:
    """Check a single ``signature`` over ``payload`` with ``key``.

    Returns ``False`` when the signature does not verify, including when the
    key uses a scheme that the installed crypto backend does not support.
    """
    try:
        key.verify_signature(signature, payload)
    except sslib_exceptions.VerificationError as e:
        # the verification process itself failed, e.g. unsupported scheme
        logger.info("Cannot verify with key %s: %s", key.keyid, e)
        return False
    except sslib_exceptions.UnverifiedSignatureError:
        return False

    return True
