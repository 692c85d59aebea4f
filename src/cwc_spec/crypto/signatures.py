"""Signer recovery for escrow authorization messages."""

from __future__ import annotations

from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from ..config import HASH_SIZE, SIGNATURE_SIZE

# web3 signatures carry v as 27/28; eth_keys expects the raw recovery id
_LEGACY_V_OFFSET = 27


def recover_signer(digest: bytes, signature: bytes) -> Optional[bytes]:
    """Recover the 20-byte address that signed ``digest``.

    Returns ``None`` for malformed signatures. A ``None`` never compares
    equal to a role key, so callers treat it as a plain rejection.
    """
    if len(digest) != HASH_SIZE or len(signature) != SIGNATURE_SIZE:
        return None

    v = signature[64]
    if v >= _LEGACY_V_OFFSET:
        v -= _LEGACY_V_OFFSET
    if v not in (0, 1):
        return None

    try:
        sig = keys.Signature(signature_bytes=bytes(signature[:64]) + bytes([v]))
        public_key = sig.recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError):
        return None
    return public_key.to_canonical_address()


def is_signed_by(digest: bytes, signature: bytes, expected: bytes) -> bool:
    signer = recover_signer(digest, signature)
    return signer is not None and signer == expected
