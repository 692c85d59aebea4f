"""Hash primitives for the escrow library: keccak for signed messages and
params, SHA-256 for hash locks, BLAKE3 for handles and state digests."""

from __future__ import annotations

import hashlib

from blake3 import blake3
from Cryptodome.Hash import keccak

from ..config import ADDRESS_SIZE, CREATE2_PREFIX, HASH_SIZE


def keccak256(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def puzzle_hash(preimage: bytes) -> bytes:
    """Hash lock commitment.

    SHA-256 matches the HTLC primitive on the counterparty chain; the chain
    native keccak would make the swap legs incompatible.
    """
    return sha256(preimage)


def blake3_hash(data: bytes) -> bytes:
    return blake3(data).digest()


def compute_escrow_address(factory: bytes, salt: bytes, code_id: bytes) -> bytes:
    """Deterministic escrow handle, the last 20 bytes of the create2 digest."""
    if len(salt) != HASH_SIZE:
        raise ValueError("salt must be 32 bytes")
    data = CREATE2_PREFIX + factory + salt + blake3_hash(code_id)
    return blake3_hash(data)[-ADDRESS_SIZE:]
