"""Canonical state digest implementation (v1)."""
from __future__ import annotations

from typing import Any

from blake3 import blake3

_ESCROW_ADDRESS_FIELDS = (
    "escrower_reserve",
    "escrower_trade",
    "escrower_refund",
    "payee_reserve",
    "payee_trade",
)
_ESCROW_AMOUNT_FIELDS = (
    "escrower_balance",
    "payee_balance",
    "escrower_paid",
    "payee_paid",
)


def _hex_to_bytes(value: str | None) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise TypeError("hex value must be string")
    v = value[2:] if value.startswith(("0x", "0X")) else value
    if v == "":
        return b""
    return bytes.fromhex(v)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _u256_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u256 must be non-negative")
    return int(value).to_bytes(32, "big", signed=False)


def _address(value: str) -> bytes:
    addr = _hex_to_bytes(value)
    if len(addr) != 20:
        raise ValueError(f"address must be 20 bytes, got {len(addr)}")
    return addr


def _tagged(value: bytes) -> bytes:
    """One length byte, then the value; empty for an absent field."""
    if len(value) > 0xFF:
        raise ValueError("tagged field too long")
    return bytes([len(value)]) + value


def _text(value: str | None) -> bytes:
    return _tagged((value or "").encode("ascii"))


def _sorted_by(items: list[dict[str, Any]], key: str) -> list[tuple[bytes, dict[str, Any]]]:
    return sorted(((_address(item.get(key, "")), item) for item in items), key=lambda x: x[0])


def compute_state_digest(post_state: dict[str, Any]) -> str:
    """Compute state digest v1 from post_state.

    Fields are encoded in canonical order and hashed with BLAKE3-256.
    Optional fields (factory, library, holder token, close reason) are
    length-tagged so an absent value differs from any present one. Events
    are observational and not part of the digest.
    """
    if not isinstance(post_state, dict):
        post_state = {}
    gs = post_state.get("global_state", {})
    buf = bytearray()
    for field in ("block_height", "timestamp"):
        buf += _u64_be(int(gs.get(field, 0)))
    buf += _tagged(_hex_to_bytes(post_state.get("factory")))
    buf += _tagged(_hex_to_bytes(post_state.get("library")))

    for addr, acc in _sorted_by(post_state.get("accounts", []), "address"):
        buf += addr
        buf += _u256_be(int(acc.get("balance", 0)))
        tokens = sorted((_address(t), int(v)) for t, v in acc.get("tokens", {}).items())
        buf += _u64_be(len(tokens))
        for token, amount in tokens:
            buf += token
            buf += _u256_be(amount)

    for addr, holder in _sorted_by(post_state.get("asset_holders", []), "address"):
        buf += addr
        buf += _text(holder.get("kind"))
        buf += _tagged(_hex_to_bytes(holder.get("token")))

    for handle, esc in _sorted_by(post_state.get("escrows", []), "escrow"):
        buf += handle
        buf += _u256_be(int(esc.get("amount", 0)))
        buf += _u256_be(int(esc.get("timelock", 0)))
        for field in _ESCROW_ADDRESS_FIELDS:
            buf += _address(esc.get(field, ""))
        buf += int(esc.get("state", 0)).to_bytes(1, "big")
        for field in _ESCROW_AMOUNT_FIELDS:
            buf += _u256_be(int(esc.get(field, 0)))
        buf += _text(esc.get("close_reason"))

    for handle, puz in _sorted_by(post_state.get("puzzles", []), "escrow"):
        buf += handle
        buf += _u256_be(int(puz.get("trade_amount", 0)))
        buf += _hex_to_bytes(puz.get("puzzle_hash", ""))
        buf += _u256_be(int(puz.get("puzzle_timelock", 0)))
        buf += _tagged(_hex_to_bytes(puz.get("authorizing_sighash")))

    return blake3(buf).hexdigest()
