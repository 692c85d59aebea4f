"""Signed message encoding (web3 `encodePacked` subset).

Every authorization message is tightly packed, with no length delimiters:

    handle (20) || type_id (1) || uint256 / bytes32 fields ...

and signed as a personal message:

    keccak256("\\x19Ethereum Signed Message:\\n" || decimal(len(msg)) || msg)
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import (
    ADDRESS_SIZE,
    CASHOUT_MESSAGE_LEN,
    HASH_SIZE,
    PUZZLE_MESSAGE_LEN,
    REFUND_MESSAGE_LEN,
    SIGNED_MESSAGE_PREFIX,
    UINT256_MAX,
    UINT256_SIZE,
)
from .crypto.hash_algorithms import keccak256
from .errors import ErrorCode, SpecError
from .types import EscrowParams, MessageTypeId


MESSAGE_LENGTHS = {
    MessageTypeId.CASHOUT: CASHOUT_MESSAGE_LEN,
    MessageTypeId.PUZZLE: PUZZLE_MESSAGE_LEN,
    MessageTypeId.REFUND: REFUND_MESSAGE_LEN,
}


@dataclass
class Writer:
    buf: bytearray

    def write_u8(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(1, "big", signed=False))

    def write_u256(self, v: int) -> None:
        if v < 0 or v > UINT256_MAX:
            raise SpecError(ErrorCode.OVERFLOW, "value does not fit in uint256")
        self.buf.extend(int(v).to_bytes(UINT256_SIZE, "big", signed=False))

    def write_bytes(self, b: bytes) -> None:
        self.buf.extend(b)


def _expect_len(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise SpecError(ErrorCode.INVALID_FORMAT, f"{name} must be {size} bytes")


def _write_address(w: Writer, value: bytes) -> None:
    _expect_len("address", value, ADDRESS_SIZE)
    w.write_bytes(value)


def _write_hash(w: Writer, value: bytes) -> None:
    _expect_len("hash", value, HASH_SIZE)
    w.write_bytes(value)


def _message_writer(handle: bytes, type_id: MessageTypeId) -> Writer:
    w = Writer(bytearray())
    _write_address(w, handle)
    w.write_u8(type_id)
    return w


def encode_cashout_message(handle: bytes, amount_traded: int) -> bytes:
    w = _message_writer(handle, MessageTypeId.CASHOUT)
    w.write_u256(amount_traded)
    return bytes(w.buf)


def encode_refund_message(handle: bytes, amount_traded: int) -> bytes:
    w = _message_writer(handle, MessageTypeId.REFUND)
    w.write_u256(amount_traded)
    return bytes(w.buf)


def encode_puzzle_message(
    handle: bytes,
    prev_amount_traded: int,
    trade_amount: int,
    puzzle_hash: bytes,
    puzzle_timelock: int,
) -> bytes:
    w = _message_writer(handle, MessageTypeId.PUZZLE)
    w.write_u256(prev_amount_traded)
    w.write_u256(trade_amount)
    _write_hash(w, puzzle_hash)
    w.write_u256(puzzle_timelock)
    return bytes(w.buf)


def message_type(message: bytes) -> MessageTypeId:
    if len(message) <= ADDRESS_SIZE:
        raise SpecError(ErrorCode.INVALID_FORMAT, "message too short")
    try:
        type_id = MessageTypeId(message[ADDRESS_SIZE])
    except ValueError:
        raise SpecError(ErrorCode.INVALID_TYPE, "unknown message type") from None
    if type_id == MessageTypeId.NONE:
        raise SpecError(ErrorCode.INVALID_TYPE, "message type not set")
    return type_id


def check_message_length(message: bytes) -> None:
    """Reject messages whose length differs from their family's layout.

    The digest embeds the length as decimal text, so a wrong length would not
    fail on its own; it would just yield a digest nobody signed.
    """
    expected = MESSAGE_LENGTHS[message_type(message)]
    if len(message) != expected:
        raise SpecError(
            ErrorCode.INVALID_FORMAT,
            f"message length {len(message)} != {expected} for {message_type(message).name}",
        )


def encode_signed_message(message: bytes) -> bytes:
    return SIGNED_MESSAGE_PREFIX + str(len(message)).encode("ascii") + message


def signed_message_digest(message: bytes) -> bytes:
    check_message_length(message)
    return keccak256(encode_signed_message(message))


def cashout_digest(handle: bytes, amount_traded: int) -> bytes:
    return signed_message_digest(encode_cashout_message(handle, amount_traded))


def refund_digest(handle: bytes, amount_traded: int) -> bytes:
    return signed_message_digest(encode_refund_message(handle, amount_traded))


def puzzle_digest(
    handle: bytes,
    prev_amount_traded: int,
    trade_amount: int,
    puzzle_hash: bytes,
    puzzle_timelock: int,
) -> bytes:
    return signed_message_digest(
        encode_puzzle_message(handle, prev_amount_traded, trade_amount, puzzle_hash, puzzle_timelock)
    )


# --- Factory params ---


def encode_escrow_params(params: EscrowParams, factory: bytes, token: bytes) -> bytes:
    w = Writer(bytearray())
    w.write_u256(params.amount)
    w.write_u256(params.timelock)
    _write_address(w, params.escrower_reserve)
    _write_address(w, params.escrower_trade)
    _write_address(w, params.escrower_refund)
    _write_address(w, params.payee_reserve)
    _write_address(w, params.payee_trade)
    _write_address(w, factory)
    _write_address(w, token)
    return bytes(w.buf)


def params_hash(params: EscrowParams, factory: bytes, token: bytes) -> bytes:
    return keccak256(encode_escrow_params(params, factory, token))
