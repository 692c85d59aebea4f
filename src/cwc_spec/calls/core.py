"""Core value transfer specs (native ETH and ERC20 tokens)."""

from __future__ import annotations

from copy import deepcopy
from typing import Optional

from ..asset_holder import balance_of, move_value
from ..config import ADDRESS_SIZE, NATIVE_ASSET, UINT256_MAX
from ..errors import ErrorCode, SpecError
from ..types import Call, CallType, ChainState


def _address(p: dict, key: str, default: Optional[bytes] = None) -> bytes:
    v = p.get(key, default)
    if not isinstance(v, (bytes, bytearray)) or len(v) != ADDRESS_SIZE:
        raise SpecError(ErrorCode.INVALID_ADDRESS, f"{key} must be a 20-byte address")
    return bytes(v)


def _payload(call: Call) -> tuple[bytes, bytes, int]:
    p = call.payload
    if not isinstance(p, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "transfer payload must be dict")
    asset = _address(p, "asset", NATIVE_ASSET)
    destination = _address(p, "destination")
    amount = p.get("amount", 0)
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "amount must be an integer")
    return asset, destination, amount


def verify(state: ChainState, call: Call) -> None:
    if call.call_type != CallType.TRANSFER:
        raise SpecError(ErrorCode.INVALID_TYPE, "unsupported core call type")

    asset, _destination, amount = _payload(call)
    if amount <= 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "transfer amount must be > 0")
    if amount > UINT256_MAX:
        raise SpecError(ErrorCode.OVERFLOW, "transfer amount exceeds uint256 max")

    # Escrowed value only leaves an asset holder through the library
    if call.sender in state.asset_holders:
        raise SpecError(ErrorCode.UNAUTHORIZED, "asset holders cannot send directly")
    if call.sender not in state.accounts:
        raise SpecError(ErrorCode.ACCOUNT_NOT_FOUND, "sender not found")
    if balance_of(state, call.sender, asset) < amount:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient balance")


def apply(state: ChainState, call: Call) -> ChainState:
    next_state = deepcopy(state)
    asset, destination, amount = _payload(call)
    if not move_value(next_state, call.sender, destination, asset, amount):
        raise SpecError(ErrorCode.TRANSFER_FAILED, "receiver rejected transfer")
    return next_state
