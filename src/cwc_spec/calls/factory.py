"""Escrow factory call specs (ETH and ERC20 escrows).

Construction is two-phase and deterministic. The escrow handle is derived
from the parameters before anything exists on chain, so counterparties can
fund it up front. Creation binds an asset holder at that handle and registers
the parameters with the library, then opens the escrow straight away when the
handle already holds enough value.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Optional

from ..asset_holder import bind_asset_holder
from ..config import ADDRESS_SIZE, ZERO_ADDRESS
from ..crypto.hash_algorithms import compute_escrow_address
from ..encoding import params_hash
from ..errors import ErrorCode, SpecError
from ..types import AssetHolderRecord, AssetKind, Call, CallType, ChainState, EscrowParams, Event
from . import escrow as escrow_calls

logger = logging.getLogger(__name__)

FACTORY_CALLS = frozenset({
    CallType.CREATE_ETH_ESCROW,
    CallType.CREATE_ERC20_ESCROW,
})

_KIND_BY_CALL = {
    CallType.CREATE_ETH_ESCROW: AssetKind.ETH,
    CallType.CREATE_ERC20_ESCROW: AssetKind.ERC20,
}


def _code_id(kind: AssetKind, library: bytes, token: bytes) -> bytes:
    # Holder code identity: kind plus its constructor arguments
    return kind.value.encode("ascii") + library + token


def escrow_address_for(
    state: ChainState,
    params: EscrowParams,
    kind: AssetKind = AssetKind.ETH,
    token: bytes = ZERO_ADDRESS,
) -> bytes:
    salt = params_hash(params, state.factory, token)
    return compute_escrow_address(state.factory, salt, _code_id(kind, state.library, token))


def _address(p: dict, key: str) -> bytes:
    v = p.get(key)
    if not isinstance(v, (bytes, bytearray)) or len(v) != ADDRESS_SIZE:
        raise SpecError(ErrorCode.INVALID_ADDRESS, f"{key} must be a 20-byte address")
    return bytes(v)


def params_from_payload(p: dict) -> EscrowParams:
    for key in ("amount", "timelock"):
        v = p.get(key)
        if isinstance(v, bool) or not isinstance(v, int):
            raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{key} must be an integer")
    return EscrowParams(
        amount=p["amount"],
        timelock=p["timelock"],
        escrower_reserve=_address(p, "escrower_reserve"),
        escrower_trade=_address(p, "escrower_trade"),
        escrower_refund=_address(p, "escrower_refund"),
        payee_reserve=_address(p, "payee_reserve"),
        payee_trade=_address(p, "payee_trade"),
    )


def params_to_payload(params: EscrowParams, token: Optional[bytes] = None) -> dict:
    payload = {
        "amount": params.amount,
        "timelock": params.timelock,
        "escrower_reserve": params.escrower_reserve,
        "escrower_trade": params.escrower_trade,
        "escrower_refund": params.escrower_refund,
        "payee_reserve": params.payee_reserve,
        "payee_trade": params.payee_trade,
    }
    if token is not None:
        payload["token"] = token
    return payload


def _token(call: Call) -> bytes:
    if call.call_type == CallType.CREATE_ETH_ESCROW:
        return ZERO_ADDRESS
    token = call.payload.get("token")
    if not isinstance(token, (bytes, bytearray)) or len(token) != ADDRESS_SIZE:
        raise SpecError(ErrorCode.INVALID_ADDRESS, "token must be a 20-byte address")
    if bytes(token) == ZERO_ADDRESS:
        raise SpecError(ErrorCode.INVALID_ADDRESS, "token must not be the zero address")
    return bytes(token)


def _registration(state: ChainState, call: Call) -> tuple[bytes, AssetKind, bytes, Call]:
    kind = _KIND_BY_CALL[call.call_type]
    token = _token(call)
    params = params_from_payload(call.payload)
    handle = escrow_address_for(state, params, kind, token)
    payload = params_to_payload(params)
    payload["escrow"] = handle
    return handle, kind, token, Call(CallType.CREATE_ESCROW, sender=state.factory, payload=payload)


def verify(state: ChainState, call: Call) -> None:
    if call.call_type not in FACTORY_CALLS:
        raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported factory call type: {call.call_type}")
    if not isinstance(call.payload, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "factory payload must be dict")

    handle, _kind, _token_addr, registration = _registration(state, call)
    if handle in state.asset_holders:
        raise SpecError(ErrorCode.ESCROW_EXISTS, "escrow already deployed")
    escrow_calls.verify(state, registration)


def apply(state: ChainState, call: Call) -> ChainState:
    handle, kind, token, registration = _registration(state, call)

    ns = deepcopy(state)
    ns.asset_holders[handle] = AssetHolderRecord(address=handle, kind=kind, token=token)
    ns = escrow_calls.apply(ns, registration)
    ns.events.append(
        Event(
            name="EscrowCreated",
            handle=handle,
            data={"kind": kind, "token": token, "creator": call.sender},
        )
    )

    holder = bind_asset_holder(ns, handle, ns.library)
    if holder.balance() >= ns.escrows[handle].amount:
        open_call = Call(CallType.OPEN_ESCROW, sender=call.sender, payload={"escrow": handle})
        escrow_calls.verify(ns, open_call)
        ns = escrow_calls.apply(ns, open_call)
    else:
        logger.debug("escrow %s created unfunded", handle.hex())
    return ns
