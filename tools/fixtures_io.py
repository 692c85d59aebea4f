"""Helpers to serialize/deserialize fixtures for the CWC escrow specs."""

from __future__ import annotations

from enum import Enum
from typing import Any

from cwc_spec.types import (
    AccountState,
    AssetHolderRecord,
    AssetKind,
    Call,
    CallType,
    ChainState,
    CloseReason,
    EscrowRecord,
    EscrowState,
    Event,
    GlobalState,
    PuzzleRecord,
)

# Payload fields carried as raw bytes
_BYTES_KEYS = frozenset({
    "escrow",
    "destination",
    "asset",
    "token",
    "escrower_reserve",
    "escrower_trade",
    "escrower_refund",
    "payee_reserve",
    "payee_trade",
    "escrower_signature",
    "payee_signature",
    "puzzle_hash",
    "preimage",
})

_ESCROW_ADDRESS_FIELDS = (
    "escrower_reserve",
    "escrower_trade",
    "escrower_refund",
    "payee_reserve",
    "payee_trade",
)


def _hex_to_bytes(v: str) -> bytes:
    return bytes.fromhex(v)


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def _value_to_json(v: Any) -> Any:
    if isinstance(v, (bytes, bytearray)):
        return _bytes_to_hex(bytes(v))
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, dict):
        return {k: _value_to_json(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_value_to_json(x) for x in v]
    return v


def state_to_json(state: ChainState) -> dict[str, Any]:
    accounts_out = [
        {
            "address": _bytes_to_hex(a.address),
            "balance": a.balance,
            "tokens": {_bytes_to_hex(t): amt for t, amt in a.tokens.items()},
            "rejects_transfers": a.rejects_transfers,
        }
        for a in state.accounts.values()
    ]

    result: dict[str, Any] = {
        "global_state": {
            "block_height": state.global_state.block_height,
            "timestamp": state.global_state.timestamp,
        },
        "factory": _bytes_to_hex(state.factory),
        "library": _bytes_to_hex(state.library),
        "accounts": accounts_out,
    }

    if state.asset_holders:
        result["asset_holders"] = [
            {
                "address": _bytes_to_hex(h.address),
                "kind": h.kind.value,
                "token": _bytes_to_hex(h.token),
            }
            for h in state.asset_holders.values()
        ]

    if state.escrows:
        escrows_out = []
        for handle, e in state.escrows.items():
            entry: dict[str, Any] = {
                "escrow": _bytes_to_hex(handle),
                "amount": e.amount,
                "timelock": e.timelock,
            }
            for key in _ESCROW_ADDRESS_FIELDS:
                entry[key] = _bytes_to_hex(getattr(e, key))
            entry.update(
                {
                    "state": int(e.state),
                    "escrower_balance": e.escrower_balance,
                    "payee_balance": e.payee_balance,
                    "escrower_paid": e.escrower_paid,
                    "payee_paid": e.payee_paid,
                    "close_reason": e.close_reason.value if e.close_reason else None,
                }
            )
            escrows_out.append(entry)
        result["escrows"] = escrows_out

    if state.puzzles:
        result["puzzles"] = [
            {
                "escrow": _bytes_to_hex(handle),
                "trade_amount": p.trade_amount,
                "puzzle_hash": _bytes_to_hex(p.puzzle_hash),
                "puzzle_timelock": p.puzzle_timelock,
                "authorizing_sighash": _bytes_to_hex(p.authorizing_sighash),
            }
            for handle, p in state.puzzles.items()
        ]

    if state.events:
        result["events"] = [
            {
                "name": ev.name,
                "escrow": _bytes_to_hex(ev.handle),
                "data": _value_to_json(ev.data),
            }
            for ev in state.events
        ]

    return result


def state_from_json(data: dict[str, Any]) -> ChainState:
    gs = data.get("global_state", {})
    state = ChainState(
        global_state=GlobalState(
            block_height=int(gs.get("block_height", 0)),
            timestamp=int(gs.get("timestamp", 0)),
        ),
        factory=_hex_to_bytes(data["factory"]),
        library=_hex_to_bytes(data["library"]),
    )

    for a in data.get("accounts", []):
        addr = _hex_to_bytes(a["address"])
        state.accounts[addr] = AccountState(
            address=addr,
            balance=int(a.get("balance", 0)),
            tokens={_hex_to_bytes(t): int(v) for t, v in a.get("tokens", {}).items()},
            rejects_transfers=bool(a.get("rejects_transfers", False)),
        )

    for h in data.get("asset_holders", []):
        addr = _hex_to_bytes(h["address"])
        state.asset_holders[addr] = AssetHolderRecord(
            address=addr,
            kind=AssetKind(h["kind"]),
            token=_hex_to_bytes(h["token"]),
        )

    for e in data.get("escrows", []):
        handle = _hex_to_bytes(e["escrow"])
        reason = e.get("close_reason")
        state.escrows[handle] = EscrowRecord(
            amount=int(e["amount"]),
            timelock=int(e["timelock"]),
            escrower_reserve=_hex_to_bytes(e["escrower_reserve"]),
            escrower_trade=_hex_to_bytes(e["escrower_trade"]),
            escrower_refund=_hex_to_bytes(e["escrower_refund"]),
            payee_reserve=_hex_to_bytes(e["payee_reserve"]),
            payee_trade=_hex_to_bytes(e["payee_trade"]),
            state=EscrowState(int(e.get("state", EscrowState.UNFUNDED))),
            escrower_balance=int(e.get("escrower_balance", 0)),
            payee_balance=int(e.get("payee_balance", 0)),
            escrower_paid=int(e.get("escrower_paid", 0)),
            payee_paid=int(e.get("payee_paid", 0)),
            close_reason=CloseReason(reason) if reason else None,
        )

    for p in data.get("puzzles", []):
        state.puzzles[_hex_to_bytes(p["escrow"])] = PuzzleRecord(
            trade_amount=int(p["trade_amount"]),
            puzzle_hash=_hex_to_bytes(p["puzzle_hash"]),
            puzzle_timelock=int(p["puzzle_timelock"]),
            authorizing_sighash=_hex_to_bytes(p["authorizing_sighash"]),
        )

    # Event payloads stay in their JSON form; they are never replayed
    for ev in data.get("events", []):
        state.events.append(
            Event(name=ev["name"], handle=_hex_to_bytes(ev["escrow"]), data=dict(ev.get("data", {})))
        )

    return state


def call_to_json(call: Call) -> dict[str, Any]:
    return {
        "call_type": _value_to_json(call.call_type),
        "sender": _bytes_to_hex(call.sender),
        "payload": _value_to_json(call.payload),
    }


def call_from_json(data: dict[str, Any]) -> Call:
    payload: dict[str, Any] = {}
    for key, value in data.get("payload", {}).items():
        if key in _BYTES_KEYS and isinstance(value, str):
            payload[key] = _hex_to_bytes(value)
        else:
            payload[key] = value
    return Call(
        call_type=CallType(data["call_type"]),
        sender=_hex_to_bytes(data["sender"]),
        payload=payload,
    )
