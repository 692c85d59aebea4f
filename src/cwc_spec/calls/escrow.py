"""Escrow library call specs.

The library owns every escrow record and puzzle slot. Guards are checked in
``verify`` against the untouched state; ``apply`` works on a copy and only
raises for failures of the asset holder during ``withdraw``.

Settlement is deliberately asymmetric: cashout, refund and force refund push
funds to the reserves when they close, while the puzzle path only credits
internal balances that the parties later collect with ``withdraw``. A failed
push leaves the value credited, so the escrow still closes and the party can
retry through ``withdraw``.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Optional

from ..asset_holder import AssetHolder, bind_asset_holder
from ..config import ADDRESS_SIZE, FORCE_REFUND_GRACE, HASH_SIZE, UINT256_MAX
from ..crypto.hash_algorithms import puzzle_hash
from ..crypto.signatures import is_signed_by
from ..encoding import cashout_digest, puzzle_digest, refund_digest
from ..errors import ErrorCode, SpecError
from ..types import (
    Call,
    CallType,
    ChainState,
    CloseReason,
    EscrowRecord,
    EscrowState,
    Event,
    Party,
    PuzzleRecord,
)

logger = logging.getLogger(__name__)

ESCROW_CALLS = frozenset({
    CallType.CREATE_ESCROW,
    CallType.OPEN_ESCROW,
    CallType.CASHOUT,
    CallType.REFUND,
    CallType.FORCE_REFUND,
    CallType.POST_PUZZLE,
    CallType.SOLVE_PUZZLE,
    CallType.REFUND_PUZZLE,
    CallType.WITHDRAW,
})

_ADDRESS_FIELDS = (
    "escrower_reserve",
    "escrower_trade",
    "escrower_refund",
    "payee_reserve",
    "payee_trade",
)


def _uint(p: dict, key: str) -> int:
    v = p.get(key, 0)
    if isinstance(v, bool) or not isinstance(v, int):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{key} must be an integer")
    if v < 0 or v > UINT256_MAX:
        raise SpecError(ErrorCode.INVALID_AMOUNT, f"{key} out of uint256 range")
    return v


def _bytes(p: dict, key: str, size: Optional[int] = None) -> bytes:
    v = p.get(key)
    if not isinstance(v, (bytes, bytearray)):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{key} must be bytes")
    if size is not None and len(v) != size:
        code = ErrorCode.INVALID_ADDRESS if size == ADDRESS_SIZE else ErrorCode.INVALID_FORMAT
        raise SpecError(code, f"{key} must be {size} bytes")
    return bytes(v)


def _handle(p: dict) -> bytes:
    return _bytes(p, "escrow", ADDRESS_SIZE)


def _escrow(state: ChainState, p: dict) -> EscrowRecord:
    escrow = state.escrows.get(_handle(p))
    if escrow is None:
        raise SpecError(ErrorCode.ESCROW_NOT_FOUND, "escrow not registered")
    return escrow


def _require_state(escrow: EscrowRecord, expected: EscrowState) -> None:
    if escrow.state != expected:
        raise SpecError(
            ErrorCode.ESCROW_WRONG_STATE,
            f"escrow is {escrow.state.name}, expected {expected.name}",
        )


def _party(p: dict) -> Party:
    v = p.get("party")
    try:
        return v if isinstance(v, Party) else Party(v)
    except ValueError:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "party must be escrower or payee") from None


def _emit(state: ChainState, name: str, handle: bytes, **data: Any) -> None:
    state.events.append(Event(name=name, handle=handle, data=data))


def get_escrow(state: ChainState, handle: bytes) -> Optional[EscrowRecord]:
    return state.escrows.get(handle)


def get_puzzle(state: ChainState, handle: bytes) -> Optional[PuzzleRecord]:
    return state.puzzles.get(handle)


def verify(state: ChainState, call: Call) -> None:
    p = call.payload
    if not isinstance(p, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "escrow payload must be dict")

    ct = call.call_type
    if ct == CallType.CREATE_ESCROW:
        _verify_create(state, call, p)
    elif ct == CallType.OPEN_ESCROW:
        _verify_open(state, call, p)
    elif ct == CallType.CASHOUT:
        _verify_cashout(state, call, p)
    elif ct == CallType.REFUND:
        _verify_refund(state, call, p)
    elif ct == CallType.FORCE_REFUND:
        _verify_force_refund(state, call, p)
    elif ct == CallType.POST_PUZZLE:
        _verify_post_puzzle(state, call, p)
    elif ct == CallType.SOLVE_PUZZLE:
        _verify_solve_puzzle(state, call, p)
    elif ct == CallType.REFUND_PUZZLE:
        _verify_refund_puzzle(state, call, p)
    elif ct == CallType.WITHDRAW:
        _verify_withdraw(state, call, p)
    else:
        raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported escrow call type: {ct}")


def apply(state: ChainState, call: Call) -> ChainState:
    p = call.payload
    ct = call.call_type
    if ct == CallType.CREATE_ESCROW:
        return _apply_create(state, call, p)
    elif ct == CallType.OPEN_ESCROW:
        return _apply_open(state, call, p)
    elif ct == CallType.CASHOUT:
        return _apply_cashout(state, call, p)
    elif ct == CallType.REFUND:
        return _apply_refund(state, call, p)
    elif ct == CallType.FORCE_REFUND:
        return _apply_force_refund(state, call, p)
    elif ct == CallType.POST_PUZZLE:
        return _apply_post_puzzle(state, call, p)
    elif ct == CallType.SOLVE_PUZZLE:
        return _apply_solve_puzzle(state, call, p)
    elif ct == CallType.REFUND_PUZZLE:
        return _apply_refund_puzzle(state, call, p)
    elif ct == CallType.WITHDRAW:
        return _apply_withdraw(state, call, p)
    raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported escrow call type: {ct}")


# --- settlement helpers ---


def _credit(escrow: EscrowRecord, party: Party, amount: int) -> None:
    if party == Party.ESCROWER:
        escrow.escrower_balance += amount
    else:
        escrow.payee_balance += amount


def _reserve(escrow: EscrowRecord, party: Party) -> bytes:
    return escrow.escrower_reserve if party == Party.ESCROWER else escrow.payee_reserve


def _credited(escrow: EscrowRecord, party: Party) -> int:
    return escrow.escrower_balance if party == Party.ESCROWER else escrow.payee_balance


def _settle(escrow: EscrowRecord, party: Party) -> int:
    amount = _credited(escrow, party)
    if party == Party.ESCROWER:
        escrow.escrower_balance = 0
        escrow.escrower_paid += amount
    else:
        escrow.payee_balance = 0
        escrow.payee_paid += amount
    return amount


def _push(
    state: ChainState,
    holder: AssetHolder,
    handle: bytes,
    escrow: EscrowRecord,
    party: Party,
    send_amount: Optional[int] = None,
) -> bool:
    """Best-effort payout of ``party``'s credit; the credit stays on failure."""
    credited = _credited(escrow, party)
    if credited == 0:
        return True
    amount = credited if send_amount is None else send_amount
    reserve = _reserve(escrow, party)
    if not holder.send(reserve, amount):
        logger.warning(
            "push of %d to %s reserve %s failed for escrow %s; left for withdraw",
            amount, party.value, reserve.hex(), handle.hex(),
        )
        return False
    _settle(escrow, party)
    _emit(state, "FundsTransferred", handle, party=party, recipient=reserve, amount=amount)
    return True


def _close(state: ChainState, handle: bytes, escrow: EscrowRecord, reason: CloseReason) -> None:
    escrow.state = EscrowState.CLOSED
    escrow.close_reason = reason
    _emit(state, "Closed", handle, reason=reason)
    logger.debug(
        "escrow %s closed (%s): escrower=%d payee=%d",
        handle.hex(), reason.value, escrow.settled(Party.ESCROWER), escrow.settled(Party.PAYEE),
    )


def _require_signature(digest: bytes, signature: bytes, expected: bytes, role: str) -> None:
    if not is_signed_by(digest, signature, expected):
        raise SpecError(ErrorCode.INVALID_SIGNATURE, f"invalid {role} signature")


# --- CREATE_ESCROW ---

def _verify_create(state: ChainState, call: Call, p: dict) -> None:
    if call.sender != state.factory:
        raise SpecError(ErrorCode.NOT_FACTORY, "only the escrow factory may register escrows")

    handle = _handle(p)
    amount = _uint(p, "amount")
    if amount <= 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "escrow amount must be > 0")
    _uint(p, "timelock")
    for key in _ADDRESS_FIELDS:
        _bytes(p, key, ADDRESS_SIZE)

    if handle in state.escrows:
        raise SpecError(ErrorCode.ESCROW_EXISTS, "escrow already registered")


def _apply_create(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    ns.escrows[handle] = EscrowRecord(
        amount=_uint(p, "amount"),
        timelock=_uint(p, "timelock"),
        escrower_reserve=_bytes(p, "escrower_reserve"),
        escrower_trade=_bytes(p, "escrower_trade"),
        escrower_refund=_bytes(p, "escrower_refund"),
        payee_reserve=_bytes(p, "payee_reserve"),
        payee_trade=_bytes(p, "payee_trade"),
        state=EscrowState.UNFUNDED,
    )
    _emit(ns, "Opened", handle, amount=_uint(p, "amount"), timelock=_uint(p, "timelock"))
    return ns


# --- OPEN_ESCROW ---

def _verify_open(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.UNFUNDED)
    holder = bind_asset_holder(state, _handle(p), state.library)
    if holder.balance() < escrow.amount:
        raise SpecError(ErrorCode.INSUFFICIENT_FUNDING, "escrow not fully funded")


def _apply_open(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    escrow = ns.escrows[handle]
    holder = bind_asset_holder(ns, handle, ns.library)

    surplus = holder.balance() - escrow.amount
    returned = 0
    if surplus > 0:
        if holder.send(escrow.escrower_reserve, surplus):
            returned = surplus
        else:
            logger.warning("could not return %d surplus for escrow %s", surplus, handle.hex())

    escrow.state = EscrowState.OPEN
    _emit(ns, "Funded", handle, amount=escrow.amount, surplus_returned=returned)
    return ns


# --- CASHOUT ---

def _verify_cashout(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.OPEN)

    amount_traded = _uint(p, "amount_traded")
    if amount_traded > escrow.amount:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "amount traded exceeds escrow amount")

    digest = cashout_digest(_handle(p), amount_traded)
    _require_signature(digest, _bytes(p, "escrower_signature"), escrow.escrower_trade, "escrower trade")
    _require_signature(digest, _bytes(p, "payee_signature"), escrow.payee_trade, "payee trade")


def _close_with_split(ns: ChainState, handle: bytes, amount_traded: int, reason: CloseReason) -> None:
    escrow = ns.escrows[handle]
    holder = bind_asset_holder(ns, handle, ns.library)
    _credit(escrow, Party.PAYEE, amount_traded)
    _credit(escrow, Party.ESCROWER, escrow.amount - amount_traded)
    _close(ns, handle, escrow, reason)
    _push(ns, holder, handle, escrow, Party.ESCROWER)
    _push(ns, holder, handle, escrow, Party.PAYEE)


def _apply_cashout(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    _close_with_split(ns, _handle(p), _uint(p, "amount_traded"), CloseReason.CASHOUT)
    return ns


# --- REFUND ---

def _verify_refund(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.OPEN)

    if state.global_state.timestamp < escrow.timelock:
        raise SpecError(ErrorCode.TIMELOCK_NOT_REACHED, "escrow timelock not reached")

    amount_traded = _uint(p, "amount_traded")
    if amount_traded > escrow.amount:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "amount traded exceeds escrow amount")

    digest = refund_digest(_handle(p), amount_traded)
    _require_signature(digest, _bytes(p, "escrower_signature"), escrow.escrower_refund, "escrower refund")


def _apply_refund(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    _close_with_split(ns, _handle(p), _uint(p, "amount_traded"), CloseReason.REFUND)
    return ns


# --- FORCE_REFUND ---

def force_refund_timelock(escrow: EscrowRecord) -> int:
    return escrow.timelock + FORCE_REFUND_GRACE


def _verify_force_refund(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.OPEN)
    if state.global_state.timestamp < force_refund_timelock(escrow):
        raise SpecError(
            ErrorCode.FORCE_REFUND_TIMELOCK_NOT_REACHED,
            "escrow force refund timelock not reached",
        )


def _apply_force_refund(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    escrow = ns.escrows[handle]
    holder = bind_asset_holder(ns, handle, ns.library)

    _credit(escrow, Party.ESCROWER, escrow.amount)
    _close(ns, handle, escrow, CloseReason.FORCE_REFUND)
    # Sweep everything the holder has, including value sent after open
    _push(ns, holder, handle, escrow, Party.ESCROWER, send_amount=max(holder.balance(), escrow.amount))
    return ns


# --- POST_PUZZLE ---

def _verify_post_puzzle(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.OPEN)

    prev_amount_traded = _uint(p, "prev_amount_traded")
    trade_amount = _uint(p, "trade_amount")
    if prev_amount_traded + trade_amount > escrow.amount:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "traded amounts exceed escrow amount")
    puzzle = _bytes(p, "puzzle_hash", HASH_SIZE)
    puzzle_timelock = _uint(p, "puzzle_timelock")

    digest = puzzle_digest(_handle(p), prev_amount_traded, trade_amount, puzzle, puzzle_timelock)
    _require_signature(digest, _bytes(p, "escrower_signature"), escrow.escrower_trade, "escrower trade")
    _require_signature(digest, _bytes(p, "payee_signature"), escrow.payee_trade, "payee trade")


def _apply_post_puzzle(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    escrow = ns.escrows[handle]
    prev_amount_traded = _uint(p, "prev_amount_traded")
    trade_amount = _uint(p, "trade_amount")
    puzzle = _bytes(p, "puzzle_hash")
    puzzle_timelock = _uint(p, "puzzle_timelock")

    _credit(escrow, Party.PAYEE, prev_amount_traded)
    _credit(escrow, Party.ESCROWER, escrow.amount - prev_amount_traded - trade_amount)

    sighash = puzzle_digest(handle, prev_amount_traded, trade_amount, puzzle, puzzle_timelock)
    ns.puzzles[handle] = PuzzleRecord(
        trade_amount=trade_amount,
        puzzle_hash=puzzle,
        puzzle_timelock=puzzle_timelock,
        authorizing_sighash=sighash,
    )
    escrow.state = EscrowState.PUZZLE_POSTED
    _emit(
        ns,
        "PuzzlePosted",
        handle,
        puzzle_hash=puzzle,
        trade_amount=trade_amount,
        puzzle_timelock=puzzle_timelock,
        sighash=sighash,
    )
    return ns


# --- SOLVE_PUZZLE ---

def _verify_solve_puzzle(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.PUZZLE_POSTED)
    puzzle = state.puzzles.get(_handle(p))
    if puzzle is None:
        raise SpecError(ErrorCode.INTERNAL_ERROR, "puzzle slot missing for posted escrow")
    if puzzle_hash(_bytes(p, "preimage")) != puzzle.puzzle_hash:
        raise SpecError(ErrorCode.INVALID_PREIMAGE, "preimage does not match puzzle")


def _apply_solve_puzzle(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    escrow = ns.escrows[handle]
    puzzle = ns.puzzles[handle]

    _credit(escrow, Party.PAYEE, puzzle.trade_amount)
    _emit(
        ns,
        "PreimageRevealed",
        handle,
        preimage=_bytes(p, "preimage"),
        puzzle_hash=puzzle.puzzle_hash,
        sighash=puzzle.authorizing_sighash,
    )
    _close(ns, handle, escrow, CloseReason.PUZZLE_SOLVED)
    return ns


# --- REFUND_PUZZLE ---

def _verify_refund_puzzle(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    _require_state(escrow, EscrowState.PUZZLE_POSTED)
    puzzle = state.puzzles.get(_handle(p))
    if puzzle is None:
        raise SpecError(ErrorCode.INTERNAL_ERROR, "puzzle slot missing for posted escrow")
    if state.global_state.timestamp < puzzle.puzzle_timelock:
        raise SpecError(ErrorCode.PUZZLE_TIMELOCK_NOT_REACHED, "puzzle timelock not reached")


def _apply_refund_puzzle(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    escrow = ns.escrows[handle]
    _credit(escrow, Party.ESCROWER, ns.puzzles[handle].trade_amount)
    _close(ns, handle, escrow, CloseReason.PUZZLE_REFUND)
    return ns


# --- WITHDRAW ---

def _verify_withdraw(state: ChainState, call: Call, p: dict) -> None:
    escrow = _escrow(state, p)
    if _credited(escrow, _party(p)) <= 0:
        raise SpecError(ErrorCode.NOTHING_TO_WITHDRAW, "no balance to withdraw")


def _apply_withdraw(state: ChainState, call: Call, p: dict) -> ChainState:
    ns = deepcopy(state)
    handle = _handle(p)
    escrow = ns.escrows[handle]
    party = _party(p)
    holder = bind_asset_holder(ns, handle, ns.library)
    if not _push(ns, holder, handle, escrow, party):
        raise SpecError(ErrorCode.TRANSFER_FAILED, "asset holder transfer failed")
    return ns
