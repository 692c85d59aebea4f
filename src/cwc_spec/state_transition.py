"""State transition entrypoints for the CWC escrow specs."""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import replace
from typing import Optional

from .calls import core as calls_core
from .calls import escrow as calls_escrow
from .calls import factory as calls_factory
from .config import ADDRESS_SIZE
from .errors import ErrorCode, SpecError
from .types import Call, CallType, ChainState

logger = logging.getLogger(__name__)


class TransitionResult:
    """Thin wrapper for verify/apply results."""

    def __init__(self, ok: bool, error: Optional[SpecError] = None):
        self.ok = ok
        self.error = error

    @classmethod
    def success(cls) -> "TransitionResult":
        return cls(True, None)

    @classmethod
    def failure(cls, error: SpecError) -> "TransitionResult":
        return cls(False, error)


def _dispatch_verify(state: ChainState, call: Call) -> None:
    ct = call.call_type
    if ct == CallType.TRANSFER:
        return calls_core.verify(state, call)
    if ct in calls_factory.FACTORY_CALLS:
        return calls_factory.verify(state, call)
    if ct in calls_escrow.ESCROW_CALLS:
        return calls_escrow.verify(state, call)

    raise SpecError(ErrorCode.NOT_IMPLEMENTED, f"verify not implemented for {call.call_type}")


def _dispatch_apply(state: ChainState, call: Call) -> ChainState:
    ct = call.call_type
    if ct == CallType.TRANSFER:
        return calls_core.apply(state, call)
    if ct in calls_factory.FACTORY_CALLS:
        return calls_factory.apply(state, call)
    if ct in calls_escrow.ESCROW_CALLS:
        return calls_escrow.apply(state, call)

    raise SpecError(ErrorCode.NOT_IMPLEMENTED, f"apply not implemented for {call.call_type}")


def _verify_common(state: ChainState, call: Call) -> None:
    if not isinstance(call.call_type, CallType):
        raise SpecError(ErrorCode.INVALID_TYPE, "unknown call type")
    if not isinstance(call.sender, bytes) or len(call.sender) != ADDRESS_SIZE:
        raise SpecError(ErrorCode.INVALID_ADDRESS, "sender must be a 20-byte address")


def verify_call(state: ChainState, call: Call) -> TransitionResult:
    """Guard checks for a single call; never mutates ``state``."""
    try:
        _verify_common(state, call)
        _dispatch_verify(state, call)
        return TransitionResult.success()
    except SpecError as exc:
        return TransitionResult.failure(exc)


def apply_call(state: ChainState, call: Call) -> tuple[ChainState, TransitionResult]:
    """Apply a call after verification.

    Failed-call semantics: whether a guard fails or the apply step raises
    (e.g. a withdraw whose transfer is refused), the returned state is the
    unchanged pre-state.
    """
    try:
        _verify_common(state, call)
        _dispatch_verify(state, call)
    except SpecError as exc:
        logger.debug("%s rejected: %s", call.call_type, exc)
        return state, TransitionResult.failure(exc)

    working = deepcopy(state)
    try:
        working = _dispatch_apply(working, call)
    except SpecError as exc:
        logger.debug("%s failed during apply: %s", call.call_type.value, exc)
        return state, TransitionResult.failure(exc)

    logger.debug("%s applied", call.call_type.value)
    return working, TransitionResult.success()


def apply_block(
    state: ChainState, calls: list[Call], timestamp: Optional[int] = None
) -> tuple[ChainState, TransitionResult]:
    """Apply a block worth of calls in order (block-atomic semantics).

    All calls observe the block ``timestamp`` (defaults to the current one).
    If any call fails, the entire block is rejected and the state is
    unchanged.
    """
    ts = state.global_state.timestamp if timestamp is None else timestamp
    if ts < state.global_state.timestamp:
        return state, TransitionResult.failure(
            SpecError(ErrorCode.INVALID_TIMESTAMP, "block timestamp goes backwards")
        )

    working = replace(state, global_state=replace(state.global_state, timestamp=ts))
    for call in calls:
        working, result = apply_call(working, call)
        if not result.ok:
            return state, result

    working = replace(
        working,
        global_state=replace(
            working.global_state, block_height=working.global_state.block_height + 1
        ),
    )
    return working, TransitionResult.success()
