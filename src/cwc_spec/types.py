"""Core types for the CWC escrow specs.

The chain is modelled only as far as the escrow library can observe it:
native and token balances per account, a block timestamp, the factory and
library identities, and the library's own escrow/puzzle storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

from .config import ZERO_ADDRESS


class EscrowState(IntEnum):
    NONE = 0
    UNFUNDED = 1
    OPEN = 2
    PUZZLE_POSTED = 3
    CLOSED = 4


class MessageTypeId(IntEnum):
    NONE = 0
    CASHOUT = 1
    PUZZLE = 2
    REFUND = 3


class AssetKind(Enum):
    ETH = "eth"
    ERC20 = "erc20"


class Party(Enum):
    ESCROWER = "escrower"
    PAYEE = "payee"


class CloseReason(Enum):
    CASHOUT = "cashout"
    REFUND = "refund"
    FORCE_REFUND = "force_refund"
    PUZZLE_SOLVED = "puzzle_solved"
    PUZZLE_REFUND = "puzzle_refund"


class CallType(Enum):
    TRANSFER = "transfer"
    CREATE_ETH_ESCROW = "create_eth_escrow"
    CREATE_ERC20_ESCROW = "create_erc20_escrow"
    CREATE_ESCROW = "create_escrow"
    OPEN_ESCROW = "open_escrow"
    CASHOUT = "cashout"
    REFUND = "refund"
    FORCE_REFUND = "force_refund"
    POST_PUZZLE = "post_puzzle"
    SOLVE_PUZZLE = "solve_puzzle"
    REFUND_PUZZLE = "refund_puzzle"
    WITHDRAW = "withdraw"


@dataclass
class Call:
    """One invocation of a library, factory or transfer entry point."""

    call_type: CallType
    sender: bytes
    payload: dict[str, Any] = field(default_factory=dict)


# --- Escrow parameters / records ---


@dataclass(frozen=True)
class EscrowParams:
    amount: int
    timelock: int
    escrower_reserve: bytes
    escrower_trade: bytes
    escrower_refund: bytes
    payee_reserve: bytes
    payee_trade: bytes


@dataclass
class EscrowRecord:
    amount: int
    timelock: int
    escrower_reserve: bytes
    escrower_trade: bytes
    escrower_refund: bytes
    payee_reserve: bytes
    payee_trade: bytes
    state: EscrowState = EscrowState.UNFUNDED
    # Credited but not yet transferred out
    escrower_balance: int = 0
    payee_balance: int = 0
    # Already transferred out through the asset holder
    escrower_paid: int = 0
    payee_paid: int = 0
    close_reason: Optional[CloseReason] = None

    def settled(self, party: Party) -> int:
        """Value attributed to ``party``, whether withdrawn or not."""
        if party == Party.ESCROWER:
            return self.escrower_balance + self.escrower_paid
        return self.payee_balance + self.payee_paid


@dataclass
class PuzzleRecord:
    trade_amount: int
    puzzle_hash: bytes
    puzzle_timelock: int
    authorizing_sighash: bytes


@dataclass
class AssetHolderRecord:
    address: bytes
    kind: AssetKind
    token: bytes = ZERO_ADDRESS


# --- Chain ---


@dataclass
class AccountState:
    address: bytes
    balance: int = 0
    tokens: dict[bytes, int] = field(default_factory=dict)
    # Contract accounts that revert on incoming value
    rejects_transfers: bool = False


@dataclass
class GlobalState:
    block_height: int = 0
    timestamp: int = 0


@dataclass
class Event:
    name: str
    handle: bytes
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChainState:
    accounts: dict[bytes, AccountState] = field(default_factory=dict)
    global_state: GlobalState = field(default_factory=GlobalState)
    factory: bytes = ZERO_ADDRESS
    library: bytes = ZERO_ADDRESS
    escrows: dict[bytes, EscrowRecord] = field(default_factory=dict)
    puzzles: dict[bytes, PuzzleRecord] = field(default_factory=dict)
    asset_holders: dict[bytes, AssetHolderRecord] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
