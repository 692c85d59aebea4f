"""Asset holders: the custody accounts behind each escrow handle.

The library only ever sees ``balance()`` and ``send(recipient, amount)``.
Native ETH and ERC20 holders differ only in which ledger they read, so the
library code is identical for both kinds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .config import NATIVE_ASSET
from .errors import ErrorCode, SpecError
from .types import AccountState, AssetHolderRecord, AssetKind, ChainState


def _account(state: ChainState, address: bytes) -> AccountState:
    acct = state.accounts.get(address)
    if acct is None:
        acct = AccountState(address=address)
        state.accounts[address] = acct
    return acct


def balance_of(state: ChainState, address: bytes, asset: bytes = NATIVE_ASSET) -> int:
    acct = state.accounts.get(address)
    if acct is None:
        return 0
    if asset == NATIVE_ASSET:
        return acct.balance
    return acct.tokens.get(asset, 0)


def move_value(state: ChainState, source: bytes, destination: bytes, asset: bytes, amount: int) -> bool:
    """Move ``amount`` of ``asset``; False when the ledger refuses the move."""
    if amount < 0:
        return False
    if amount == 0:
        return True
    if balance_of(state, source, asset) < amount:
        return False
    receiver = _account(state, destination)
    if receiver.rejects_transfers:
        return False

    sender = state.accounts[source]
    if asset == NATIVE_ASSET:
        sender.balance -= amount
        receiver.balance += amount
    else:
        sender.tokens[asset] -= amount
        receiver.tokens[asset] = receiver.tokens.get(asset, 0) + amount
    return True


class AssetHolder(ABC):
    """Custody account bound to one escrow handle."""

    kind: AssetKind

    def __init__(self, state: ChainState, record: AssetHolderRecord):
        self.state = state
        self.address = record.address
        self.record = record

    @property
    @abstractmethod
    def asset(self) -> bytes:
        """Asset id this holder keeps in custody."""

    def balance(self) -> int:
        return balance_of(self.state, self.address, self.asset)

    def send(self, recipient: bytes, amount: int) -> bool:
        return move_value(self.state, self.address, recipient, self.asset, amount)


class EthAssetHolder(AssetHolder):
    kind = AssetKind.ETH

    @property
    def asset(self) -> bytes:
        return NATIVE_ASSET


class Erc20AssetHolder(AssetHolder):
    kind = AssetKind.ERC20

    @property
    def asset(self) -> bytes:
        return self.record.token


_HOLDER_CLASSES = {
    AssetKind.ETH: EthAssetHolder,
    AssetKind.ERC20: Erc20AssetHolder,
}


def bind_asset_holder(state: ChainState, handle: bytes, caller: bytes) -> AssetHolder:
    """Return the holder for ``handle``; only the library may move its funds."""
    if caller != state.library:
        raise SpecError(ErrorCode.NOT_LIBRARY, "only the escrow library may use asset holders")
    record = state.asset_holders.get(handle)
    if record is None:
        raise SpecError(ErrorCode.ESCROW_NOT_FOUND, "no asset holder for escrow")
    return _HOLDER_CLASSES[record.kind](state, record)
