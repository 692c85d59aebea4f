"""Developer command line for the CWC escrow specs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import click

from .calls.factory import escrow_address_for
from .config import ADDRESS_SIZE, HASH_SIZE, ZERO_ADDRESS
from .crypto.hash_algorithms import puzzle_hash
from .encoding import (
    encode_cashout_message,
    encode_puzzle_message,
    encode_refund_message,
    signed_message_digest,
)
from .errors import SpecError
from .state_digest import compute_state_digest
from .types import AssetKind, ChainState, EscrowParams

logger = logging.getLogger(__name__)


def _parse_hex(value: str, size: Optional[int], name: str) -> bytes:
    v = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        raw = bytes.fromhex(v)
    except ValueError:
        raise click.BadParameter(f"{name} is not valid hex") from None
    if size is not None and len(raw) != size:
        raise click.BadParameter(f"{name} must be {size} bytes, got {len(raw)}")
    return raw


def _address(name: str):
    def _callback(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[bytes]:
        if value is None:
            return None
        return _parse_hex(value, ADDRESS_SIZE, name)

    return _callback


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """Inspect CWC escrow messages, handles and states."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


@main.command()
@click.argument("kind", type=click.Choice(["cashout", "refund", "puzzle"]))
@click.option("--escrow", required=True, callback=_address("escrow"), help="Escrow handle (hex)")
@click.option("--amount-traded", type=int, default=0, show_default=True)
@click.option("--prev-amount-traded", type=int, default=0, show_default=True)
@click.option("--trade-amount", type=int, default=0, show_default=True)
@click.option("--puzzle-hash", "puzzle", default=None, help="SHA-256 puzzle hash (hex)")
@click.option("--puzzle-timelock", type=int, default=0, show_default=True)
def message(
    kind: str,
    escrow: bytes,
    amount_traded: int,
    prev_amount_traded: int,
    trade_amount: int,
    puzzle: Optional[str],
    puzzle_timelock: int,
) -> None:
    """Print the packed message and the digest its signers sign."""
    try:
        if kind == "cashout":
            msg = encode_cashout_message(escrow, amount_traded)
        elif kind == "refund":
            msg = encode_refund_message(escrow, amount_traded)
        else:
            if puzzle is None:
                raise click.UsageError("--puzzle-hash is required for puzzle messages")
            msg = encode_puzzle_message(
                escrow,
                prev_amount_traded,
                trade_amount,
                _parse_hex(puzzle, HASH_SIZE, "puzzle hash"),
                puzzle_timelock,
            )
        digest = signed_message_digest(msg)
    except SpecError as exc:
        raise click.ClickException(f"{exc.code.name}: {exc.message}") from None

    click.echo(f"message: {msg.hex()}")
    click.echo(f"digest:  {digest.hex()}")


@main.command("puzzle-hash")
@click.argument("preimage")
@click.option("--hex", "as_hex", is_flag=True, help="Treat PREIMAGE as hex instead of UTF-8 text")
def puzzle_hash_cmd(preimage: str, as_hex: bool) -> None:
    """Print the SHA-256 puzzle hash of PREIMAGE."""
    raw = _parse_hex(preimage, None, "preimage") if as_hex else preimage.encode("utf-8")
    click.echo(puzzle_hash(raw).hex())


@main.command("escrow-address")
@click.option("--factory", required=True, callback=_address("factory"))
@click.option("--library", required=True, callback=_address("library"))
@click.option("--token", default=None, callback=_address("token"), help="ERC20 token; omit for ETH")
@click.option("--amount", type=int, required=True)
@click.option("--timelock", type=int, required=True)
@click.option("--escrower-reserve", required=True, callback=_address("escrower reserve"))
@click.option("--escrower-trade", required=True, callback=_address("escrower trade"))
@click.option("--escrower-refund", required=True, callback=_address("escrower refund"))
@click.option("--payee-reserve", required=True, callback=_address("payee reserve"))
@click.option("--payee-trade", required=True, callback=_address("payee trade"))
def escrow_address(
    factory: bytes,
    library: bytes,
    token: Optional[bytes],
    amount: int,
    timelock: int,
    escrower_reserve: bytes,
    escrower_trade: bytes,
    escrower_refund: bytes,
    payee_reserve: bytes,
    payee_trade: bytes,
) -> None:
    """Derive the escrow handle a factory will deploy for these parameters."""
    params = EscrowParams(
        amount=amount,
        timelock=timelock,
        escrower_reserve=escrower_reserve,
        escrower_trade=escrower_trade,
        escrower_refund=escrower_refund,
        payee_reserve=payee_reserve,
        payee_trade=payee_trade,
    )
    state = ChainState(factory=factory, library=library)
    kind = AssetKind.ETH if token is None else AssetKind.ERC20
    try:
        handle = escrow_address_for(state, params, kind, token or ZERO_ADDRESS)
    except SpecError as exc:
        raise click.ClickException(f"{exc.code.name}: {exc.message}") from None
    click.echo(handle.hex())


@main.command()
@click.argument("state_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def digest(state_file: Path) -> None:
    """Print the canonical digest of a JSON state (or fixture case) file."""
    data = json.loads(state_file.read_text())
    if "post_state" in data:
        data = data["post_state"]
    logger.debug("computing digest for %s", state_file)
    click.echo(compute_state_digest(data))


if __name__ == "__main__":
    main()
