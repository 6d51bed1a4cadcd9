"""
McashWeb CLI

Command-line access to a Mcash node.

Commands:
  account new  - Generate a keypair (optionally saved to ~/.mcashweb/.env)
  address      - Convert / validate an address
  balance      - Show an account balance
  block        - Show a block
  send         - Transfer MCASH
  call         - Call a pure/view contract function
  events       - List contract events
"""

from __future__ import annotations

import functools
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Optional

import click

from .client import McashWeb
from .contract.method import MethodOptions
from .errors import McashWebError
from .pneuma.event import EventQuery
from .sigil.address import from_hex, is_address, to_hex
from .sigil.keys import generate_account, load_private_key, save_private_key
from .utils import from_matoshi, to_matoshi
from .version import __version__


# ============ Helpers ============


def _fail(message: str, exit_code: int = 1) -> None:
    click.secho(f"ERROR: {message}", fg="red")
    sys.exit(exit_code)


def _handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Print SDK errors in red and exit with their exit code."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except McashWebError as exc:
            _fail(str(exc), exc.exit_code)

    return wrapper


def _client(ctx: click.Context, with_key: bool = False) -> McashWeb:
    full_host: Optional[str] = ctx.obj.get("full_host")
    private_key = None
    if with_key:
        try:
            private_key = load_private_key()
        except ValueError as exc:
            _fail(str(exc))
    if full_host:
        return McashWeb(full_host=full_host, private_key=private_key)
    client = McashWeb.from_env()
    if private_key:
        client.set_private_key(private_key)
    return client


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ============ Main CLI Group ============


@click.group()
@click.version_option(version=__version__, prog_name="mcashweb")
@click.option("--full-host", envvar="MCASH_FULL_HOST", help="Node URL used for all services")
@click.option("--verbose", "-v", is_flag=True, help="Log requests")
@click.pass_context
def cli(ctx: click.Context, full_host: Optional[str], verbose: bool) -> None:
    """McashWeb - Mcash node client."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["full_host"] = full_host


# ============ Account ============


@cli.group()
def account() -> None:
    """Manage local accounts."""


@account.command("new")
@click.option("--save", is_flag=True, help="Store the key as MCASH_PRIVATE_KEY in ~/.mcashweb/.env")
@click.option("--env-path", type=click.Path(dir_okay=False, path_type=Path), help="Alternative .env file")
def account_new(save: bool, env_path: Optional[Path]) -> None:
    """Generate a new keypair."""
    generated = generate_account()
    click.echo(f"Address:     {generated['address']['base58']}")
    click.echo(f"Hex:         {generated['address']['hex']}")
    click.echo(f"Public key:  {generated['public_key']}")
    if save:
        path = save_private_key(generated["private_key"], env_path)
        click.secho(f"Private key saved to {path}", fg="green")
    else:
        click.echo(f"Private key: {generated['private_key']}")
        click.secho("Store the private key safely; it is not saved.", fg="yellow")


# ============ Queries ============


@cli.command()
@click.argument("value")
def address(value: str) -> None:
    """Show both forms of an address."""
    if not is_address(value):
        _fail("Invalid address provided")
    click.echo(f"Base58: {from_hex(to_hex(value))}")
    click.echo(f"Hex:    {to_hex(value)}")


@cli.command()
@click.argument("account_address", required=False)
@click.pass_context
@_handle_errors
def balance(ctx: click.Context, account_address: Optional[str]) -> None:
    """Show the balance of ACCOUNT_ADDRESS (default: the configured key)."""
    client = _client(ctx, with_key=account_address is None)
    matoshi = client.mcash.get_balance(account_address)
    click.echo(f"{from_matoshi(matoshi).normalize():f} MCASH ({matoshi} matoshi)")


@cli.command()
@click.argument("block_id", required=False, default="latest")
@click.pass_context
@_handle_errors
def block(ctx: click.Context, block_id: str) -> None:
    """Show a block by number, hash, 'latest' or 'earliest'."""
    client = _client(ctx)
    _echo_json(client.mcash.get_block(int(block_id) if block_id.isdigit() else block_id))


# ============ Transactions ============


@cli.command()
@click.argument("to")
@click.argument("amount")
@click.option("--memo", default="", help="Transfer memo")
@click.pass_context
@_handle_errors
def send(ctx: click.Context, to: str, amount: str, memo: str) -> None:
    """Send AMOUNT MCASH to TO."""
    try:
        matoshi = to_matoshi(Decimal(amount))
    except (InvalidOperation, McashWebError, ValueError):
        _fail(f"Invalid amount: {amount}")
    client = _client(ctx, with_key=True)
    result = client.mcash.send_transaction(to, matoshi, memo=memo)
    if not result.get("result"):
        _fail(f"Broadcast rejected: {json.dumps(result)}")
    click.secho(f"Sent {amount} MCASH to {to}", fg="green")
    click.echo(f"Transaction: {result['transaction']['txID']}")


# ============ Contracts ============


@cli.command()
@click.argument("contract_address")
@click.argument("function")
@click.option("--abi", "abi_path", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Contract ABI JSON file")
@click.option("--args", "args_json", default="[]", help="JSON array of arguments")
@click.pass_context
@_handle_errors
def call(ctx: click.Context, contract_address: str, function: str, abi_path: Path, args_json: str) -> None:
    """Call a pure/view FUNCTION (name, selector or signature)."""
    try:
        args = json.loads(args_json)
    except json.JSONDecodeError as exc:
        _fail(f"--args is not valid JSON: {exc}")
    if not isinstance(args, list):
        _fail("--args must be a JSON array")

    client = _client(ctx)
    contract = client.contract(abi_path.read_text(encoding="utf-8"), contract_address)
    # Without a configured account the contract is its own caller
    issuer = client.default_address["hex"] or contract_address
    result = contract.method(function).call(*args, options=MethodOptions(from_address=issuer))
    _echo_json(result.asdict() if hasattr(result, "asdict") and result.keys() else result)


@cli.command()
@click.argument("contract_address")
@click.option("--event-name", help="Only events with this name")
@click.option("--size", default=20, show_default=True, help="Page size (max 200)")
@click.option("--page", default=1, show_default=True)
@click.pass_context
@_handle_errors
def events(ctx: click.Context, contract_address: str, event_name: Optional[str], size: int, page: int) -> None:
    """List events emitted by CONTRACT_ADDRESS."""
    client = _client(ctx)
    query = EventQuery(event_name=event_name, size=size, page=page)
    found = client.event.get_events_by_contract_address(contract_address, query)
    if not found:
        click.echo("No events.")
        return
    _echo_json(found)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
