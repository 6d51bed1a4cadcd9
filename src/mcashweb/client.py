"""
McashWeb - the client facade.

Holds the three providers (full node, solidity node, event server), the
default account and block, and the components built on top of them:
``mcash`` (queries, signing, broadcasting), ``transaction_builder``,
``event`` and ``plugin``.

Example::

    client = McashWeb(full_host="http://127.0.0.1:13399", private_key=key)
    client.mcash.get_balance()
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Optional, Union

from dotenv import load_dotenv

from . import utils
from .contract.contract import Contract
from .errors import ValidationError
from .pneuma.builder import TransactionBuilder
from .pneuma.event import EventQuery, EventServer
from .pneuma.providers import (
    HttpProvider,
    get_event_server_url,
    get_full_node_url,
    get_solidity_node_url,
)
from .pneuma.trx import Mcash
from .plugin import Plugin
from .sigil import address as _address
from .sigil.keys import generate_account
from .version import __version__

logger = logging.getLogger(__name__)

ProviderLike = Union[str, HttpProvider]

FULL_NODE_STATUS_PAGE = "wallet/getnowblock"
SOLIDITY_NODE_STATUS_PAGE = "walletsolidity/getnowblock"
EVENT_SERVER_HEALTH_CHECK = "healthcheck"


class AddressHelpers:
    """Address conversions, also reachable as ``McashWeb.address``."""

    to_hex = staticmethod(_address.to_hex)
    from_hex = staticmethod(_address.from_hex)
    from_private_key = staticmethod(_address.from_private_key)


def _provider(value: ProviderLike, kind: str) -> HttpProvider:
    if isinstance(value, str):
        return HttpProvider(value)
    if not isinstance(value, HttpProvider):
        raise ValidationError(f"Invalid {kind} provided")
    return value


class McashWeb:
    version = __version__
    address = AddressHelpers

    sha3 = staticmethod(utils.sha3)
    to_hex = staticmethod(utils.to_hex)
    to_utf8 = staticmethod(utils.to_utf8)
    from_utf8 = staticmethod(utils.from_utf8)
    to_ascii = staticmethod(utils.to_ascii)
    from_ascii = staticmethod(utils.from_ascii)
    to_decimal = staticmethod(utils.to_decimal)
    from_decimal = staticmethod(utils.from_decimal)
    to_matoshi = staticmethod(utils.to_matoshi)
    from_matoshi = staticmethod(utils.from_matoshi)
    is_address = staticmethod(_address.is_address)

    def __init__(
        self,
        full_node: Optional[ProviderLike] = None,
        solidity_node: Optional[ProviderLike] = None,
        event_server: Optional[ProviderLike] = None,
        private_key: Optional[str] = None,
        full_host: Optional[str] = None,
    ) -> None:
        """
        Args:
            full_node: Full node URL or provider
            solidity_node: Solidity (confirmed state) node URL or provider
            event_server: Event server URL or provider; optional
            private_key: Default signing key
            full_host: One URL for all three services where not given
        """
        full_node = full_node or full_host
        if not full_node:
            raise ValidationError("Invalid full node provided")

        self._listeners: dict[str, list[Callable[[Any], Any]]] = defaultdict(list)
        self.default_block: Union[int, str, None] = None
        self.default_private_key: Optional[str] = None
        self.default_address: dict[str, Optional[str]] = {"hex": None, "base58": None}
        self.event_server: Optional[HttpProvider] = None

        self.event = EventServer(self)
        self.transaction_builder = TransactionBuilder(self)
        self.mcash = Mcash(self)
        self.plugin = Plugin(self)

        self.set_full_node(full_node)
        self.set_solidity_node(solidity_node or full_host or full_node)
        self.set_event_server(event_server or full_host)

        if private_key:
            self.set_private_key(private_key)

    def __repr__(self) -> str:
        return f"McashWeb(full_node={self.full_node.host!r}, address={self.default_address['base58']!r})"

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "McashWeb":
        """
        Build a client from ``MCASH_*`` environment variables.

        Args:
            env_path: Optional .env file loaded first (existing variables win)
        """
        if env_path is not None:
            load_dotenv(env_path, override=False)
        else:
            load_dotenv(override=False)
        return cls(
            full_node=get_full_node_url(),
            solidity_node=get_solidity_node_url(),
            event_server=get_event_server_url(),
            private_key=os.environ.get("MCASH_PRIVATE_KEY") or None,
        )

    # ============ Events ============

    def on(self, event: str, listener: Callable[[Any], Any]) -> None:
        """Subscribe to ``privateKeyChanged`` or ``addressChanged``."""
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Callable[[Any], Any]) -> None:
        if listener in self._listeners.get(event, []):
            self._listeners[event].remove(listener)

    def emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            listener(payload)

    # ============ Providers ============

    def set_full_node(self, full_node: ProviderLike) -> None:
        self.full_node = _provider(full_node, "full node")
        self.full_node.set_status_page(FULL_NODE_STATUS_PAGE)

    def set_solidity_node(self, solidity_node: ProviderLike) -> None:
        self.solidity_node = _provider(solidity_node, "solidity node")
        self.solidity_node.set_status_page(SOLIDITY_NODE_STATUS_PAGE)

    def set_event_server(
        self,
        event_server: Optional[ProviderLike] = None,
        health_check: str = EVENT_SERVER_HEALTH_CHECK,
    ) -> None:
        """Set (or with None, remove) the event server."""
        if not event_server:
            self.event_server = None
            return
        self.event_server = _provider(event_server, "event server")
        self.event_server.set_status_page(health_check)

    def current_providers(self) -> dict[str, Optional[HttpProvider]]:
        return {
            "full_node": self.full_node,
            "solidity_node": self.solidity_node,
            "event_server": self.event_server,
        }

    def is_connected(self) -> dict[str, bool]:
        return {
            "full_node": self.full_node.is_connected(),
            "solidity_node": self.solidity_node.is_connected(),
            "event_server": bool(self.event_server and self.event_server.is_connected()),
        }

    def close(self) -> None:
        for provider in {id(p): p for p in self.current_providers().values() if p}.values():
            provider.close()

    # ============ Defaults ============

    def set_default_block(self, block_id: Union[int, str, None] = None) -> None:
        """Default block for queries: None, ``latest``, ``earliest`` or a number."""
        if block_id in (None, "latest", "earliest") or (utils.is_integer(block_id) and block_id == 0):
            self.default_block = block_id
            return
        if not utils.is_integer(block_id):
            raise ValidationError("Invalid block ID provided")
        self.default_block = abs(block_id)

    def set_private_key(self, private_key: str) -> None:
        address = _address.from_private_key(private_key)
        if address is None:
            raise ValidationError("Invalid private key provided")
        self.set_address(address)
        self.default_private_key = _address.normalize_private_key(private_key)
        self.emit("privateKeyChanged", self.default_private_key)

    def set_address(self, address: str) -> None:
        """Set the default address; a default key of another account is dropped."""
        if not _address.is_address(address):
            raise ValidationError("Invalid address provided")
        hex_address = _address.to_hex(address)
        base58 = _address.from_hex(hex_address)
        if self.default_private_key and _address.from_private_key(self.default_private_key) != base58:
            logger.debug("Default private key cleared: it does not own %s", base58)
            self.default_private_key = None
        self.default_address = {"hex": hex_address, "base58": base58}
        self.emit("addressChanged", dict(self.default_address))

    # ============ Shortcuts ============

    def contract(self, abi: Union[str, list[dict[str, Any]], None] = None, address: Optional[str] = None) -> Contract:
        return Contract(self, abi, address)

    def get_event_result(self, contract_address: str, query: Optional[EventQuery] = None) -> list[dict[str, Any]]:
        return self.event.get_events_by_contract_address(contract_address, query)

    def get_event_by_transaction_id(self, transaction_id: str, raw_response: bool = False) -> list[dict[str, Any]]:
        return self.event.get_events_by_transaction_id(transaction_id, raw_response)

    @staticmethod
    def create_account() -> dict[str, Any]:
        return generate_account()
