"""
Smart contract handle.

A ``Contract`` holds an ABI and (once deployed or loaded) an address. Its
methods live in an explicit registry keyed by name, canonical selector
(``transfer(address,uint256)``) and 4-byte signature (``a9059cbb``)::

    token = client.contract().at("M...")
    token.method("balanceOf").call(owner)
    token["transfer(address,uint256)"].send(to, 100)
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Optional, Union

from ..errors import AbiError, RpcError, StateError, ValidationError
from ..pneuma.abi import load_abi
from ..pneuma.builder import DeployOptions
from ..pneuma.event import EventCallback, EventListener, EventPoller, EventQuery, POLL_INTERVAL, select_new_events
from ..sigil.address import from_private_key, is_address
from ..utils import is_hex, strip_0x, to_utf8
from .method import Method

if TYPE_CHECKING:
    from ..client import McashWeb

logger = logging.getLogger(__name__)


class _ContractPoller(EventPoller):
    """Poller whose watermark is the contract's own ``last_block``."""

    def __init__(self, contract: "Contract", query: EventQuery) -> None:
        super().__init__(lambda: contract._fetch_events(query), resource_node=query.resource_node)
        self.contract = contract

    def poll(self) -> list[dict[str, Any]]:
        kept, self.contract.last_block = select_new_events(
            self.fetch(), self.contract.last_block, self.resource_node
        )
        self.last_block = self.contract.last_block
        return kept


class Contract:
    def __init__(
        self,
        client: "McashWeb",
        abi: Union[str, list[dict[str, Any]], None] = None,
        address: Optional[str] = None,
    ) -> None:
        self.client = client
        self.address: Optional[str] = address if is_address(address) else None
        self.deployed = self.address is not None
        self.bytecode: Optional[str] = None
        self.last_block: Optional[int] = None

        self.abi: list[dict[str, Any]] = []
        self.methods: dict[str, Method] = {}
        self._listener: Optional[EventListener] = None
        self.load_abi(abi)

    def __repr__(self) -> str:
        return f"Contract(address={self.address!r}, methods={len(self.abi)})"

    def load_abi(self, abi: Union[str, list[dict[str, Any]], None]) -> None:
        """Replace the ABI and rebuild the method registry.

        Constructors and entries without a type get no method. When names
        overload, the last entry owns the bare name; selectors stay unique.
        """
        self.abi = load_abi(abi)
        self.methods = {}
        for entry in self.abi:
            kind = str(entry.get("type") or "")
            if not kind or kind.lower() == "constructor":
                continue
            method = Method(self, entry)
            for key in (method.name, method.function_selector, method.signature):
                self.methods[key] = method

    def method(self, key: str) -> Method:
        """Look up a method by name, selector or signature."""
        try:
            return self.methods[key]
        except KeyError:
            raise AbiError(f"Contract method {key} not found") from None

    __getitem__ = method

    def __contains__(self, key: object) -> bool:
        return key in self.methods

    def decode_input(self, data: str) -> dict[str, Any]:
        """
        Decode transaction call data.

        Returns:
            ``{"name": ..., "params": ...}`` for the method whose signature
            matches the first 4 bytes
        """
        data = strip_0x(data)
        signature = data[:8]
        if signature not in self.methods:
            raise AbiError(f"Contract method {signature} not found")
        method = self.methods[signature]
        return {"name": method.name, "params": method.decode_input(data[8:])}

    # ============ Deployment ============

    def new(self, options: DeployOptions, private_key: Optional[str] = None) -> "Contract":
        """Deploy ``options.bytecode`` and load the resulting contract."""
        private_key = private_key or self.client.default_private_key
        address = from_private_key(private_key) if private_key else None
        if address is None:
            raise ValidationError("Invalid private key provided")

        transaction = self.client.transaction_builder.create_smart_contract(options, address)
        signed = self.client.mcash.sign(transaction, private_key)
        result = self.client.mcash.send_raw_transaction(signed)
        if result.get("code"):
            message = result.get("message", "")
            raise RpcError(to_utf8(message) if is_hex(message) else str(message or result["code"]), payload=result)
        return self.at(signed["contract_address"])

    def at(self, contract_address: str) -> "Contract":
        """Load address, bytecode and ABI of a deployed contract."""
        try:
            contract = self.client.mcash.get_contract(contract_address)
        except RpcError as exc:
            if "does not exist" in str(exc):
                raise StateError("Contract has not been deployed on the network") from exc
            raise
        if not contract.get("contract_address"):
            raise RpcError("Unknown error: " + json.dumps(contract, indent=2), payload=contract)

        self.address = contract["contract_address"]
        self.bytecode = contract.get("bytecode")
        self.deployed = True
        self.load_abi((contract.get("abi") or {}).get("entrys") or [])
        return self

    # ============ Events ============

    def _fetch_events(self, query: EventQuery) -> list[dict[str, Any]]:
        if self.client.event_server is None:
            raise StateError("Event server is not configured")
        if not self.address:
            raise StateError("Contract is not configured with an address")
        return self.client.event.get_events_by_contract_address(self.address, query)

    def get_events(self, query: Optional[EventQuery] = None) -> list[dict[str, Any]]:
        """Events newer than the last poll of this contract, in server order."""
        return _ContractPoller(self, query or EventQuery()).poll()

    def events(
        self,
        callback: EventCallback,
        query: Optional[EventQuery] = None,
        interval: float = POLL_INTERVAL,
    ) -> EventListener:
        """
        Listener for every event of this contract; call ``start()`` on it.

        Starting a listener stops the one previously created here.
        """
        if not callable(callback):
            raise ValidationError("Callback function expected")
        query = query or EventQuery()
        if self._listener is not None:
            self._listener.stop()
        poller = _ContractPoller(self, query)
        self._listener = EventListener(poller, callback, interval=interval)
        return self._listener
