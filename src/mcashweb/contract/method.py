"""
Contract methods: constant calls, state-changing sends and event watches.

A ``Method`` wraps one ABI entry. ``call`` runs pure/view functions through
the node's constant execution; ``send`` builds, signs and broadcasts a
trigger transaction and can poll the solidity node for its result; ``watch``
starts a background listener for an event entry.
"""

from __future__ import annotations

import json
import logging
import re
import time
import unicodedata
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Optional

from ..errors import (
    ExecutionError,
    ResultNotFoundError,
    RevertError,
    RpcError,
    SignatureError,
    StateError,
    ValidationError,
)
from ..pneuma.abi import canonical_type, decode_params, function_selector, method_id
from ..pneuma.builder import DEFAULT_FEE_LIMIT, TriggerOptions
from ..pneuma.event import (
    POLL_INTERVAL,
    EventCallback,
    EventListener,
    EventPoller,
    EventQuery,
    parse_event,
)
from ..sigil.address import from_private_key, to_hex
from ..utils import is_hex, to_utf8

if TYPE_CHECKING:
    from .contract import Contract

logger = logging.getLogger(__name__)

REVERT_MESSAGE = "The call has been reverted or has thrown an error."
READ_ONLY = ("pure", "view")
RESULT_POLL_ATTEMPTS = 20
RESULT_POLL_INTERVAL = 3.0


@dataclass(frozen=True)
class MethodOptions:
    fee_limit: int = DEFAULT_FEE_LIMIT
    call_value: int = 0
    token_value: Optional[int] = None
    token_id: Optional[int] = None
    from_address: Optional[str] = None
    should_poll_response: bool = False
    raw_response: bool = False

    def trigger(self) -> TriggerOptions:
        return TriggerOptions(
            fee_limit=self.fee_limit,
            call_value=self.call_value,
            token_value=self.token_value,
            token_id=self.token_id,
        )


@dataclass(frozen=True)
class WatchOptions:
    filters: Optional[dict[str, Any]] = None
    resource_node: Optional[str] = None
    interval: float = POLL_INTERVAL


def decode_revert(result: str) -> str:
    """
    Human-readable message for a reverted constant call.

    The bytes after the 4-byte selector are decoded as UTF-8 in 32-byte
    strides; control characters become spaces and runs of spaces collapse.
    """
    if not result:
        return REVERT_MESSAGE
    payload = result[8:]
    text = ""
    for start in range(0, len(payload), 64):
        chunk = payload[start:start + 64]
        if not is_hex(chunk) or len(chunk) % 2:
            continue
        text += bytes.fromhex(chunk).decode("utf-8", errors="replace")
    text = "".join(" " if unicodedata.category(ch) == "Cc" else ch for ch in text)
    reason = re.sub(r" +", " ", text).strip()
    return f"{REVERT_MESSAGE} Error message: {reason}"


def is_revert(result: str) -> bool:
    return len(result) == 0 or len(result) % 64 == 8


def _unwrap(values: list[Any]) -> Any:
    return values[0] if len(values) == 1 else values


class Method:
    """One ABI entry of a contract, dispatched by name, selector or signature."""

    def __init__(self, contract: "Contract", abi: dict[str, Any]) -> None:
        self.contract = contract
        self.client = contract.client
        self.abi = abi
        self.type = str(abi.get("type") or "function").lower()
        self.name = abi.get("name") or self.type

        self.inputs = abi.get("inputs") or []
        self.outputs = abi.get("outputs") or []
        self.input_types = [canonical_type(p) for p in self.inputs]
        self.output_types = [canonical_type(p) for p in self.outputs]

        self.function_selector = function_selector({**abi, "name": self.name})
        self.signature = method_id(self.function_selector)

    def __repr__(self) -> str:
        return f"Method({self.function_selector})"

    @property
    def state_mutability(self) -> str:
        mutability = self.abi.get("stateMutability")
        if mutability:
            return str(mutability).lower()
        if self.abi.get("payable"):
            return "payable"
        if self.abi.get("constant"):
            return "view"
        return "nonpayable"

    def decode_input(self, data: str) -> Any:
        """Decode call data (selector already removed) into named parameters."""
        names = [p.get("name", "") for p in self.inputs]
        return decode_params(self.input_types, "0x" + data, names=names)

    def decode_output(self, data: str) -> Any:
        names = [p.get("name", "") for p in self.outputs]
        return decode_params(self.output_types, "0x" + data, names=names if any(names) else None)

    def _parameters(self, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        if len(args) != len(self.input_types):
            raise ValidationError("Invalid argument count provided")
        return [{"type": t, "value": v} for t, v in zip(self.input_types, args)]

    def _require_deployed(self) -> None:
        if not self.contract.address:
            raise StateError("Smart contract is missing address")
        if not self.contract.deployed:
            raise StateError("Calling smart contracts requires you to load the contract first")

    # ============ call ============

    def call(self, *args: Any, options: Optional[MethodOptions] = None) -> Any:
        """
        Execute a pure/view function without a transaction.

        Returns:
            The decoded output; a single output is unwrapped

        Raises:
            RevertError: If the call reverted
            ExecutionError: If the node returned no constant result
        """
        parameters = self._parameters(args)
        self._require_deployed()
        if self.state_mutability not in READ_ONLY:
            raise StateError(f'Methods with state mutability "{self.state_mutability}" must use send()')

        options = options or MethodOptions()
        issuer = options.from_address or self.client.default_address.get("hex")
        response = self.client.transaction_builder.trigger_smart_contract(
            self.contract.address,
            self.function_selector,
            options.trigger(),
            parameters,
            to_hex(issuer) if issuer else None,
        )
        if "constant_result" not in response:
            raise ExecutionError("Failed to execute", output=response)

        result = response["constant_result"][0] if response["constant_result"] else ""
        if is_revert(result):
            raise RevertError(decode_revert(result), output=result)
        return _unwrap(self.decode_output(result))

    # ============ send ============

    def send(
        self,
        *args: Any,
        options: Optional[MethodOptions] = None,
        private_key: Optional[str] = None,
    ) -> Any:
        """
        Trigger a state-changing function.

        Returns:
            The transaction id, or with ``should_poll_response`` the decoded
            contract result (the raw transaction info with ``raw_response``)

        Raises:
            ExecutionError: If the node rejects the trigger or execution fails
            ResultNotFoundError: If no result shows up within the poll budget
        """
        parameters = self._parameters(args)
        self._require_deployed()
        if self.state_mutability in READ_ONLY:
            raise StateError(f'Methods with state mutability "{self.state_mutability}" must use call()')

        options = options or MethodOptions()
        if self.state_mutability != "payable":
            options = replace(options, call_value=0)

        private_key = private_key or self.client.default_private_key
        address = from_private_key(private_key) if private_key else self.client.default_address.get("base58")
        if address is None:
            raise ValidationError("Invalid private key provided")

        response = self.client.transaction_builder.trigger_smart_contract(
            self.contract.address,
            self.function_selector,
            options.trigger(),
            parameters,
            to_hex(address),
        )
        if not (response.get("result") or {}).get("result"):
            message = "Unknown error: " + json.dumps(response, indent=2)
            logger.error(message)
            raise ExecutionError(message, output=response)

        signed = self.client.mcash.sign(response["transaction"], private_key)
        if not signed.get("signature"):
            if not private_key:
                raise SignatureError("Transaction was not signed properly")
            raise ValidationError("Invalid private key provided")

        broadcast = self.client.mcash.send_raw_transaction(signed)
        if broadcast.get("code"):
            message = broadcast.get("message", "")
            raise RpcError(to_utf8(message) if is_hex(message) else str(message or broadcast["code"]), payload=broadcast)

        if not options.should_poll_response:
            return signed["txID"]
        return self._poll_result(signed, options.raw_response)

    def _poll_result(self, signed: dict[str, Any], raw_response: bool) -> Any:
        tx_id = signed["txID"]
        for attempt in range(RESULT_POLL_ATTEMPTS):
            output = self.client.mcash.get_transaction_info(tx_id)
            if not output:
                logger.debug("Result of %s not indexed yet (attempt %d)", tx_id, attempt + 1)
                time.sleep(RESULT_POLL_INTERVAL)
                continue
            if output.get("result") == "FAILED":
                message = output.get("resMessage") or output.get("res_message") or ""
                raise ExecutionError(
                    to_utf8(message) if is_hex(message) else message,
                    transaction=signed,
                    output=output,
                )
            if "contractResult" not in output:
                raise ExecutionError(
                    "Failed to execute: " + json.dumps(output, indent=2),
                    transaction=signed,
                    output=output,
                )
            if raw_response:
                return output
            return _unwrap(self.decode_output(output["contractResult"][0]))

        raise ResultNotFoundError("Cannot find result in solidity node", transaction=signed)

    # ============ watch ============

    def watch(self, callback: EventCallback, options: Optional[WatchOptions] = None) -> EventListener:
        """
        Start delivering new occurrences of this event to ``callback(error, event)``.

        Returns:
            The running listener; call ``stop()`` to end it
        """
        if not callable(callback):
            raise ValidationError("Expected callback to be provided")
        if not self.contract.address:
            raise StateError("Smart contract is missing address")
        if self.type != "event":
            raise ValidationError("Invalid method type for event watching")
        if self.client.event_server is None:
            raise StateError("No event server configured")

        options = options or WatchOptions()
        node = options.resource_node
        query = EventQuery(
            since=int(time.time() * 1000) - 1000,
            event_name=self.name,
            block_number="latest",
            sort="block_timestamp",
            filters=options.filters,
            only_unconfirmed=bool(node and "full" in node.lower()),
            only_confirmed=bool(node and "full" not in node.lower()),
        )

        def fetch() -> list[dict[str, Any]]:
            return self.client.event.get_events_by_contract_address(self.contract.address, query)

        listener = EventListener(
            EventPoller(fetch, resource_node=node),
            callback,
            interval=options.interval,
            transform=lambda event: parse_event(event, self.abi),
        )
        return listener.start()
