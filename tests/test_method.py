"""Tests for contract methods: call, send, result polling and event watches."""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest

from conftest import OTHER_BASE58, OTHER_HEX, OWNER_HEX, TX_ID, FakeNode, make_transaction
from mcashweb import Contract, McashWeb
from mcashweb.contract.method import (
    REVERT_MESSAGE,
    RESULT_POLL_ATTEMPTS,
    MethodOptions,
    WatchOptions,
    decode_revert,
    is_revert,
)
from mcashweb.errors import (
    AbiError,
    ExecutionError,
    ResultNotFoundError,
    RevertError,
    RpcError,
    StateError,
    ValidationError,
)
from mcashweb.utils import from_utf8

TOKEN_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {"type": "function", "name": "deposit", "inputs": [], "outputs": [], "payable": True},
    {
        "type": "function",
        "name": "info",
        "inputs": [],
        "outputs": [{"name": "name", "type": "string"}, {"name": "decimals", "type": "uint8"}],
        "constant": True,
    },
    {
        "type": "event",
        "name": "Transfer",
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256"},
        ],
    },
    {"type": "constructor", "inputs": []},
]

TRIGGER = "wallet/triggersmartcontract"
BROADCAST = "wallet/broadcasttransaction"
TX_INFO = "walletsolidity/gettransactioninfobyid"


def word(value: int) -> str:
    return f"{value:064x}"


def revert_with(reason: str) -> str:
    data = reason.encode("utf-8")
    padded = data.hex().ljust(-(-len(data) // 32) * 64, "0")
    return "08c379a0" + word(32) + word(len(data)) + padded


@pytest.fixture()
def token(client: McashWeb) -> Contract:
    return client.contract(TOKEN_ABI, OTHER_BASE58)


@pytest.fixture()
def accepting_node(node: FakeNode) -> FakeNode:
    node.routes[TRIGGER] = {"result": {"result": True}, "transaction": make_transaction()}
    node.routes[BROADCAST] = {"result": True}
    return node


class TestRevertDecoding:
    def test_is_revert(self) -> None:
        assert is_revert("")
        assert is_revert(revert_with("nope"))
        assert not is_revert(word(1))

    def test_empty_result(self) -> None:
        assert decode_revert("") == REVERT_MESSAGE

    def test_reason_is_extracted(self) -> None:
        assert decode_revert(revert_with("insufficient balance")) == (
            f"{REVERT_MESSAGE} Error message: insufficient balance"
        )


class TestMethodShape:
    def test_mutability_fallbacks(self, token: Contract) -> None:
        assert token.method("balanceOf").state_mutability == "view"
        assert token.method("deposit").state_mutability == "payable"
        assert token.method("info").state_mutability == "view"
        assert token.method("Transfer").state_mutability == "nonpayable"

    def test_selectors(self, token: Contract) -> None:
        transfer = token.method("transfer")
        assert transfer.function_selector == "transfer(address,uint256)"
        assert transfer.signature == "a9059cbb"
        assert token["a9059cbb"] is transfer

    def test_argument_count(self, token: Contract) -> None:
        with pytest.raises(ValidationError, match="Invalid argument count provided"):
            token.method("balanceOf").call()


class TestCall:
    def test_single_output_is_unwrapped(self, token: Contract, node: FakeNode) -> None:
        node.routes[TRIGGER] = {"result": {"result": True}, "constant_result": [word(42)]}
        assert token.method("balanceOf").call(OTHER_BASE58) == 42
        body = node.last(TRIGGER)
        assert body["function_selector"] == "balanceOf(address)"
        assert body["owner_address"] == OWNER_HEX
        assert body["parameter"] == "00" * 12 + OTHER_HEX[2:]

    def test_named_outputs(self, token: Contract, node: FakeNode) -> None:
        name = "Pie".encode("utf-8").hex().ljust(64, "0")
        node.routes[TRIGGER] = {"constant_result": [word(64) + word(6) + word(3) + name]}
        result = token.method("info").call()
        assert result["name"] == "Pie"
        assert result["decimals"] == 6
        assert list(result) == ["Pie", 6]

    def test_call_from_another_address(self, token: Contract, node: FakeNode) -> None:
        node.routes[TRIGGER] = {"constant_result": [word(1)]}
        token.method("balanceOf").call(OTHER_BASE58, options=MethodOptions(from_address=OTHER_BASE58))
        assert node.last(TRIGGER)["owner_address"] == OTHER_HEX

    @pytest.mark.parametrize("constant_result", [[], [""]])
    def test_empty_result_is_a_revert(self, token: Contract, node: FakeNode, constant_result: list[str]) -> None:
        node.routes[TRIGGER] = {"constant_result": constant_result}
        with pytest.raises(RevertError, match="The call has been reverted"):
            token.method("balanceOf").call(OTHER_BASE58)

    def test_revert_reason(self, token: Contract, node: FakeNode) -> None:
        node.routes[TRIGGER] = {"constant_result": [revert_with("not owner")]}
        with pytest.raises(RevertError, match="Error message: not owner$"):
            token.method("balanceOf").call(OTHER_BASE58)

    def test_missing_constant_result(self, token: Contract, node: FakeNode) -> None:
        node.routes[TRIGGER] = {"result": {"result": True}}
        with pytest.raises(ExecutionError, match="Failed to execute"):
            token.method("balanceOf").call(OTHER_BASE58)

    def test_malformed_output(self, token: Contract, node: FakeNode) -> None:
        node.routes[TRIGGER] = {"constant_result": ["ff" * 32 + word(6)]}
        with pytest.raises(AbiError, match="Failed to decode parameters"):
            token.method("info").call()

    def test_state_changing_method(self, token: Contract) -> None:
        with pytest.raises(StateError, match='Methods with state mutability "nonpayable" must use send'):
            token.method("transfer").call(OTHER_BASE58, 1)

    def test_needs_an_address(self, client: McashWeb) -> None:
        with pytest.raises(StateError, match="Smart contract is missing address"):
            client.contract(TOKEN_ABI).method("balanceOf").call(OTHER_BASE58)


class TestSend:
    def test_returns_transaction_id(self, token: Contract, accepting_node: FakeNode) -> None:
        tx_id = token.method("transfer").send(OTHER_BASE58, 100, options=MethodOptions(call_value=5))
        assert tx_id == TX_ID
        assert accepting_node.last(TRIGGER)["call_value"] == 0
        assert accepting_node.last(BROADCAST)["signature"]

    def test_payable_keeps_call_value(self, token: Contract, accepting_node: FakeNode) -> None:
        token.method("deposit").send(options=MethodOptions(call_value=5))
        assert accepting_node.last(TRIGGER)["call_value"] == 5

    def test_read_only_method(self, token: Contract) -> None:
        with pytest.raises(StateError, match="must use call"):
            token.method("balanceOf").send(OTHER_BASE58)

    def test_trigger_rejected(self, token: Contract, node: FakeNode) -> None:
        node.routes[TRIGGER] = {"result": {"code": "OTHER_ERROR"}}
        with pytest.raises(ExecutionError, match="Unknown error"):
            token.method("transfer").send(OTHER_BASE58, 1)
        assert node.sent(BROADCAST) == []

    def test_broadcast_rejected(self, token: Contract, accepting_node: FakeNode) -> None:
        accepting_node.routes[BROADCAST] = {"code": "SIGERROR", "message": from_utf8("validate signature error")[2:]}
        with pytest.raises(RpcError, match="validate signature error"):
            token.method("transfer").send(OTHER_BASE58, 1)

    def test_poll_decodes_contract_result(self, token: Contract, accepting_node: FakeNode) -> None:
        accepting_node.routes[TX_INFO] = {"id": TX_ID, "contractResult": [word(1)]}
        options = MethodOptions(should_poll_response=True)
        assert token.method("transfer").send(OTHER_BASE58, 1, options=options) is True

    def test_poll_raw_response(self, token: Contract, accepting_node: FakeNode) -> None:
        info = {"id": TX_ID, "contractResult": [word(1)], "fee": 10}
        accepting_node.routes[TX_INFO] = info
        options = MethodOptions(should_poll_response=True, raw_response=True)
        assert token.method("transfer").send(OTHER_BASE58, 1, options=options) == info

    def test_poll_waits_for_indexing(self, token: Contract, accepting_node: FakeNode) -> None:
        replies = iter([{}, {}, {"id": TX_ID, "contractResult": [word(1)]}])
        accepting_node.routes[TX_INFO] = lambda body: next(replies)
        with patch("mcashweb.contract.method.time.sleep") as sleep:
            token.method("transfer").send(OTHER_BASE58, 1, options=MethodOptions(should_poll_response=True))
        assert sleep.call_count == 2

    def test_failed_execution(self, token: Contract, accepting_node: FakeNode) -> None:
        accepting_node.routes[TX_INFO] = {"id": TX_ID, "result": "FAILED", "resMessage": from_utf8("REVERT opcode executed")[2:]}
        with pytest.raises(ExecutionError, match="REVERT opcode executed") as info:
            token.method("transfer").send(OTHER_BASE58, 1, options=MethodOptions(should_poll_response=True))
        assert info.value.transaction["txID"] == TX_ID

    def test_missing_contract_result(self, token: Contract, accepting_node: FakeNode) -> None:
        accepting_node.routes[TX_INFO] = {"id": TX_ID}
        with pytest.raises(ExecutionError, match="Failed to execute"):
            token.method("transfer").send(OTHER_BASE58, 1, options=MethodOptions(should_poll_response=True))

    def test_poll_budget_exhausted(self, token: Contract, accepting_node: FakeNode) -> None:
        accepting_node.routes[TX_INFO] = {}
        with patch("mcashweb.contract.method.time.sleep"):
            with pytest.raises(ResultNotFoundError, match="Cannot find result in solidity node") as info:
                token.method("transfer").send(OTHER_BASE58, 1, options=MethodOptions(should_poll_response=True))
        assert info.value.transaction["signature"]
        assert len(accepting_node.sent(TX_INFO)) == RESULT_POLL_ATTEMPTS


class TestWatch:
    def test_watch_delivers_parsed_events(self, token: Contract, events: FakeNode) -> None:
        route = f"event/contract/{OTHER_BASE58}/Transfer/latest"
        raw = {
            "block_number": 10,
            "event_name": "Transfer",
            "result": {"from": "0x" + OWNER_HEX[2:], "to": "0x" + OTHER_HEX[2:], "value": "1"},
        }
        events.routes[route] = [raw]
        received: list[Any] = []
        listener = token.method("Transfer").watch(lambda error, found: received.append((error, found)))
        try:
            assert listener.running
            events.routes[route] = [raw, {**raw, "block_number": 11}]
            listener.tick()
        finally:
            listener.stop()

        assert len(received) == 1
        error, found = received[0]
        assert error is None
        assert found["block"] == 11
        assert found["result"] == {"from": OWNER_HEX, "to": OTHER_HEX, "value": "1"}
        query = events.last(route)
        assert query["sort"] == "block_timestamp"
        assert "onlyConfirmed" not in query

    def test_watch_resource_node_selects_confirmation(self, token: Contract, events: FakeNode) -> None:
        route = f"event/contract/{OTHER_BASE58}/Transfer/latest"
        events.routes[route] = []
        listener = token.method("Transfer").watch(lambda *_: None, WatchOptions(resource_node="solidityNode"))
        listener.stop()
        assert events.last(route)["onlyConfirmed"] == "true"

    def test_watch_validation(self, client: McashWeb, token: Contract, anonymous_client: McashWeb) -> None:
        with pytest.raises(ValidationError, match="Expected callback to be provided"):
            token.method("Transfer").watch(None)  # type: ignore[arg-type]
        with pytest.raises(ValidationError, match="Invalid method type for event watching"):
            token.method("transfer").watch(lambda *_: None)
        with pytest.raises(StateError, match="missing address"):
            client.contract(TOKEN_ABI).method("Transfer").watch(lambda *_: None)
        with pytest.raises(StateError, match="No event server configured"):
            anonymous_client.contract(TOKEN_ABI, OTHER_BASE58).method("Transfer").watch(lambda *_: None)
