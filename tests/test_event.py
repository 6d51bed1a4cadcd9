"""Tests for the event server client, event deduplication and the poll loop."""

from __future__ import annotations

import json
from typing import Any, Optional

import pytest

from conftest import OTHER_BASE58, OTHER_HEX, FakeNode
from mcashweb import McashWeb
from mcashweb.errors import RpcError, StateError, ValidationError
from mcashweb.pneuma.event import (
    MAX_PAGE_SIZE,
    EventListener,
    EventPoller,
    EventQuery,
    map_event,
    parse_event,
    select_new_events,
)

ROUTE = f"event/contract/{OTHER_BASE58}"


def event(block: Any, name: str = "Transfer", node: str = "solidityNode", **result: Any) -> dict[str, Any]:
    return {
        "block": block,
        "timestamp": 1_560_000_000_000,
        "contract": OTHER_BASE58,
        "name": name,
        "transaction": "ab" * 32,
        "result": result or {"value": str(block)},
        "resource_node": node,
    }


class TestSelectNewEvents:
    def test_first_batch_keeps_everything(self) -> None:
        batch = [event(5), event(3), event(4)]
        kept, watermark = select_new_events(batch)
        assert kept == batch
        assert watermark == 5

    def test_drops_blocks_at_or_below_watermark(self) -> None:
        kept, watermark = select_new_events([event(4), event(5), event(6)], last_block=5)
        assert [e["block"] for e in kept] == [6]
        assert watermark == 6

    def test_watermark_never_moves_backwards(self) -> None:
        kept, watermark = select_new_events([event(2), event(3)], last_block=10)
        assert kept == []
        assert watermark == 10

    def test_empty_batch_keeps_watermark(self) -> None:
        assert select_new_events([], last_block=7) == ([], 7)
        assert select_new_events([]) == ([], None)

    def test_duplicates_within_a_batch(self) -> None:
        first = event(8)
        kept, _ = select_new_events([first, dict(first), event(9)])
        assert kept == [first, event(9)]

    def test_key_order_does_not_affect_identity(self) -> None:
        first = event(8)
        reordered = dict(reversed(list(first.items())))
        kept, _ = select_new_events([first, reordered])
        assert kept == [first]

    def test_duplicate_of_a_filtered_record_is_still_dropped(self) -> None:
        old = event(3)
        kept, _ = select_new_events([old, dict(old), event(6)], last_block=4)
        assert kept == [event(6)]

    def test_resource_node_filter_is_case_insensitive(self) -> None:
        batch = [event(5, node="fullNode"), event(6, node="solidityNode")]
        kept, watermark = select_new_events(batch, resource_node="SOLIDITYNODE")
        assert [e["block"] for e in kept] == [6]
        assert watermark == 6

    def test_records_without_block_only_pass_before_a_watermark(self) -> None:
        kept, watermark = select_new_events([event(None)])
        assert len(kept) == 1
        assert watermark is None
        kept, _ = select_new_events([event(None)], last_block=1)
        assert kept == []


class TestMapping:
    RAW = {
        "block_number": 12,
        "block_timestamp": 1_560_000_000_000,
        "contract_address": OTHER_BASE58,
        "event_name": "Transfer",
        "transaction_id": "ab" * 32,
        "result": {"to": "0x" + OTHER_HEX[2:].upper(), "value": "5"},
        "_unconfirmed": True,
        "_fingerprint": "next-page",
    }

    def test_map_event(self) -> None:
        mapped = map_event(self.RAW)
        assert mapped["block"] == 12
        assert mapped["name"] == "Transfer"
        assert mapped["resource_node"] == "fullNode"
        assert mapped["unconfirmed"] is True
        assert mapped["fingerprint"] == "next-page"

    def test_confirmed_records_come_from_solidity(self) -> None:
        raw = {k: v for k, v in self.RAW.items() if not k.startswith("_")}
        mapped = map_event(raw)
        assert mapped["resource_node"] == "solidityNode"
        assert "unconfirmed" not in mapped

    def test_parse_event_prefixes_addresses(self) -> None:
        abi = {"type": "event", "name": "Transfer", "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}]}
        parsed = parse_event(map_event(self.RAW), abi)
        assert parsed["result"] == {"to": OTHER_HEX, "value": "5"}

    def test_parse_event_names_positional_results(self) -> None:
        abi = {"inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}]}
        parsed = parse_event({"result": ["0x" + OTHER_HEX[2:], "5"]}, abi)
        assert parsed["result"] == {"to": OTHER_HEX, "value": "5"}


class TestEventServer:
    def test_query_parameters(self, client: McashWeb, events: FakeNode) -> None:
        events.routes[f"{ROUTE}/Transfer/latest"] = [TestMapping.RAW]
        query = EventQuery(
            event_name="Transfer",
            block_number="latest",
            since=1000,
            size=50,
            page=2,
            sort="block_timestamp",
            filters={"to": OTHER_HEX},
            only_unconfirmed=True,
        )
        found = client.event.get_events_by_contract_address(OTHER_HEX, query)
        assert found[0]["block"] == 12
        assert events.last(f"{ROUTE}/Transfer/latest") == {
            "size": "50",
            "page": "2",
            "filters": json.dumps({"to": OTHER_HEX}),
            "fromTimestamp": "1000",
            "since": "1000",
            "onlyUnconfirmed": "true",
            "sort": "block_timestamp",
        }

    def test_raw_response(self, client: McashWeb, events: FakeNode) -> None:
        events.routes[ROUTE] = [TestMapping.RAW]
        found = client.get_event_result(OTHER_BASE58, EventQuery(raw_response=True))
        assert found == [TestMapping.RAW]

    def test_size_is_clamped(self, client: McashWeb, events: FakeNode, caplog: pytest.LogCaptureFixture) -> None:
        events.routes[ROUTE] = [TestMapping.RAW]
        client.event.get_events_by_contract_address(OTHER_BASE58, EventQuery(size=500))
        assert events.last(ROUTE)["size"] == str(MAX_PAGE_SIZE)
        assert "maximum accepted size" in caplog.text

    @pytest.mark.parametrize(
        ("query", "message"),
        [
            (EventQuery(since="yesterday"), "Invalid fromTimestamp provided"),
            (EventQuery(size="big"), "Invalid size provided"),
            (EventQuery(page=None), "Invalid page provided"),
            (EventQuery(block_number=5), "requires an event name"),
        ],
    )
    def test_query_validation(self, client: McashWeb, query: EventQuery, message: str) -> None:
        with pytest.raises(ValidationError, match=message):
            client.event.get_events_by_contract_address(OTHER_BASE58, query)

    def test_invalid_contract_address(self, client: McashWeb) -> None:
        with pytest.raises(ValidationError, match="Invalid contract address provided"):
            client.event.get_events_by_contract_address("nope")

    def test_server_errors(self, client: McashWeb, events: FakeNode) -> None:
        events.routes[ROUTE] = []
        assert client.event.get_events_by_contract_address(OTHER_BASE58) == []
        events.routes[ROUTE] = ""
        with pytest.raises(RpcError, match="Unknown error occurred"):
            client.event.get_events_by_contract_address(OTHER_BASE58)
        events.routes[ROUTE] = "contract not found"
        with pytest.raises(RpcError, match="contract not found"):
            client.event.get_events_by_contract_address(OTHER_BASE58)

    def test_no_event_server(self, anonymous_client: McashWeb) -> None:
        with pytest.raises(StateError, match="No event server configured"):
            anonymous_client.event.get_events_by_contract_address(OTHER_BASE58)

    def test_by_transaction_id(self, client: McashWeb, events: FakeNode) -> None:
        events.routes["event/transaction/" + "ab" * 32] = [TestMapping.RAW]
        assert client.get_event_by_transaction_id("ab" * 32)[0]["transaction"] == "ab" * 32


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[Optional[Exception], Optional[dict[str, Any]]]] = []

    def __call__(self, error: Optional[Exception], found: Optional[dict[str, Any]]) -> None:
        self.calls.append((error, found))


class TestEventListener:
    def test_poller_tracks_watermark(self) -> None:
        batches = iter([[event(1), event(2)], [event(2), event(3)]])
        poller = EventPoller(lambda: next(batches))
        assert len(poller.poll()) == 2
        assert [e["block"] for e in poller.poll()] == [3]
        assert poller.last_block == 3

    def test_start_primes_and_tick_delivers_new_events(self) -> None:
        batches = iter([[event(1)], [event(1), event(2)]])
        recorder = Recorder()
        listener = EventListener(EventPoller(lambda: next(batches)), recorder, interval=60)
        listener.start()
        try:
            assert listener.running
            assert recorder.calls == []
            listener.tick()
            assert recorder.calls == [(None, event(2))]
        finally:
            listener.stop()
        assert not listener.running

    def test_errors_are_delivered(self, caplog: pytest.LogCaptureFixture) -> None:
        def fetch() -> list[dict[str, Any]]:
            raise RpcError("node down")

        recorder = Recorder()
        listener = EventListener(EventPoller(fetch), recorder)
        listener.tick()
        error, found = recorder.calls[0]
        assert isinstance(error, RpcError)
        assert found is None
        assert "Failed to get event list" in caplog.text

    def test_callback_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        def callback(error: Optional[Exception], found: Optional[dict[str, Any]]) -> None:
            raise RuntimeError("boom")

        listener = EventListener(EventPoller(lambda: [event(1)]), callback)
        listener.tick()
        assert "Event callback raised" in caplog.text

    def test_transform(self) -> None:
        recorder = Recorder()
        listener = EventListener(EventPoller(lambda: [event(1)]), recorder, transform=lambda e: {**e, "seen": True})
        listener.tick()
        assert recorder.calls[0][1]["seen"] is True

    def test_stop_silences_callback(self) -> None:
        batches = iter([[event(1)], [event(2)]])
        recorder = Recorder()
        listener = EventListener(EventPoller(lambda: next(batches)), recorder, interval=60)
        listener.start()
        listener.stop()
        listener.tick()
        assert recorder.calls == []

    def test_start_surfaces_priming_errors(self) -> None:
        def fetch() -> list[dict[str, Any]]:
            raise RpcError("node down")

        listener = EventListener(EventPoller(fetch), Recorder(), interval=60)
        with pytest.raises(RpcError):
            listener.start()
        assert not listener.running
