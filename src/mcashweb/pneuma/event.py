"""
Event server client and the event polling loop.

The event server indexes contract logs by contract, event name and block.
Its pages can overlap between polls and repeat a record within one page, so
pollers keep a block watermark and drop anything at or below it, plus any
record structurally equal to an earlier one in the same batch.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

import rfc8785

from ..errors import RpcError, StateError, ValidationError
from ..plugin import Component, extension_point
from ..sigil.address import ADDRESS_PREFIX, from_hex, is_address
from ..utils import is_integer

if TYPE_CHECKING:
    from ..client import McashWeb

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200
POLL_INTERVAL = 3.0

FULL_NODE = "fullNode"
SOLIDITY_NODE = "solidityNode"

EventCallback = Callable[[Optional[Exception], Optional[dict[str, Any]]], Any]


@dataclass(frozen=True)
class EventQuery:
    """Filters for ``EventServer.get_events_by_contract_address``.

    ``since`` is a millisecond timestamp hint for the server; ``resource_node``
    (``fullNode`` / ``solidityNode``) is applied client-side by pollers.
    """

    since: Optional[int] = None
    event_name: Optional[str] = None
    block_number: Union[int, str, None] = None
    size: int = 20
    page: int = 1
    sort: Optional[str] = None
    fingerprint: Optional[str] = None
    only_confirmed: bool = False
    only_unconfirmed: bool = False
    filters: Optional[dict[str, Any]] = None
    raw_response: bool = False
    resource_node: Optional[str] = None


def map_event(event: dict[str, Any]) -> dict[str, Any]:
    """Normalize a raw event-server record."""
    mapped = {
        "block": event.get("block_number"),
        "timestamp": event.get("block_timestamp"),
        "contract": event.get("contract_address"),
        "name": event.get("event_name"),
        "transaction": event.get("transaction_id"),
        "result": event.get("result"),
        "resource_node": event.get("resource_Node") or (FULL_NODE if event.get("_unconfirmed") else SOLIDITY_NODE),
    }
    if event.get("_unconfirmed"):
        mapped["unconfirmed"] = event["_unconfirmed"]
    if event.get("_fingerprint"):
        mapped["fingerprint"] = event["_fingerprint"]
    return mapped


def _prefixed_address(value: str) -> str:
    return ADDRESS_PREFIX + value[2:].lower()


def parse_event(event: dict[str, Any], abi: dict[str, Any]) -> dict[str, Any]:
    """
    Render an event's ``result`` against its ABI entry.

    Address values become prefixed hex; a positional result list becomes a
    dict keyed by input name.
    """
    result = event.get("result")
    if not result:
        return event
    inputs = abi.get("inputs") or []
    if isinstance(result, dict):
        rendered = dict(result)
        for param in inputs:
            name = param.get("name")
            if param.get("type") == "address" and name in rendered:
                rendered[name] = _prefixed_address(rendered[name])
    elif isinstance(result, list):
        rendered = {}
        for param, value in zip(inputs, result):
            if param.get("type") == "address":
                value = _prefixed_address(value)
            rendered[param.get("name")] = value
    else:
        return event
    return {**event, "result": rendered}


def event_identity(event: dict[str, Any]) -> bytes:
    """Canonical JSON of ``event``; equal records have equal identities."""
    return rfc8785.dumps(event)


def select_new_events(
    events: Iterable[dict[str, Any]],
    last_block: Optional[int] = None,
    resource_node: Optional[str] = None,
) -> tuple[list[dict[str, Any]], Optional[int]]:
    """
    Filter one polled batch against the block watermark.

    A record is kept when it matches ``resource_node`` (case-insensitive),
    is not a repeat of an earlier record in the batch, and either no
    watermark is set or its block is above it. Kept records stay in batch
    order.

    Returns:
        ``(kept, watermark)``; the watermark never moves backwards
    """
    batch = list(events)
    kept: list[dict[str, Any]] = []
    seen: set[bytes] = set()
    wanted = resource_node.lower() if resource_node else None

    for event in batch:
        identity = event_identity(event)
        duplicate = identity in seen
        seen.add(identity)
        origin = event.get("resource_node")
        if wanted and origin and origin.lower() != wanted:
            continue
        if duplicate:
            continue
        if last_block is not None:
            block = event.get("block")
            if not is_integer(block) or block <= last_block:
                continue
        kept.append(event)

    blocks = [event["block"] for event in batch if is_integer(event.get("block"))]
    watermark = last_block
    if blocks:
        watermark = max(blocks) if last_block is None else max(last_block, max(blocks))
    return kept, watermark


class EventPoller:
    """Stateful wrapper over ``select_new_events`` for one event source."""

    def __init__(
        self,
        fetch: Callable[[], list[dict[str, Any]]],
        resource_node: Optional[str] = None,
    ) -> None:
        self.fetch = fetch
        self.resource_node = resource_node
        self.last_block: Optional[int] = None

    def poll(self) -> list[dict[str, Any]]:
        kept, self.last_block = select_new_events(self.fetch(), self.last_block, self.resource_node)
        return kept


class EventListener:
    """
    Repeating poll on a background thread.

    ``start()`` primes the poller once (so only events after the start are
    delivered) and then polls every ``interval`` seconds, handing each new
    event to ``callback(None, event)``. Poll failures are logged and passed
    as ``callback(error, None)``; the timer keeps running either way.
    """

    def __init__(
        self,
        poller: EventPoller,
        callback: EventCallback,
        interval: float = POLL_INTERVAL,
        transform: Optional[Callable[[dict[str, Any]], dict[str, Any]]] = None,
    ) -> None:
        self.poller = poller
        self.callback: Optional[EventCallback] = callback
        self.interval = interval
        self.transform = transform
        self._stopped: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._stopped is not None and not self._stopped.is_set()

    def start(self, callback: Optional[EventCallback] = None) -> "EventListener":
        with self._lock:
            if self._stopped is not None:
                self._stopped.set()
            if callback is not None:
                self.callback = callback
            self.poller.poll()
            stopped = threading.Event()
            self._stopped = stopped
            self._thread = threading.Thread(
                target=self._run, args=(stopped,), name="mcashweb-events", daemon=True
            )
            self._thread.start()
        return self

    def stop(self) -> None:
        with self._lock:
            if self._stopped is None:
                return
            self._stopped.set()
            self._stopped = None
            self._thread = None
            self.callback = None

    def _run(self, stopped: threading.Event) -> None:
        while not stopped.wait(self.interval):
            self.tick()

    def _deliver(self, error: Optional[Exception], event: Optional[dict[str, Any]]) -> None:
        callback = self.callback
        if callback is None:
            return
        try:
            callback(error, event)
        except Exception:
            logger.exception("Event callback raised")

    def tick(self) -> None:
        """Run one poll and deliver its results."""
        try:
            events = self.poller.poll()
        except Exception as exc:
            logger.error("Failed to get event list", exc_info=True)
            self._deliver(exc, None)
            return
        for event in events:
            self._deliver(None, self.transform(event) if self.transform else event)


class EventServer(Component):
    """Queries against the client's event server."""

    def __init__(self, client: "McashWeb") -> None:
        super().__init__()
        self.client = client

    def _provider(self) -> Any:
        provider = self.client.event_server
        if provider is None:
            raise StateError("No event server configured")
        return provider

    @staticmethod
    def _records(data: Any, raw_response: bool) -> list[dict[str, Any]]:
        if isinstance(data, list):
            return data if raw_response else [map_event(event) for event in data]
        if not data:
            raise RpcError("Unknown error occurred")
        raise RpcError(str(data), payload=data)

    @extension_point
    def get_events_by_contract_address(
        self,
        contract_address: str,
        query: Optional[EventQuery] = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch one page of events emitted by a contract.

        Raises:
            StateError: If no event server is configured
            ValidationError: On an invalid address or query
            RpcError: If the server answers with anything but a list
        """
        query = query or EventQuery()
        provider = self._provider()

        if not is_address(contract_address):
            raise ValidationError("Invalid contract address provided")
        if query.since is not None and not is_integer(query.since):
            raise ValidationError("Invalid fromTimestamp provided")
        if not is_integer(query.size):
            raise ValidationError("Invalid size provided")
        size = query.size
        if size > MAX_PAGE_SIZE:
            logger.warning("Defaulting to maximum accepted size: %d", MAX_PAGE_SIZE)
            size = MAX_PAGE_SIZE
        if not is_integer(query.page):
            raise ValidationError("Invalid page provided")
        if query.block_number and not query.event_name:
            raise ValidationError("Usage of block number filtering requires an event name")

        route = [from_hex(contract_address)]
        if query.event_name:
            route.append(query.event_name)
        if query.block_number:
            route.append(str(query.block_number))

        params: dict[str, Any] = {"size": size, "page": query.page}
        if query.filters:
            params["filters"] = json.dumps(query.filters)
        if query.since:
            params["fromTimestamp"] = params["since"] = query.since
        if query.only_confirmed:
            params["onlyConfirmed"] = "true"
        elif query.only_unconfirmed:
            params["onlyUnconfirmed"] = "true"
        if query.sort:
            params["sort"] = query.sort
        if query.fingerprint:
            params["fingerprint"] = query.fingerprint

        data = provider.request("event/contract/" + "/".join(route), params)
        return self._records(data, query.raw_response)

    @extension_point
    def get_events_by_transaction_id(self, transaction_id: str, raw_response: bool = False) -> list[dict[str, Any]]:
        data = self._provider().request(f"event/transaction/{transaction_id}")
        return self._records(data, raw_response)
