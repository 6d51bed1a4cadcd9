"""
Shared fixtures: an in-process fake node behind ``httpx.MockTransport``.

Routes map an endpoint path (``wallet/getaccount``) to a JSON reply or to a
callable taking the decoded request body (query params for GET) and
returning the reply. Every request is recorded so tests can assert on the
exact payload sent.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterator, Union

import httpx
import pytest

from mcashweb import McashWeb
from mcashweb.pneuma.providers import HttpProvider
from mcashweb.sigil.address import from_private_key, to_hex

PRIVATE_KEY = "1c78d4d86dc31acb08a9eb132b9306bd1c86ea426083e0e0b32308606d212a98"
ADDRESS_HEX = "32bf82fd6597cd3200c468220ecd7cf47c1a4cb149"
ADDRESS_BASE58 = "MRMnDQKREu7JAg8s5qNaVzh2Gkg1MTiYqE"

OTHER_PRIVATE_KEY = "0b" * 32

OWNER_BASE58 = from_private_key(PRIVATE_KEY)
OWNER_HEX = to_hex(OWNER_BASE58)
OTHER_BASE58 = from_private_key(OTHER_PRIVATE_KEY)
OTHER_HEX = to_hex(OTHER_BASE58)

TX_ID = "ab" * 32

Reply = Union[Any, Callable[[Any], Any]]


def make_transaction(owner_hex: str = "", tx_id: str = TX_ID, **value: Any) -> dict[str, Any]:
    """A minimal unsigned transaction as the node would build it."""
    return {
        "txID": tx_id,
        "raw_data": {
            "contract": [
                {
                    "type": "TransferContract",
                    "parameter": {
                        "value": {"owner_address": owner_hex or OWNER_HEX, **value},
                        "type_url": "type.googleapis.com/protocol.TransferContract",
                    },
                }
            ],
            "timestamp": 1_560_000_000_000,
        },
        "raw_data_hex": "00",
    }


class FakeNode:
    def __init__(self) -> None:
        self.routes: dict[str, Reply] = {}
        self.requests: list[tuple[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        if request.method == "GET":
            body: Any = dict(request.url.params)
        else:
            body = json.loads(request.content or b"{}")
        self.requests.append((path, body))

        if path not in self.routes:
            return httpx.Response(404, text=f"no route for {path}")
        reply = self.routes[path]
        if callable(reply):
            reply = reply(body)
        return httpx.Response(200, json=reply)

    def provider(self, host: str = "http://node.test") -> HttpProvider:
        return HttpProvider(host, transport=httpx.MockTransport(self.handler))

    def sent(self, path: str) -> list[Any]:
        """Bodies of every request made to ``path``, oldest first."""
        return [body for seen, body in self.requests if seen == path]

    def last(self, path: str) -> Any:
        bodies = self.sent(path)
        assert bodies, f"no request was made to {path}"
        return bodies[-1]


@pytest.fixture()
def node() -> FakeNode:
    """Full node and solidity node (their paths do not overlap)."""
    return FakeNode()


@pytest.fixture()
def events() -> FakeNode:
    return FakeNode()


@pytest.fixture()
def client(node: FakeNode, events: FakeNode) -> Iterator[McashWeb]:
    web = McashWeb(
        full_node=node.provider("http://full.test"),
        solidity_node=node.provider("http://solidity.test"),
        event_server=events.provider("http://events.test"),
        private_key=PRIVATE_KEY,
    )
    yield web
    web.close()


@pytest.fixture()
def anonymous_client(node: FakeNode) -> Iterator[McashWeb]:
    """Client with no default account and no event server."""
    web = McashWeb(full_node=node.provider("http://full.test"), solidity_node=node.provider("http://solidity.test"))
    yield web
    web.close()
