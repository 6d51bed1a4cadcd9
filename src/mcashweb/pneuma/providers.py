"""
HTTP provider for Mcash full nodes, solidity nodes and event servers.

Thin wrapper over an ``httpx.Client`` bound to one base URL. Node endpoints
are plain REST paths (``wallet/getnowblock``) taking and returning JSON.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import httpx

from ..errors import RpcError, ValidationError
from ..utils import is_valid_url

logger = logging.getLogger(__name__)

# Default node endpoint (local private chain)
DEFAULT_FULL_HOST = "http://127.0.0.1:13399"
DEFAULT_TIMEOUT = 30.0


def get_full_host() -> str:
    """Get the shared host from environment or default."""
    return os.environ.get("MCASH_FULL_HOST", DEFAULT_FULL_HOST)


def get_full_node_url() -> str:
    return os.environ.get("MCASH_FULL_NODE") or get_full_host()


def get_solidity_node_url() -> str:
    return os.environ.get("MCASH_SOLIDITY_NODE") or get_full_host()


def get_event_server_url() -> str:
    return os.environ.get("MCASH_EVENT_SERVER") or get_full_host()


def get_timeout() -> float:
    """Get the request timeout (seconds) from environment or default."""
    return float(os.environ.get("MCASH_TIMEOUT", str(DEFAULT_TIMEOUT)))


class HttpProvider:
    """One configured node endpoint.

    Args:
        host: Base URL, e.g. ``http://127.0.0.1:13399``
        timeout: Request timeout in seconds
        user / password: Optional basic auth credentials
        headers: Extra headers sent with every request
        status_page: Path probed by ``is_connected``
        transport: Optional ``httpx`` transport (tests pass a MockTransport)
    """

    def __init__(
        self,
        host: str,
        timeout: Optional[float] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        status_page: str = "/",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not is_valid_url(host):
            raise ValidationError("Invalid URL provided to HttpProvider")
        timeout = get_timeout() if timeout is None else timeout
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
            raise ValidationError("Invalid timeout duration provided")

        self.host = host.rstrip("/")
        self.timeout = timeout
        self.user = user
        self.password = password
        self.headers = dict(headers or {})
        self.status_page = status_page

        auth = httpx.BasicAuth(user, password or "") if user else None
        self.client = httpx.Client(
            base_url=self.host,
            timeout=timeout,
            auth=auth,
            headers=self.headers,
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"HttpProvider({self.host!r})"

    def __enter__(self) -> "HttpProvider":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def set_status_page(self, status_page: str = "/") -> None:
        self.status_page = status_page

    def is_connected(self, status_page: Optional[str] = None) -> bool:
        """Probe the status page; any failure or empty body means not connected."""
        try:
            data = self.request(status_page or self.status_page)
        except RpcError as exc:
            logger.debug("Provider %s not reachable: %s", self.host, exc)
            return False
        return isinstance(data, dict) and bool(data)

    def request(self, url: str, payload: Optional[dict[str, Any]] = None, method: str = "get") -> Any:
        """
        Issue a request against the provider.

        Args:
            url: Endpoint path relative to the host
            payload: JSON body (POST) or query parameters (GET)
            method: ``get`` or ``post``

        Returns:
            Decoded JSON body

        Raises:
            RpcError: On transport failure, non-2xx status or malformed JSON
        """
        path = "/" + url.lstrip("/")
        method = method.lower()
        logger.debug("%s %s%s payload=%s", method.upper(), self.host, path, payload)

        try:
            if method == "get":
                response = self.client.get(path, params=payload or None)
            else:
                response = self.client.request(method.upper(), path, json=payload or {})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RpcError(
                f"Request failed with status code {exc.response.status_code}",
                payload=exc.response.text,
            ) from exc
        except httpx.HTTPError as exc:
            raise RpcError(f"Request to {self.host}{path} failed: {exc}") from exc

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise RpcError(f"Malformed JSON from {self.host}{path}", payload=response.text) from exc
