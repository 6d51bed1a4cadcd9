"""
Address codec for Mcash accounts.

An address is 21 bytes: the network prefix byte ``0x32`` followed by the
20-byte Keccak-derived account hash. It has two text forms:

- base58check (``M...``), the user-facing form;
- lowercase hex with the ``32`` prefix, the wire form.

Ethereum-style ``0x`` hex (20 bytes) is accepted on input and rewritten to
the prefixed form.
"""

from __future__ import annotations

from typing import Any, Optional

import base58
from eth_account import Account
from eth_keys.exceptions import ValidationError as KeyValidationError

from ..errors import ValidationError
from ..utils import is_hex, strip_0x

ADDRESS_PREFIX = "32"
ADDRESS_PREFIX_BYTE = 0x32
ADDRESS_SIZE = 42  # hex chars, prefix included


def _prefixed(address: str) -> str:
    if address[:2] in ("0x", "0X"):
        return ADDRESS_PREFIX + address[2:]
    return address


def from_hex(address: str) -> str:
    """Return the base58check form of ``address``.

    Values that are not a full-length hex address (base58 included) are
    returned unchanged.
    """
    if not is_hex(address):
        return address
    prefixed = _prefixed(address)
    if len(prefixed) != ADDRESS_SIZE:
        return address
    raw = bytes.fromhex(prefixed)
    return base58.b58encode_check(raw).decode("ascii")


def to_hex(address: str) -> str:
    """Return the prefixed lowercase hex form of ``address``.

    Raises:
        ValidationError: If a base58 value fails its checksum.
    """
    if is_hex(address):
        return _prefixed(address.lower())
    try:
        raw = base58.b58decode_check(address)
    except ValueError as exc:
        raise ValidationError("Invalid address provided") from exc
    return raw.hex()


def to_eth_hex(address: str) -> str:
    """Return ``0x`` + 20-byte hex, the chain-neutral form the ABI encoder takes."""
    if is_hex(address) and len(strip_0x(address)) == 40:
        return "0x" + strip_0x(address).lower()
    return "0x" + to_hex(address)[len(ADDRESS_PREFIX):]


def _is_valid_base58(address: str) -> bool:
    try:
        raw = base58.b58decode_check(address)
    except ValueError:
        return False
    return len(raw) == ADDRESS_SIZE // 2 and raw[0] == ADDRESS_PREFIX_BYTE


def is_address(candidate: Any) -> bool:
    """Return True if ``candidate`` is a well-formed address in either text form.

    Never raises.
    """
    if not isinstance(candidate, str):
        return False
    if len(candidate) == ADDRESS_SIZE:
        try:
            encoded = base58.b58encode_check(bytes.fromhex(candidate)).decode("ascii")
        except ValueError:
            return False
        return is_address(encoded)
    return _is_valid_base58(candidate)


def normalize_private_key(private_key: str) -> str:
    return strip_0x(private_key.strip()).lower()


def from_private_key(private_key: Any) -> Optional[str]:
    """Derive the base58 address of ``private_key``, or None if the key is malformed."""
    if not isinstance(private_key, str):
        return None
    try:
        account = Account.from_key("0x" + normalize_private_key(private_key))
    except (ValueError, TypeError, KeyValidationError):
        return None
    return from_hex(ADDRESS_PREFIX + account.address[2:].lower())


def same_address(left: Any, right: Any) -> bool:
    """Compare two addresses regardless of their text form."""
    if not (is_address(left) and is_address(right)):
        return left == right
    return to_hex(left) == to_hex(right)
