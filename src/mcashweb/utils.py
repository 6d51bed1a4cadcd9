from __future__ import annotations

import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Union
from urllib.parse import urlparse

from eth_hash.auto import keccak

from .errors import ValidationError

MATOSHI_PER_MCASH = 100_000_000

_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]+$")
_SIGNED_HEX_RE = re.compile(r"^-?0x[0-9a-fA-F]*$")

Number = Union[int, Decimal, str]


def is_hex(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_RE.match(value))


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_url(url: Any) -> bool:
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(strip_0x(value))


def sha3(text: str, prefix: bool = True) -> str:
    """Keccak-256 of the UTF-8 bytes of ``text`` as hex."""
    digest = keccak(text.encode("utf-8")).hex()
    return "0x" + digest if prefix else digest


def to_utf8(hex_value: str) -> str:
    if not is_hex(hex_value):
        raise ValidationError("The passed value is not a valid hex string")
    return hex_to_bytes(hex_value).decode("utf-8", errors="replace")


def from_utf8(text: str) -> str:
    if not isinstance(text, str):
        raise ValidationError("The passed value is not a valid utf-8 string")
    return "0x" + text.encode("utf-8").hex()


def to_ascii(hex_value: str) -> str:
    if not is_hex(hex_value):
        raise ValidationError("The passed value is not a valid hex string")
    return hex_to_bytes(hex_value).decode("latin-1")


def from_ascii(text: str, padding: int = 0) -> str:
    if not isinstance(text, str):
        raise ValidationError("The passed value is not a valid utf-8 string")
    # Keep the low byte of each code point, same as a byte-per-char ascii codec.
    raw = bytes(ord(ch) & 0xFF for ch in text).hex()
    return "0x" + raw.ljust(padding, "0")


def to_number(value: Number) -> Union[int, Decimal]:
    """Parse ``value`` into an int (or a Decimal when it has a fraction).

    Hex strings (``0x...``) are read base 16, other strings base 10.

    Raises:
        ValidationError: If ``value`` is not numeric.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValidationError(f"The passed value is not a valid number: {value!r}")
        return int(value) if value == value.to_integral_value() else value
    if isinstance(value, float):
        return to_number(Decimal(str(value)))
    if isinstance(value, str):
        text = value.strip()
        if _SIGNED_HEX_RE.match(text) and text not in ("0x", "-0x"):
            sign = -1 if text.startswith("-") else 1
            return sign * int(text.lstrip("-")[2:], 16)
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            parsed = None
        if parsed is not None and parsed.is_finite():
            return to_number(parsed)
    raise ValidationError(f"The passed value is not a valid number: {value!r}")


def to_decimal(value: Number) -> Union[int, Decimal]:
    return to_number(value)


def from_decimal(value: Number) -> str:
    number = to_number(value)
    if not isinstance(number, int):
        raise ValidationError("The passed value is not convertible to a hex string")
    return f"-0x{-number:x}" if number < 0 else f"0x{number:x}"


def to_hex(value: Any) -> str:
    """Convert a bool, number, string or JSON-able container to a ``0x`` string.

    Strings that already look like hex (``0x..`` / ``-0x..``) are returned
    unchanged; non-numeric strings are UTF-8 encoded.
    """
    if isinstance(value, bool):
        return from_decimal(int(value))
    if isinstance(value, (int, Decimal, float)):
        return from_decimal(value)
    if isinstance(value, (dict, list, tuple)):
        return from_utf8(json.dumps(value, separators=(",", ":")))
    if isinstance(value, str):
        if _SIGNED_HEX_RE.match(value):
            return value
        try:
            return from_decimal(value)
        except ValidationError:
            return from_utf8(value)
    raise ValidationError("The passed value is not convertible to a hex string")


def to_matoshi(amount: Number) -> int:
    """Convert whole MCASH to matoshi (the smallest unit)."""
    scaled = Decimal(str(to_number(amount))) * MATOSHI_PER_MCASH
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount has more precision than one matoshi: {amount}")
    return int(scaled)


def from_matoshi(amount: Number) -> Decimal:
    """Convert matoshi to MCASH."""
    return Decimal(str(to_number(amount))) / MATOSHI_PER_MCASH
