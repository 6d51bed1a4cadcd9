"""
ABI coder - Solidity ABI encoding/decoding for Mcash contracts.

Wraps eth-abi with the two Mcash-specific twists:

- addresses are accepted in either Mcash text form and rewritten to the
  chain-neutral 20-byte form before encoding; decoded addresses come back
  in prefixed hex (``32...``);
- the ``mcashToken`` placeholder type is an alias of ``uint256``.

Also loads ABI JSON (list or JSON string) and computes selectors.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError, ParseError
from eth_abi.grammar import ABIType, BasicType, TupleType, normalize, parse
from eth_hash.auto import keccak

from ..errors import AbiError
from ..sigil.address import ADDRESS_PREFIX, is_address, to_eth_hex
from ..utils import is_hex, strip_0x, to_number
from .schemas import ABI_SCHEMA, SchemaRegistry, SchemaValidationError

MCASH_TOKEN_TYPE = "mcashToken"
_MCASH_TOKEN_RE = re.compile(r"\bmcashToken\b")

SLOT_HEX = 64  # one 32-byte word
SELECTOR_HEX = 8


class AbiResult(list):
    """Decoded values, positionally and (for named outputs) by name.

    Unnamed outputs are only reachable by index.
    """

    def __init__(self, values: Iterable[Any], names: Sequence[str]) -> None:
        super().__init__(values)
        self.names = tuple(names)

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, str):
            return self.asdict()[key]
        return super().__getitem__(key)

    def keys(self) -> list[str]:
        return [name for name in self.names if name]

    def asdict(self) -> dict[str, Any]:
        return {name: value for name, value in zip(self.names, self) if name}


# ============ ABI JSON ============


def load_abi(abi: Union[str, list[dict[str, Any]], None]) -> list[dict[str, Any]]:
    """
    Parse and validate ABI JSON.

    Args:
        abi: ABI entries as a list, or a JSON string encoding that list

    Returns:
        ABI as a list of dicts

    Raises:
        AbiError: If the string is not JSON or the entries are malformed
    """
    if abi is None:
        return []
    if isinstance(abi, str):
        try:
            abi = json.loads(abi)
        except json.JSONDecodeError as exc:
            raise AbiError(f"Invalid ABI JSON: {exc}") from exc
    try:
        SchemaRegistry.default().validate_instance(abi, ABI_SCHEMA)
    except SchemaValidationError as exc:
        raise AbiError("; ".join(exc.errors) or str(exc)) from exc
    return list(abi)


def canonical_type(param: dict[str, Any]) -> str:
    """Type string of an ABI input/output, with tuples expanded to ``(a,b)``."""
    type_str = param["type"]
    if type_str.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){type_str[len('tuple'):]}"
    return type_str


def function_selector(entry: dict[str, Any]) -> str:
    types = ",".join(canonical_type(p) for p in entry.get("inputs", []))
    return f"{entry.get('name', '')}({types})"


def method_id(selector: str) -> str:
    """First 4 bytes of keccak256(selector) as 8 hex chars."""
    return keccak(selector.encode("utf-8")).hex()[:SELECTOR_HEX]


def substitute_token_type(type_str: str) -> str:
    return _MCASH_TOKEN_RE.sub("uint256", type_str)


# ============ Value conversion ============


def _parse_type(type_str: str) -> ABIType:
    try:
        abi_type = parse(normalize(substitute_token_type(type_str)))
        abi_type.validate()
    except ParseError as exc:
        raise AbiError(f"Invalid parameter type provided: {type_str}") from exc
    except ValueError as exc:
        raise AbiError(f"Invalid parameter type provided: {type_str}: {exc}") from exc
    return abi_type


def _walk(abi_type: ABIType, value: Any, leaf: Callable[[BasicType, Any], Any]) -> Any:
    if abi_type.is_array:
        if not isinstance(value, (list, tuple)):
            raise AbiError(f"Expected an array for type {abi_type.to_type_str()}, got {value!r}")
        return [_walk(abi_type.item_type, item, leaf) for item in value]
    if isinstance(abi_type, TupleType):
        if isinstance(value, dict):
            raise AbiError("Tuple values must be given positionally")
        if len(value) != len(abi_type.components):
            raise AbiError(
                f"Tuple {abi_type.to_type_str()} needs {len(abi_type.components)} "
                f"values but {len(value)} provided"
            )
        return tuple(_walk(c, v, leaf) for c, v in zip(abi_type.components, value))
    return leaf(abi_type, value)


def _to_encodable(abi_type: BasicType, value: Any) -> Any:
    base = abi_type.base
    if base == "address":
        if not is_address(value) and not (is_hex(value) and len(strip_0x(value)) == 40):
            raise AbiError(f"Invalid address value: {value!r}")
        return to_eth_hex(value)
    if base == "bytes" and isinstance(value, str):
        if not is_hex(value) and value not in ("0x", ""):
            raise AbiError(f"Invalid hex value for {abi_type.to_type_str()}: {value!r}")
        if len(strip_0x(value)) % 2:
            raise AbiError(f"Odd-length hex value for {abi_type.to_type_str()}: {value!r}")
        return bytes.fromhex(strip_0x(value))
    if base in ("int", "uint") and not isinstance(value, int):
        return to_number(value)
    return value


def _from_decoded(abi_type: BasicType, value: Any) -> Any:
    base = abi_type.base
    if base == "address":
        return ADDRESS_PREFIX + value[2:].lower()
    if base == "bytes":
        return "0x" + value.hex()
    return value


# ============ Encode / decode ============


def encode_params(types: Sequence[str], values: Sequence[Any]) -> str:
    """
    ABI-encode ``values`` against ``types``.

    Args:
        types: Solidity type strings (``mcashToken`` allowed)
        values: Matching values; addresses in base58 or hex

    Returns:
        ``0x``-prefixed hex encoding

    Raises:
        AbiError: On type/value mismatch
    """
    if len(types) != len(values):
        raise AbiError(f"types/values length mismatch: {len(types)} types, {len(values)} values")
    parsed = [_parse_type(t) for t in types]
    prepared = [_walk(t, v, _to_encodable) for t, v in zip(parsed, values)]
    try:
        encoded = encode([t.to_type_str() for t in parsed], prepared)
    except (EncodingError, TypeError, ValueError, OverflowError) as exc:
        raise AbiError(f"Failed to encode parameters: {exc}") from exc
    return "0x" + encoded.hex()


def decode_params(
    types: Sequence[str],
    output: str,
    names: Optional[Sequence[str]] = None,
    strip_selector: bool = False,
) -> Union[list[Any], AbiResult]:
    """
    ABI-decode ``output`` against ``types``.

    Args:
        types: Solidity type strings
        output: ``0x``-prefixed hex data
        names: Optional output names; enables lookup by name
        strip_selector: Drop a leading 4-byte selector when present

    Returns:
        A list, or an ``AbiResult`` when ``names`` is given

    Raises:
        AbiError: If the data is not ``0x`` hex, not slot-aligned or truncated
    """
    if not isinstance(output, str) or not output.startswith("0x"):
        raise AbiError("hex string must have 0x prefix")
    data = output[2:]
    if strip_selector and len(data) % SLOT_HEX == SELECTOR_HEX:
        data = data[SELECTOR_HEX:]
    if len(data) % SLOT_HEX:
        raise AbiError("The encoded string is not valid. Its length must be a multiple of 64.")
    if data and not is_hex(data):
        raise AbiError("The encoded string is not valid hex.")

    parsed = [_parse_type(t) for t in types]
    try:
        decoded = decode([t.to_type_str() for t in parsed], bytes.fromhex(data))
    except (DecodingError, OverflowError, ValueError) as exc:
        raise AbiError(f"Failed to decode parameters: {exc}") from exc

    values = [_walk(t, v, _from_decoded) for t, v in zip(parsed, decoded)]
    if names:
        return AbiResult(values, names)
    return values


def encode_constructor_args(abi: list[dict[str, Any]], args: Sequence[Any]) -> str:
    """Encode constructor arguments (no ``0x``) or '' when the ABI has no constructor."""
    constructor = next(
        (e for e in abi if str(e.get("type", "")).lower() == "constructor"), None
    )
    if constructor is None:
        return ""
    inputs = constructor.get("inputs", [])
    if len(inputs) != len(args):
        raise AbiError(f"constructor needs {len(inputs)} but {len(args)} provided")
    return strip_0x(encode_params([canonical_type(p) for p in inputs], list(args)))
