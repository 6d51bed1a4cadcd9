"""Tests for the ABI coder (pneuma/abi.py)."""

from __future__ import annotations

import json

import pytest

from conftest import ADDRESS_BASE58, ADDRESS_HEX
from mcashweb.errors import AbiError
from mcashweb.pneuma.abi import (
    AbiResult,
    canonical_type,
    decode_params,
    encode_constructor_args,
    encode_params,
    function_selector,
    load_abi,
    method_id,
)

TOKEN_TYPES = ["string", "string", "uint8", "bytes32", "uint256"]
TOKEN_VALUES = [
    "Pi Day N00b Token",
    "PIE",
    18,
    "0xdc03b7993bad736ad595eb9e3ba51877ac17ecc31d2355f8f270125b9427ece7",
    0,
]
TOKEN_OUTPUT = (
    "0x00000000000000000000000000000000000000000000000000000000000000a0"
    "00000000000000000000000000000000000000000000000000000000000000e0"
    "0000000000000000000000000000000000000000000000000000000000000012"
    "dc03b7993bad736ad595eb9e3ba51877ac17ecc31d2355f8f270125b9427ece7"
    "0000000000000000000000000000000000000000000000000000000000000000"
    "0000000000000000000000000000000000000000000000000000000000000011"
    "506920446179204e30306220546f6b656e000000000000000000000000000000"
    "0000000000000000000000000000000000000000000000000000000000000003"
    "5049450000000000000000000000000000000000000000000000000000000000"
)
# Selector 6630f88f followed by an ABI-encoded "asdf"
PREFIXED_OUTPUT = (
    "0x6630f88f"
    "0000000000000000000000000000000000000000000000000000000000000020"
    "0000000000000000000000000000000000000000000000000000000000000004"
    "6173646600000000000000000000000000000000000000000000000000000000"
)


class TestDecodeParams:
    def test_decode_by_position(self) -> None:
        assert decode_params(TOKEN_TYPES, TOKEN_OUTPUT) == TOKEN_VALUES

    def test_decode_with_names(self) -> None:
        names = ["Token", "Graph", "Qty", "Bytes", "Total"]
        result = decode_params(TOKEN_TYPES, TOKEN_OUTPUT, names=names)
        assert isinstance(result, AbiResult)
        assert result["Token"] == "Pi Day N00b Token"
        assert result["Qty"] == 18
        assert result[1] == "PIE"
        assert result.asdict() == dict(zip(names, TOKEN_VALUES))

    def test_unnamed_outputs_only_by_index(self) -> None:
        result = decode_params(["uint256", "uint256"], "0x" + "00" * 31 + "01" + "00" * 31 + "02", names=["a", ""])
        assert result.keys() == ["a"]
        assert result[1] == 2

    def test_requires_0x_prefix(self) -> None:
        with pytest.raises(AbiError, match="hex string must have 0x prefix"):
            decode_params(TOKEN_TYPES, TOKEN_OUTPUT[2:])

    def test_truncated_dynamic_data(self) -> None:
        truncated = TOKEN_OUTPUT[: -64 * 2] + "5049450000000000000000000000000000000000000000000000000000000000"
        with pytest.raises(AbiError):
            decode_params(TOKEN_TYPES, truncated)

    def test_offset_past_the_end(self) -> None:
        with pytest.raises(AbiError, match="Failed to decode parameters"):
            decode_params(["string"], "0x" + "ff" * 32)

    def test_selector_makes_length_invalid(self) -> None:
        with pytest.raises(AbiError, match="Its length must be a multiple of 64"):
            decode_params(["string"], PREFIXED_OUTPUT)

    def test_strip_selector(self) -> None:
        assert decode_params(["string"], PREFIXED_OUTPUT, strip_selector=True) == ["asdf"]

    def test_addresses_come_back_prefixed(self) -> None:
        encoded = encode_params(["address", "address[]"], [ADDRESS_BASE58, [ADDRESS_HEX]])
        assert decode_params(["address", "address[]"], encoded) == [ADDRESS_HEX, [ADDRESS_HEX]]


class TestEncodeParams:
    def test_encode(self) -> None:
        assert encode_params(TOKEN_TYPES, TOKEN_VALUES) == TOKEN_OUTPUT

    def test_addresses_in_both_forms(self) -> None:
        expected = (
            "0x0000000000000000000000000000000000000000000000000000000000000060"
            "000000000000000000000000bf82fd6597cd3200c468220ecd7cf47c1a4cb149"
            "000000000000000000000000bf82fd6597cd3200c468220ecd7cf47c1a4cb149"
            "0000000000000000000000000000000000000000000000000000000000000005"
            "4f6e776572000000000000000000000000000000000000000000000000000000"
        )
        assert encode_params(["string", "address", "address"], ["Onwer", ADDRESS_HEX, ADDRESS_BASE58]) == expected

    def test_mcash_token_is_uint256(self) -> None:
        assert encode_params(["mcashToken"], [5]) == encode_params(["uint256"], [5])

    def test_numeric_strings(self) -> None:
        assert encode_params(["uint256"], ["0x10"]) == encode_params(["uint256"], [16])

    def test_tuples(self) -> None:
        encoded = encode_params(["(uint256,address)"], [(7, ADDRESS_BASE58)])
        assert decode_params(["(uint256,address)"], encoded) == [(7, ADDRESS_HEX)]

    def test_length_mismatch(self) -> None:
        with pytest.raises(AbiError, match="length mismatch"):
            encode_params(["uint256"], [1, 2])

    def test_invalid_type(self) -> None:
        with pytest.raises(AbiError, match="Invalid parameter type provided"):
            encode_params(["uint7"], [1])

    def test_invalid_address(self) -> None:
        with pytest.raises(AbiError, match="Invalid address value"):
            encode_params(["address"], ["M-not-an-address"])

    def test_out_of_range(self) -> None:
        with pytest.raises(AbiError, match="Failed to encode"):
            encode_params(["uint8"], [256])

    def test_odd_length_bytes(self) -> None:
        with pytest.raises(AbiError, match="Odd-length hex value for bytes"):
            encode_params(["bytes"], ["0x123"])


class TestAbiJson:
    ABI = [
        {"type": "constructor", "inputs": [{"name": "supply", "type": "uint256"}]},
        {
            "type": "function",
            "name": "transfer",
            "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
            "outputs": [{"name": "", "type": "bool"}],
        },
    ]

    def test_load_from_string(self) -> None:
        assert load_abi(json.dumps(self.ABI)) == self.ABI
        assert load_abi(None) == []

    def test_load_rejects_bad_json(self) -> None:
        with pytest.raises(AbiError, match="Invalid ABI JSON"):
            load_abi("[{")

    def test_load_rejects_bad_entries(self) -> None:
        with pytest.raises(AbiError):
            load_abi([{"type": "function", "inputs": [{"name": "x"}]}])

    def test_selectors(self) -> None:
        assert function_selector(self.ABI[1]) == "transfer(address,uint256)"
        assert method_id("transfer(address,uint256)") == "a9059cbb"

    def test_canonical_tuple_type(self) -> None:
        param = {"type": "tuple[]", "components": [{"type": "uint256"}, {"type": "address"}]}
        assert canonical_type(param) == "(uint256,address)[]"

    def test_constructor_args(self) -> None:
        assert encode_constructor_args(self.ABI, [1]) == "00" * 31 + "01"
        assert encode_constructor_args(self.ABI[1:], []) == ""
        with pytest.raises(AbiError, match="constructor needs 1"):
            encode_constructor_args(self.ABI, [])
