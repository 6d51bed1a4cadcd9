"""
Transaction Builder - turn high-level intents into unsigned transactions.

Each method validates its inputs (first failure wins), converts addresses
to prefixed hex, ABI-encodes any contract arguments and asks the full node
to build the transaction. Nothing is signed or broadcast here.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

from ..errors import AbiError, RpcError, ValidationError
from ..plugin import Component, extension_point
from ..sigil.address import is_address, same_address, to_hex
from ..utils import from_utf8, is_hex, is_integer, strip_0x, to_utf8
from .abi import encode_constructor_args, encode_params, load_abi
from .validator import Check, validate

if TYPE_CHECKING:
    from ..client import McashWeb

logger = logging.getLogger(__name__)

# ============ Constants ============

DEFAULT_FEE_LIMIT = 1_000_000_000
MAX_FEE_LIMIT = 100_000_000_000
DEFAULT_USER_FEE_PERCENTAGE = 100
DEFAULT_ORIGIN_ENERGY_LIMIT = 10_000_000
MAX_ORIGIN_ENERGY_LIMIT = 10_000_000

RESOURCE_MESSAGE = 'Invalid resource provided: Expected "BANDWIDTH" or "ENERGY"'

OWNER_PERMISSION, WITNESS_PERMISSION, ACTIVE_PERMISSION = 0, 1, 2


# ============ Options ============


@dataclass(frozen=True)
class DeployOptions:
    abi: Union[str, list[dict[str, Any]]]
    bytecode: str
    parameters: Sequence[Any] = ()
    name: str = ""
    fee_limit: int = DEFAULT_FEE_LIMIT
    call_value: int = 0
    user_fee_percentage: int = DEFAULT_USER_FEE_PERCENTAGE
    origin_energy_limit: int = DEFAULT_ORIGIN_ENERGY_LIMIT
    token_value: Optional[int] = None
    token_id: Optional[int] = None


@dataclass(frozen=True)
class TriggerOptions:
    fee_limit: int = DEFAULT_FEE_LIMIT
    call_value: int = 0
    token_value: Optional[int] = None
    token_id: Optional[int] = None


@dataclass(frozen=True)
class TokenOptions:
    """Asset issue parameters. Timestamps are milliseconds since the epoch."""

    name: str
    abbreviation: str
    description: str
    url: str
    total_supply: int = 0
    mcash_ratio: int = 1
    token_ratio: int = 1
    sale_start: Optional[int] = None
    sale_end: Optional[int] = None
    free_bandwidth: int = 0
    free_bandwidth_limit: int = 0
    frozen_amount: int = 0
    frozen_duration: int = 0
    vote_score: Optional[int] = None
    precision: Optional[int] = None


@dataclass(frozen=True)
class TokenUpdateOptions:
    description: str
    url: str
    free_bandwidth: int = 0
    free_bandwidth_limit: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_int(value: Any) -> Any:
    """Accept integer strings for amounts, leave anything else to the validator."""
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        return int(value)
    return value


def result_manager(transaction: Any) -> Any:
    """Raise the node's error, if any, else return the built transaction."""
    if not isinstance(transaction, dict):
        return transaction
    if transaction.get("Error"):
        raise RpcError(str(transaction["Error"]), payload=transaction)
    result = transaction.get("result")
    if isinstance(result, dict) and result.get("message"):
        message = result["message"]
        raise RpcError(to_utf8(message) if is_hex(message) else message, payload=transaction)
    return transaction


class TransactionBuilder(Component):
    """Builds unsigned transactions against the client's full node."""

    def __init__(self, client: "McashWeb") -> None:
        super().__init__()
        self.client = client

    def _default(self, address: Optional[str]) -> Optional[str]:
        if address is not None:
            return address
        return self.client.default_address.get("hex")

    def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug("Building %s", endpoint)
        return result_manager(self.client.full_node.request(endpoint, payload, "post"))

    # ============ Transfers ============

    @extension_point
    def send_mcash(
        self,
        to: str,
        amount: int,
        from_address: Optional[str] = None,
        memo: str = "",
    ) -> dict[str, Any]:
        """Build a native MCASH transfer of ``amount`` matoshi."""
        from_address = self._default(from_address)
        amount = _as_int(amount)
        validate(
            Check("recipient", "address", to),
            Check("origin", "address", from_address),
            Check("", "notEqual", names=("recipient", "origin"),
                  msg="Cannot transfer MCASH to the same account"),
            Check("amount", "integer", amount, gt=0),
            Check("memo", "string", memo),
        )
        payload = {"to_address": to_hex(to), "owner_address": to_hex(from_address), "amount": amount}
        if memo:
            payload["memo"] = from_utf8(memo)
        return self._post("wallet/createtransaction", payload)

    @extension_point
    def send_token(
        self,
        to: str,
        amount: int,
        token_id: Union[int, str],
        from_address: Optional[str] = None,
        memo: str = "",
    ) -> dict[str, Any]:
        from_address = self._default(from_address)
        amount = _as_int(amount)
        validate(
            Check("recipient", "address", to),
            Check("origin", "address", from_address),
            Check("", "notEqual", names=("recipient", "origin"),
                  msg="Cannot transfer tokens to the same account"),
            Check("amount", "integer", amount, gt=0),
            Check("token ID", "tokenId", token_id),
            Check("memo", "string", memo),
        )
        payload = {
            "to_address": to_hex(to),
            "owner_address": to_hex(from_address),
            "asset_id": int(token_id),
            "amount": amount,
        }
        if memo:
            payload["memo"] = from_utf8(memo)
        return self._post("wallet/transferasset", payload)

    @extension_point
    def purchase_token(
        self,
        issuer_address: str,
        token_id: Union[int, str],
        amount: int,
        buyer: Optional[str] = None,
    ) -> dict[str, Any]:
        buyer = self._default(buyer)
        validate(
            Check("buyer", "address", buyer),
            Check("issuer", "address", issuer_address),
            Check("", "notEqual", names=("buyer", "issuer"),
                  msg="Cannot purchase tokens from same account"),
            Check("amount", "integer", amount, gt=0),
            Check("token ID", "tokenId", token_id),
        )
        return self._post("wallet/participateassetissue", {
            "to_address": to_hex(issuer_address),
            "owner_address": to_hex(buyer),
            "asset_id": int(token_id),
            "amount": amount,
        })

    # ============ Resources ============

    @extension_point
    def freeze_balance(
        self,
        amount: int,
        duration: int = 3,
        resource: str = "BANDWIDTH",
        address: Optional[str] = None,
        receiver_address: Optional[str] = None,
    ) -> dict[str, Any]:
        address = self._default(address)
        validate(
            Check("origin", "address", address),
            Check("receiver", "address", receiver_address, optional=True),
            Check("amount", "integer", amount, gt=0),
            Check("duration", "integer", duration, gte=0),
            Check("resource", "resource", resource, msg=RESOURCE_MESSAGE),
        )
        payload = {
            "owner_address": to_hex(address),
            "frozen_balance": amount,
            "frozen_duration": duration,
            "resource": resource,
        }
        if receiver_address is not None and not same_address(receiver_address, address):
            payload["receiver_address"] = to_hex(receiver_address)
        return self._post("wallet/freezebalance", payload)

    @extension_point
    def unfreeze_balance(
        self,
        resource: str = "BANDWIDTH",
        address: Optional[str] = None,
        receiver_address: Optional[str] = None,
    ) -> dict[str, Any]:
        address = self._default(address)
        validate(
            Check("origin", "address", address),
            Check("receiver", "address", receiver_address, optional=True),
            Check("resource", "resource", resource, msg=RESOURCE_MESSAGE),
        )
        payload = {"owner_address": to_hex(address), "resource": resource}
        if receiver_address is not None and not same_address(receiver_address, address):
            payload["receiver_address"] = to_hex(receiver_address)
        return self._post("wallet/unfreezebalance", payload)

    @extension_point
    def unfreeze_asset(self, address: Optional[str] = None) -> dict[str, Any]:
        address = self._default(address)
        validate(Check("owner", "address", address))
        return self._post("wallet/unfreezeasset", {"owner_address": to_hex(address)})

    @extension_point
    def stake(self, amount: int, duration: int = 3, address: Optional[str] = None) -> dict[str, Any]:
        address = self._default(address)
        validate(
            Check("origin", "address", address),
            Check("amount", "integer", amount, gt=0),
            Check("duration", "integer", duration, gte=0),
        )
        return self._post("wallet/stake", {
            "owner_address": to_hex(address),
            "stake_amount": amount,
            "stake_duration": duration,
        })

    @extension_point
    def unstake(self, address: Optional[str] = None) -> dict[str, Any]:
        address = self._default(address)
        validate(Check("origin", "address", address))
        return self._post("wallet/unstake", {"owner_address": to_hex(address)})

    @extension_point
    def withdraw_block_rewards(self, address: Optional[str] = None) -> dict[str, Any]:
        address = self._default(address)
        validate(Check("origin", "address", address))
        return self._post("wallet/withdrawbalance", {"owner_address": to_hex(address)})

    # ============ Accounts & witnesses ============

    @extension_point
    def create_witness(self, url: str, owner_address: Optional[str] = None) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("url", "url", url, msg="Invalid url provided"),
        )
        return self._post("wallet/createwitness", {
            "owner_address": to_hex(owner_address),
            "url": from_utf8(url),
        })

    @extension_point
    def create_account(self, account_address: str, owner_address: Optional[str] = None) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("account", "address", account_address),
        )
        return self._post("wallet/createaccount", {
            "owner_address": to_hex(owner_address),
            "account_address": to_hex(account_address),
        })

    @extension_point
    def vote(self, vote_address: str, owner_address: Optional[str] = None) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("vote", "address", vote_address),
        )
        return self._post("wallet/votewitnessaccount", {
            "owner_address": to_hex(owner_address),
            "vote_address": to_hex(vote_address),
        })

    @extension_point
    def update_account(self, account_name: str, address: Optional[str] = None) -> dict[str, Any]:
        address = self._default(address)
        validate(
            Check("Name", "not-empty-string", account_name),
            Check("origin", "address", address),
        )
        return self._post("wallet/updateaccount", {
            "account_name": from_utf8(account_name),
            "owner_address": to_hex(address),
        })

    # ============ Smart contracts ============

    @extension_point
    def create_smart_contract(self, options: DeployOptions, issuer_address: Optional[str] = None) -> dict[str, Any]:
        """
        Build a contract deployment transaction.

        Constructor arguments (``options.parameters``) are ABI-encoded when the
        ABI declares a constructor; their count must match its inputs.

        Raises:
            ValidationError: On invalid options or a payability mismatch
            AbiError: If the constructor arguments cannot be encoded
        """
        issuer_address = self._default(issuer_address)
        try:
            abi = load_abi(options.abi)
        except AbiError as exc:
            raise ValidationError("Invalid options.abi provided") from exc
        if not options.abi:
            raise ValidationError("Invalid options.abi provided")

        call_value = options.call_value or 0
        token_value = options.token_value
        validate(
            Check("bytecode", "hex", options.bytecode),
            Check("feeLimit", "integer", options.fee_limit, gt=0, lte=MAX_FEE_LIMIT),
            Check("callValue", "integer", call_value, gte=0),
            Check("userFeePercentage", "integer", options.user_fee_percentage, gte=0, lte=100),
            Check("originEnergyLimit", "integer", options.origin_energy_limit,
                  gte=0, lte=MAX_ORIGIN_ENERGY_LIMIT),
            Check("parameters", "array", options.parameters),
            Check("issuer", "address", issuer_address),
            Check("tokenValue", "integer", token_value, gte=0, optional=True),
            Check("tokenId", "integer", options.token_id, gte=0, optional=True),
        )

        payable = any(
            str(entry.get("type", "")).lower() == "constructor"
            and (entry.get("payable") or str(entry.get("stateMutability", "")).lower() == "payable")
            for entry in abi
        )
        if payable and call_value == 0 and not token_value:
            raise ValidationError(
                "When contract is payable, options.callValue or options.tokenValue "
                "must be a positive integer"
            )
        if not payable and (call_value > 0 or (token_value or 0) > 0):
            raise ValidationError(
                "When contract is not payable, options.callValue and options.tokenValue must be 0"
            )

        payload: dict[str, Any] = {
            "owner_address": to_hex(issuer_address),
            "fee_limit": options.fee_limit,
            "call_value": call_value,
            "consume_user_resource_percent": options.user_fee_percentage,
            "origin_energy_limit": options.origin_energy_limit,
            "abi": json.dumps(abi, separators=(",", ":")),
            "bytecode": strip_0x(options.bytecode),
            "parameter": encode_constructor_args(abi, list(options.parameters)),
            "name": options.name,
        }
        if token_value is not None:
            payload["call_token_value"] = token_value
        if options.token_id is not None:
            payload["token_id"] = options.token_id
        return self._post("wallet/deploycontract", payload)

    @extension_point
    def trigger_smart_contract(
        self,
        contract_address: str,
        function_selector: str,
        options: Optional[TriggerOptions] = None,
        parameters: Sequence[dict[str, Any]] = (),
        issuer_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Build (or constant-execute) a contract function call.

        Args:
            contract_address: Target contract
            function_selector: ``name(type,...)``
            options: Fee limit, call value and token transfer
            parameters: ``[{"type": ..., "value": ...}]`` in call order
            issuer_address: Caller (defaults to the client address)

        Returns:
            The node response: ``{"result": ..., "transaction": ..., "constant_result"?: [...]}``
        """
        options = options or TriggerOptions()
        issuer_address = self._default(issuer_address)
        validate(
            Check("feeLimit", "integer", options.fee_limit, gt=0, lte=MAX_FEE_LIMIT),
            Check("callValue", "integer", options.call_value, gte=0),
            Check("parameters", "array", parameters),
            Check("contract", "address", contract_address),
            Check("issuer", "address", issuer_address),
            Check("tokenValue", "integer", options.token_value, gte=0, optional=True),
            Check("tokenId", "integer", options.token_id, gte=0, optional=True),
            Check("function selector", "not-empty-string", function_selector),
        )

        encoded = ""
        if parameters:
            types, values = [], []
            for param in parameters:
                param_type = param.get("type") if isinstance(param, dict) else None
                if not isinstance(param_type, str) or not param_type:
                    raise ValidationError(f"Invalid parameter type provided: {param_type}")
                types.append(param_type)
                values.append(param.get("value"))
            encoded = strip_0x(encode_params(types, values))

        payload: dict[str, Any] = {
            "contract_address": to_hex(contract_address),
            "owner_address": to_hex(issuer_address),
            "function_selector": re.sub(r"\s+", "", function_selector),
            "fee_limit": options.fee_limit,
            "call_value": options.call_value,
            "parameter": encoded,
        }
        if options.token_value is not None:
            payload["call_token_value"] = options.token_value
        if options.token_id is not None:
            payload["token_id"] = options.token_id
        return self._post("wallet/triggersmartcontract", payload)

    @extension_point
    def update_setting(
        self,
        contract_address: str,
        user_fee_percentage: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("contract", "address", contract_address),
            Check("userFeePercentage", "integer", user_fee_percentage, gte=0, lte=100),
        )
        return self._post("wallet/updatesetting", {
            "owner_address": to_hex(owner_address),
            "contract_address": to_hex(contract_address),
            "consume_user_resource_percent": user_fee_percentage,
        })

    @extension_point
    def update_energy_limit(
        self,
        contract_address: str,
        origin_energy_limit: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("contract", "address", contract_address),
            Check("originEnergyLimit", "integer", origin_energy_limit,
                  gte=0, lte=MAX_ORIGIN_ENERGY_LIMIT),
        )
        return self._post("wallet/updateenergylimit", {
            "owner_address": to_hex(owner_address),
            "contract_address": to_hex(contract_address),
            "origin_energy_limit": origin_energy_limit,
        })

    # ============ Tokens ============

    @extension_point
    def create_token(self, options: TokenOptions, issuer_address: Optional[str] = None) -> dict[str, Any]:
        issuer_address = self._default(issuer_address)
        now = _now_ms()
        sale_start = now if options.sale_start is None else options.sale_start
        validate(
            Check("Supply amount", "positive-integer", options.total_supply),
            Check("MCASH ratio", "positive-integer", options.mcash_ratio),
            Check("Token ratio", "positive-integer", options.token_ratio),
            Check("token abbreviation", "not-empty-string", options.abbreviation),
            Check("token name", "not-empty-string", options.name),
            Check("token description", "not-empty-string", options.description),
            Check("token url", "url", options.url),
            Check("issuer", "address", issuer_address),
            Check("sale start timestamp", "integer", sale_start, gte=now),
            Check("sale end timestamp", "integer", options.sale_end,
                  gt=sale_start if is_integer(sale_start) else None),
            Check("Free bandwidth amount", "integer", options.free_bandwidth, gte=0),
            Check("Free bandwidth limit", "integer", options.free_bandwidth_limit, gte=0),
            Check("Frozen supply", "integer", options.frozen_amount, gte=0),
            Check("Frozen duration", "integer", options.frozen_duration, gte=0),
        )
        if options.vote_score is not None and (not is_integer(options.vote_score) or options.vote_score <= 0):
            raise ValidationError("voteScore must be a positive integer greater than 0")
        if options.precision is not None and (
            not is_integer(options.precision) or not 0 <= options.precision <= 8
        ):
            raise ValidationError("precision must be a positive integer >= 0 and <= 8")

        payload: dict[str, Any] = {
            "owner_address": to_hex(issuer_address),
            "name": from_utf8(options.name),
            "abbr": from_utf8(options.abbreviation),
            "description": from_utf8(options.description),
            "url": from_utf8(options.url),
            "total_supply": options.total_supply,
            "mcash_num": options.mcash_ratio,
            "num": options.token_ratio,
            "start_time": sale_start,
            "end_time": options.sale_end,
            "free_asset_bandwidth_limit": options.free_bandwidth,
            "public_free_asset_bandwidth_limit": options.free_bandwidth_limit,
            "frozen_supply": {
                "frozen_amount": options.frozen_amount,
                "frozen_days": options.frozen_duration,
            },
        }
        if options.precision:
            payload["precision"] = options.precision
        if options.vote_score:
            payload["vote_score"] = options.vote_score
        return self._post("wallet/createassetissue", payload)

    @extension_point
    def update_token(self, options: TokenUpdateOptions, issuer_address: Optional[str] = None) -> dict[str, Any]:
        issuer_address = self._default(issuer_address)
        validate(
            Check("token description", "not-empty-string", options.description),
            Check("token url", "url", options.url),
            Check("issuer", "address", issuer_address),
            Check("Free bandwidth amount", "positive-integer", options.free_bandwidth),
            Check("Free bandwidth limit", "positive-integer", options.free_bandwidth_limit),
        )
        return self._post("wallet/updateasset", {
            "owner_address": to_hex(issuer_address),
            "description": from_utf8(options.description),
            "url": from_utf8(options.url),
            "new_limit": options.free_bandwidth,
            "new_public_limit": options.free_bandwidth_limit,
        })

    # ============ Proposals ============

    @extension_point
    def create_proposal(
        self,
        parameters: Union[dict[str, Any], list[dict[str, Any]]],
        issuer_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """Propose chain parameter changes, e.g. ``[{"key": 0, "value": 100000}]``."""
        issuer_address = self._default(issuer_address)
        validate(Check("issuer", "address", issuer_address))
        invalid = "Invalid proposal parameters provided"
        if not parameters:
            raise ValidationError(invalid)
        if not isinstance(parameters, list):
            parameters = [parameters]
        if not all(isinstance(p, dict) for p in parameters):
            raise ValidationError(invalid)
        return self._post("wallet/proposalcreate", {
            "owner_address": to_hex(issuer_address),
            "parameters": parameters,
        })

    @extension_point
    def delete_proposal(self, proposal_id: int, issuer_address: Optional[str] = None) -> dict[str, Any]:
        issuer_address = self._default(issuer_address)
        validate(
            Check("issuer", "address", issuer_address),
            Check("proposalId", "integer", proposal_id, gte=0),
        )
        return self._post("wallet/proposaldelete", {
            "owner_address": to_hex(issuer_address),
            "proposal_id": proposal_id,
        })

    @extension_point
    def vote_proposal(
        self,
        proposal_id: int,
        is_approval: bool,
        voter_address: Optional[str] = None,
    ) -> dict[str, Any]:
        voter_address = self._default(voter_address)
        validate(
            Check("voter", "address", voter_address),
            Check("proposalId", "integer", proposal_id, gte=0),
            Check("has approval", "boolean", is_approval),
        )
        return self._post("wallet/proposalapprove", {
            "owner_address": to_hex(voter_address),
            "proposal_id": proposal_id,
            "is_add_approval": is_approval,
        })

    # ============ Exchanges ============

    @extension_point
    def create_mcash_exchange(
        self,
        token_id: int,
        token_balance: int,
        mcash_balance: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("token id", "integer", token_id, gte=0),
            Check("token balance", "positive-integer", token_balance),
            Check("mcash balance", "positive-integer", mcash_balance),
        )
        # second token id 0 is MCASH itself
        return self._post("wallet/exchangecreate", {
            "owner_address": to_hex(owner_address),
            "first_token_id": token_id,
            "first_token_balance": token_balance,
            "second_token_id": 0,
            "second_token_balance": mcash_balance,
        })

    @extension_point
    def create_token_exchange(
        self,
        first_token_id: int,
        first_token_balance: int,
        second_token_id: int,
        second_token_balance: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            Check("owner", "address", owner_address),
            Check("first token id", "integer", first_token_id, gte=0),
            Check("second token id", "integer", second_token_id, gte=0),
            Check("first token balance", "positive-integer", first_token_balance),
            Check("second token balance", "positive-integer", second_token_balance),
        )
        return self._post("wallet/exchangecreate", {
            "owner_address": to_hex(owner_address),
            "first_token_id": first_token_id,
            "first_token_balance": first_token_balance,
            "second_token_id": second_token_id,
            "second_token_balance": second_token_balance,
        })

    def _exchange_checks(self, owner_address: Optional[str], token_id: int) -> list[Check]:
        return [
            Check("owner", "address", owner_address),
            Check("tokenId", "integer", token_id, gte=0),
        ]

    @extension_point
    def inject_exchange_tokens(
        self,
        exchange_id: int,
        token_id: int,
        token_amount: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            *self._exchange_checks(owner_address, token_id),
            Check("tokenAmount", "integer", token_amount, gte=1),
            Check("exchangeId", "integer", exchange_id, gte=0),
        )
        return self._post("wallet/exchangeinject", {
            "owner_address": to_hex(owner_address),
            "exchange_id": exchange_id,
            "token_id": token_id,
            "quant": token_amount,
        })

    @extension_point
    def withdraw_exchange_tokens(
        self,
        exchange_id: int,
        token_id: int,
        token_amount: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            *self._exchange_checks(owner_address, token_id),
            Check("tokenAmount", "integer", token_amount, gte=1),
            Check("exchangeId", "integer", exchange_id, gte=0),
        )
        return self._post("wallet/exchangewithdraw", {
            "owner_address": to_hex(owner_address),
            "exchange_id": exchange_id,
            "token_id": token_id,
            "quant": token_amount,
        })

    @extension_point
    def trade_exchange_tokens(
        self,
        exchange_id: int,
        token_id: int,
        token_amount_sold: int,
        token_amount_expected: int,
        owner_address: Optional[str] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        validate(
            *self._exchange_checks(owner_address, token_id),
            Check("tokenAmountSold", "integer", token_amount_sold, gte=1),
            Check("tokenAmountExpected", "integer", token_amount_expected, gte=1),
            Check("exchangeId", "integer", exchange_id, gte=0),
        )
        return self._post("wallet/exchangetransaction", {
            "owner_address": to_hex(owner_address),
            "exchange_id": exchange_id,
            "token_id": token_id,
            "quant": token_amount_sold,
            "expected": token_amount_expected,
        })

    # ============ Permissions ============

    def check_permissions(self, permission: Optional[dict[str, Any]], permission_type: int) -> bool:
        """Validate one permission block; an absent block is valid."""
        if not permission:
            return True
        threshold = permission.get("threshold")
        if (
            permission.get("type") != permission_type
            or not isinstance(permission.get("permission_name"), str)
            or not permission["permission_name"]
            or not is_integer(threshold)
            or threshold < 1
            or not permission.get("keys")
        ):
            return False
        if permission_type == ACTIVE_PERMISSION and not permission.get("operations"):
            return False
        for key in permission["keys"]:
            weight = key.get("weight")
            if not is_address(key.get("address")) or not is_integer(weight) or not 1 <= weight <= threshold:
                return False
        return True

    @staticmethod
    def _hex_keys(permission: dict[str, Any]) -> dict[str, Any]:
        keys = [{**key, "address": to_hex(key["address"])} for key in permission["keys"]]
        return {**permission, "keys": keys}

    @extension_point
    def update_account_permissions(
        self,
        owner_address: Optional[str] = None,
        owner_permissions: Optional[dict[str, Any]] = None,
        witness_permissions: Optional[dict[str, Any]] = None,
        actives_permissions: Union[dict[str, Any], list[dict[str, Any]], None] = None,
    ) -> dict[str, Any]:
        owner_address = self._default(owner_address)
        if not is_address(owner_address):
            raise ValidationError("Invalid ownerAddress provided")
        if not self.check_permissions(owner_permissions, OWNER_PERMISSION):
            raise ValidationError("Invalid ownerPermissions provided")
        if not self.check_permissions(witness_permissions, WITNESS_PERMISSION):
            raise ValidationError("Invalid witnessPermissions provided")
        actives = actives_permissions
        if actives is not None and not isinstance(actives, list):
            actives = [actives]
        for active in actives or []:
            if not self.check_permissions(active, ACTIVE_PERMISSION):
                raise ValidationError("Invalid activesPermissions provided")

        payload: dict[str, Any] = {"owner_address": to_hex(owner_address)}
        if owner_permissions:
            payload["owner"] = self._hex_keys(owner_permissions)
        if witness_permissions:
            payload["witness"] = self._hex_keys(witness_permissions)
        if actives:
            hexed = [self._hex_keys(a) for a in actives if a]
            payload["actives"] = hexed[0] if len(hexed) == 1 else hexed
        return self._post("wallet/accountpermissionupdate", payload)

    # ============ Aliases ============

    def send_asset(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.send_token(*args, **kwargs)

    def purchase_asset(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.purchase_token(*args, **kwargs)

    def create_asset(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.create_token(*args, **kwargs)

    def update_asset(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.update_token(*args, **kwargs)
