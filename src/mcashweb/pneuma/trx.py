"""
Mcash chain component: read queries, signing and broadcasting.

Read queries go to the full node (``wallet/*``) or the solidity node
(``walletsolidity/*``, confirmed state). Signing happens locally; a
transaction moves ``unsigned -> signed -> broadcast`` and each step refuses
objects in the wrong state before touching the network.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Optional, Union

from ..errors import PermissionDenied, RpcError, SignatureError, StateError, ValidationError
from ..plugin import Component, extension_point
from ..sigil import keys
from ..sigil.address import from_private_key, is_address, to_hex
from ..utils import is_hex, is_integer, to_utf8
from .schemas import TRANSACTION_SCHEMA, SchemaRegistry
from .validator import RESOURCES

if TYPE_CHECKING:
    from ..client import McashWeb

logger = logging.getLogger(__name__)

DIRECTIONS = ("to", "from", "all")
MIN_FREEZE_DAYS = 3


def _text(value: Any) -> Any:
    return to_utf8(value) if isinstance(value, str) and value and is_hex(value) else value


def parse_token(token: dict[str, Any]) -> dict[str, Any]:
    """Decode the hex-encoded text fields of an asset-issue record."""
    parsed = dict(token)
    for field in ("name", "abbr", "description", "url"):
        if parsed.get(field):
            parsed[field] = _text(parsed[field])
    return parsed


def _first_contract(transaction: Any) -> dict[str, Any]:
    try:
        return transaction["raw_data"]["contract"][0]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValidationError("Invalid transaction provided") from exc


class Mcash(Component):
    """Chain queries and the signer/broadcaster, bound to one client."""

    def __init__(self, client: "McashWeb") -> None:
        super().__init__()
        self.client = client
        self.cache: dict[str, dict[str, Any]] = {"contracts": {}}
        self.schemas = SchemaRegistry.default()

    # ============ Helpers ============

    def _address(self, address: Optional[str]) -> str:
        if address is None:
            address = self.client.default_address.get("hex")
        if not is_address(address):
            raise ValidationError("Invalid address provided")
        return to_hex(address)

    def _full(self, endpoint: str, payload: Optional[dict[str, Any]] = None, method: str = "post") -> Any:
        return self.client.full_node.request(endpoint, payload, method)

    def _solidity(self, endpoint: str, payload: Optional[dict[str, Any]] = None) -> Any:
        return self.client.solidity_node.request(endpoint, payload, "post")

    @staticmethod
    def _check_page(limit: Any, offset: Any) -> None:
        if not is_integer(limit) or limit < 0 or (offset and limit < 1):
            raise ValidationError("Invalid limit provided")
        if not is_integer(offset) or offset < 0:
            raise ValidationError("Invalid offset provided")

    # ============ Blocks ============

    @extension_point
    def get_current_block(self) -> dict[str, Any]:
        return self._full("wallet/getnowblock", method="get")

    @extension_point
    def get_confirmed_current_block(self) -> dict[str, Any]:
        return self.client.solidity_node.request("walletsolidity/getnowblock")

    @extension_point
    def get_block(self, block: Union[int, str, None] = None) -> dict[str, Any]:
        """
        Fetch a block by identifier.

        Args:
            block: ``"earliest"``, ``"latest"``, a block hash or a block number;
                defaults to the client's default block

        Raises:
            ValidationError: If no identifier is given and no default is set
            RpcError: If the block does not exist
        """
        if block is None:
            block = self.client.default_block
        if block is None:
            raise ValidationError("No block identifier provided")
        if block == "earliest":
            block = 0
        if block == "latest":
            return self.get_current_block()
        if isinstance(block, str) and is_hex(block) and not block.isdigit():
            return self.get_block_by_hash(block)
        if isinstance(block, str) and block.isdigit():
            block = int(block)
        return self.get_block_by_number(block)

    @extension_point
    def get_block_by_hash(self, block_hash: str) -> dict[str, Any]:
        block = self._full("wallet/getblockbyid", {"value": block_hash})
        if not block:
            raise RpcError("Block not found")
        return block

    @extension_point
    def get_block_by_number(self, block_id: int) -> dict[str, Any]:
        if not is_integer(block_id) or block_id < 0:
            raise ValidationError("Invalid block number provided")
        block = self._full("wallet/getblockbynum", {"num": block_id})
        if not block:
            raise RpcError("Block not found")
        return block

    def get_block_transaction_count(self, block: Union[int, str, None] = None) -> int:
        return len(self.get_block(block).get("transactions", []))

    def get_transaction_from_block(self, block: Union[int, str, None] = None, index: int = 0) -> dict[str, Any]:
        if not is_integer(index) or index < 0:
            raise ValidationError("Invalid transaction index provided")
        transactions = self.get_block(block).get("transactions") or []
        if len(transactions) <= index:
            raise RpcError("Transaction not found in block")
        return transactions[index]

    @extension_point
    def get_block_range(self, start: int = 0, end: int = 30) -> list[dict[str, Any]]:
        if not is_integer(start) or start < 0:
            raise ValidationError("Invalid start of range provided")
        if not is_integer(end) or end <= start:
            raise ValidationError("Invalid end of range provided")
        # the node treats end_num as exclusive
        result = self._full("wallet/getblockbylimitnext", {"start_num": start, "end_num": end + 1})
        return result.get("block", [])

    # ============ Transactions ============

    @extension_point
    def get_transaction(self, transaction_id: str) -> dict[str, Any]:
        transaction = self._full("wallet/gettransactionbyid", {"value": transaction_id})
        if not transaction:
            raise RpcError("Transaction not found")
        return transaction

    @extension_point
    def get_confirmed_transaction(self, transaction_id: str) -> dict[str, Any]:
        transaction = self._solidity("walletsolidity/gettransactionbyid", {"value": transaction_id})
        if not transaction:
            raise RpcError("Transaction not found")
        return transaction

    @extension_point
    def get_transaction_info(self, transaction_id: str) -> dict[str, Any]:
        """Execution receipt from the solidity node; ``{}`` until the transaction is indexed."""
        return self._solidity("walletsolidity/gettransactioninfobyid", {"value": transaction_id})

    def get_transactions_to_address(self, address: Optional[str] = None, limit: int = 30, offset: int = 0) -> list[dict[str, Any]]:
        return self.get_transactions_related(address, "to", limit, offset)

    def get_transactions_from_address(self, address: Optional[str] = None, limit: int = 30, offset: int = 0) -> list[dict[str, Any]]:
        return self.get_transactions_related(address, "from", limit, offset)

    @extension_point
    def get_transactions_related(
        self,
        address: Optional[str] = None,
        direction: str = "all",
        limit: int = 30,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """
        List transactions sent to and/or from ``address``.

        With ``direction="all"`` the two directions are queried concurrently,
        each record is tagged with its ``direction`` and the merged list is
        sorted by descending ``raw_data.timestamp``.
        """
        if direction not in DIRECTIONS:
            raise ValidationError('Invalid direction provided: Expected "to", "from" or "all"')

        if direction == "all":
            with ThreadPoolExecutor(max_workers=2) as pool:
                sent = pool.submit(self.get_transactions_related, address, "from", limit, offset)
                received = pool.submit(self.get_transactions_related, address, "to", limit, offset)
                tagged = [{**tx, "direction": "from"} for tx in sent.result()]
                tagged += [{**tx, "direction": "to"} for tx in received.result()]
            return sorted(
                tagged,
                key=lambda tx: tx.get("raw_data", {}).get("timestamp", 0),
                reverse=True,
            )

        hex_address = self._address(address)
        self._check_page(limit, offset)
        result = self._solidity(
            f"walletextension/gettransactions{direction}this",
            {"account": {"address": hex_address}, "offset": offset, "limit": limit},
        )
        return result.get("transaction", [])

    # ============ Accounts ============

    @extension_point
    def get_account(self, address: Optional[str] = None) -> dict[str, Any]:
        return self._full("wallet/getaccount", {"address": self._address(address)})

    @extension_point
    def get_balance(self, address: Optional[str] = None) -> int:
        """Balance in matoshi; 0 for accounts the node does not know."""
        return self.get_account(address).get("balance", 0)

    @extension_point
    def get_unconfirmed_account(self, address: Optional[str] = None) -> dict[str, Any]:
        return self._full("wallet/getaccount", {"address": self._address(address)})

    def get_unconfirmed_balance(self, address: Optional[str] = None) -> int:
        return self.get_unconfirmed_account(address).get("balance", 0)

    @extension_point
    def get_bandwidth(self, address: Optional[str] = None) -> int:
        """Remaining free plus staked bandwidth."""
        net = self._full("wallet/getaccountnet", {"address": self._address(address)})
        free = net.get("free_bandwidth_limit", 0) - net.get("free_bandwidth_used", 0)
        staked = net.get("bandwidth_limit", 0) - net.get("bandwidth_used", 0)
        return free + staked

    @extension_point
    def get_account_resources(self, address: Optional[str] = None) -> dict[str, Any]:
        return self._full("wallet/getaccountresource", {"address": self._address(address)})

    # ============ Tokens ============

    @extension_point
    def get_tokens_issued_by_address(self, address: Optional[str] = None) -> dict[str, dict[str, Any]]:
        """Tokens issued by ``address``, keyed by decoded token name."""
        result = self._full("wallet/getassetissuebyaccount", {"address": self._address(address)})
        tokens = [parse_token(token) for token in result.get("asset_issue") or []]
        return {token["name"]: token for token in tokens}

    @extension_point
    def get_token_from_id(self, token_id: Union[int, str]) -> dict[str, Any]:
        if isinstance(token_id, str) and token_id.strip().isdigit():
            token_id = int(token_id)
        if not is_integer(token_id):
            raise ValidationError("Invalid token ID provided")
        token = self._full("wallet/getassetissuebyid", {"value": token_id})
        if not token.get("name"):
            raise RpcError("Token does not exist")
        return parse_token(token)

    def get_token_by_id(self, token_id: Union[int, str]) -> dict[str, Any]:
        return self.get_token_from_id(token_id)

    @extension_point
    def list_tokens(self, limit: int = 0, offset: int = 0) -> list[dict[str, Any]]:
        """All tokens, or one page of them when ``limit`` is non-zero."""
        self._check_page(limit, offset)
        if not limit:
            result = self._full("wallet/getassetissuelist", method="get")
        else:
            result = self._full("wallet/getpaginatedassetissuelist", {"offset": offset, "limit": limit})
        return [parse_token(token) for token in result.get("assetIssue", [])]

    # ============ Network ============

    @extension_point
    def list_nodes(self) -> list[str]:
        result = self._full("wallet/listnodes", method="get")
        return [
            f"{_text(node['address']['host'])}:{node['address']['port']}"
            for node in result.get("nodes", [])
        ]

    @extension_point
    def list_super_representatives(self) -> list[dict[str, Any]]:
        return self._full("wallet/listwitnesses", method="get").get("witnesses", [])

    @extension_point
    def time_until_next_vote_cycle(self) -> int:
        """Seconds until the next maintenance period."""
        num = self._full("wallet/getnextmaintenancetime", method="get").get("num", -1)
        if num == -1:
            raise RpcError("Failed to get time until next vote cycle")
        return num // 1000

    @extension_point
    def get_node_info(self) -> dict[str, Any]:
        return self._full("wallet/getnodeinfo", {})

    @extension_point
    def get_chain_parameters(self) -> list[dict[str, Any]]:
        return self._full("wallet/getchainparameters", {}).get("chain_parameter", [])

    # ============ Proposals & exchanges ============

    @extension_point
    def get_proposal(self, proposal_id: int) -> dict[str, Any]:
        if not is_integer(proposal_id) or proposal_id < 0:
            raise ValidationError("Invalid proposalID provided")
        return self._full("wallet/getproposalbyid", {"id": proposal_id})

    @extension_point
    def list_proposals(self) -> list[dict[str, Any]]:
        return self._full("wallet/listproposals", {}).get("proposals", [])

    @extension_point
    def get_exchange_by_id(self, exchange_id: int) -> dict[str, Any]:
        if not is_integer(exchange_id) or exchange_id < 0:
            raise ValidationError("Invalid exchangeID provided")
        return self._full("wallet/getexchangebyid", {"id": exchange_id})

    @extension_point
    def list_exchanges(self) -> list[dict[str, Any]]:
        return self._full("wallet/listexchanges", {}).get("exchanges", [])

    @extension_point
    def list_exchanges_paginated(self, limit: int = 10, offset: int = 0) -> list[dict[str, Any]]:
        return self._full("wallet/listexchangespaginated", {"limit": limit, "offset": offset}).get("exchanges", [])

    # ============ Contracts ============

    @extension_point
    def get_contract(self, contract_address: str) -> dict[str, Any]:
        """Contract metadata (ABI, bytecode, origin), cached per address."""
        if not is_address(contract_address):
            raise ValidationError("Invalid contract address provided")
        hex_address = to_hex(contract_address)
        cached = self.cache["contracts"].get(hex_address)
        if cached is not None:
            return cached
        contract = self._full("wallet/getcontract", {"value": hex_address})
        if contract.get("Error"):
            raise RpcError("Contract does not exist", payload=contract)
        self.cache["contracts"][hex_address] = contract
        return contract

    # ============ Signing ============

    @extension_point
    def sign(
        self,
        transaction: Union[str, dict[str, Any]],
        private_key: Optional[str] = None,
        use_mcash_header: bool = True,
        multisig: bool = False,
    ) -> Union[str, dict[str, Any]]:
        """
        Sign a transaction, or a hex message.

        A hex string is signed as a message under the Mcash signed-message
        header (the Ethereum header when ``use_mcash_header`` is False) and
        the ``0x`` signature is returned. A transaction dict gets a signature
        appended to its ``signature`` list and is returned.

        Raises:
            StateError: If the transaction is already signed and ``multisig`` is False
            SignatureError: If the key does not belong to the transaction owner
            ValidationError: On malformed input or key
        """
        private_key = private_key or self.client.default_private_key
        if not private_key:
            raise ValidationError("Invalid private key provided")

        if isinstance(transaction, str):
            return keys.sign_message(transaction, private_key, use_mcash_header)

        if not isinstance(transaction, dict):
            raise ValidationError("Invalid transaction provided")
        if not multisig and transaction.get("signature"):
            raise StateError("Transaction is already signed")
        if not self.schemas.is_valid(transaction, TRANSACTION_SCHEMA):
            raise ValidationError("Invalid transaction provided")

        if not multisig:
            signer = from_private_key(private_key)
            if signer is None:
                raise ValidationError("Invalid private key provided")
            owner = _first_contract(transaction)["parameter"]["value"].get("owner_address", "")
            if to_hex(signer) != str(owner).lower():
                raise SignatureError("Private key does not match address in transaction")

        return keys.sign_transaction(transaction, private_key)

    @extension_point
    def multi_sign(
        self,
        transaction: dict[str, Any],
        private_key: Optional[str] = None,
        permission_id: int = 0,
    ) -> dict[str, Any]:
        """
        Add one signature toward permission ``permission_id``.

        Raises:
            PermissionDenied: If the node rejects the permission, the key is not
                part of it, or the key has already approved
        """
        private_key = private_key or self.client.default_private_key
        _first_contract(transaction)["Permission_id"] = permission_id

        signer = from_private_key(private_key) if private_key else None
        if signer is None:
            raise ValidationError("Invalid private key provided")
        address = to_hex(signer)

        weight = self.get_sign_weight(transaction, permission_id)
        result = weight.get("result") or {}
        if result.get("code") == PermissionDenied.PERMISSION_ERROR:
            raise PermissionDenied(_text(result.get("message", "")), PermissionDenied.PERMISSION_ERROR)

        permitted = {str(key.get("address", "")).lower() for key in (weight.get("permission") or {}).get("keys", [])}
        if address not in permitted:
            raise PermissionDenied(f"{address} has no permission to sign", PermissionDenied.NO_PERMISSION)
        if address in {str(a).lower() for a in weight.get("approved_list") or []}:
            raise PermissionDenied(f"{address} already signed transaction", PermissionDenied.ALREADY_SIGNED)

        refreshed = (weight.get("transaction") or {}).get("transaction")
        if not refreshed:
            raise ValidationError("Invalid transaction provided")
        _first_contract(refreshed)["Permission_id"] = permission_id
        return keys.sign_transaction(refreshed, private_key)

    @extension_point
    def get_approved_list(self, transaction: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(transaction, dict):
            raise ValidationError("Invalid transaction provided")
        return self._full("wallet/getapprovedlist", transaction)

    @extension_point
    def get_sign_weight(self, transaction: dict[str, Any], permission_id: Optional[int] = None) -> dict[str, Any]:
        contract = _first_contract(transaction)
        if is_integer(permission_id):
            contract["Permission_id"] = permission_id
        elif not is_integer(contract.get("Permission_id")):
            contract["Permission_id"] = 0
        return self._full("wallet/getsignweight", transaction)

    def verify_message(
        self,
        message: str,
        signature: str,
        address: Optional[str] = None,
        use_mcash_header: bool = True,
    ) -> bool:
        """
        Check that ``address`` (default: the client's) signed ``message``.

        Raises:
            SignatureError: If the signature does not match
        """
        if address is None:
            address = self.client.default_address.get("base58")
        if not is_hex(message):
            raise ValidationError("Expected hex message input")
        if not self.verify_signature(message, address, signature, use_mcash_header):
            raise SignatureError("Signature does not match")
        return True

    @staticmethod
    def verify_signature(message: str, address: str, signature: str, use_mcash_header: bool = True) -> bool:
        return keys.verify_signature(message, address, signature, use_mcash_header)

    # ============ Broadcasting ============

    @extension_point
    def send_raw_transaction(self, signed_transaction: dict[str, Any]) -> dict[str, Any]:
        """
        Broadcast a signed transaction.

        Returns:
            The node result; when accepted, ``transaction`` holds the signed
            transaction that was sent
        """
        if not isinstance(signed_transaction, dict):
            raise ValidationError("Invalid transaction provided")
        signatures = signed_transaction.get("signature")
        if not signatures or not isinstance(signatures, list):
            raise StateError("Transaction is not signed")
        if not self.schemas.is_valid(signed_transaction, TRANSACTION_SCHEMA):
            raise ValidationError("Invalid transaction provided")

        result = self._full("wallet/broadcasttransaction", signed_transaction)
        if result.get("result"):
            result["transaction"] = signed_transaction
        else:
            logger.warning("Broadcast of %s rejected: %s", signed_transaction.get("txID"), result)
        return result

    def _sender(self, private_key: Optional[str], address: Optional[str]) -> tuple[Optional[str], str]:
        private_key = private_key or self.client.default_private_key
        address = address or self.client.default_address.get("hex")
        if not private_key and not address:
            raise StateError("Function requires either a private key or address to be set")
        if private_key:
            derived = from_private_key(private_key)
            if derived is None:
                raise ValidationError("Invalid private key provided")
            address = derived
        return private_key, address

    def _sign_and_send(self, transaction: dict[str, Any], private_key: Optional[str]) -> dict[str, Any]:
        return self.send_raw_transaction(self.sign(transaction, private_key))

    @extension_point
    def send_transaction(
        self,
        to: str,
        amount: int,
        private_key: Optional[str] = None,
        address: Optional[str] = None,
        memo: str = "",
    ) -> dict[str, Any]:
        """Build, sign and broadcast an MCASH transfer."""
        if not is_address(to):
            raise ValidationError("Invalid recipient provided")
        if not is_integer(amount) or amount <= 0:
            raise ValidationError("Invalid amount provided")
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.send_mcash(to, amount, address, memo)
        return self._sign_and_send(transaction, private_key)

    @extension_point
    def send_token(
        self,
        to: str,
        amount: int,
        token_id: Union[int, str],
        private_key: Optional[str] = None,
        address: Optional[str] = None,
        memo: str = "",
    ) -> dict[str, Any]:
        if not is_address(to):
            raise ValidationError("Invalid recipient provided")
        if not is_integer(amount) or amount <= 0:
            raise ValidationError("Invalid amount provided")
        if isinstance(token_id, str) and token_id.strip().isdigit():
            token_id = int(token_id)
        if not is_integer(token_id):
            raise ValidationError("Invalid token ID provided")
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.send_token(to, amount, token_id, address, memo)
        return self._sign_and_send(transaction, private_key)

    @extension_point
    def freeze_balance(
        self,
        amount: int,
        duration: int = MIN_FREEZE_DAYS,
        resource: str = "BANDWIDTH",
        receiver_address: Optional[str] = None,
        private_key: Optional[str] = None,
        address: Optional[str] = None,
    ) -> dict[str, Any]:
        """Freeze ``amount`` matoshi for ``duration`` days to gain ``resource``."""
        if resource not in RESOURCES:
            raise ValidationError('Invalid resource provided: Expected "BANDWIDTH" or "ENERGY"')
        if not is_integer(amount) or amount <= 0:
            raise ValidationError("Invalid amount provided")
        if not is_integer(duration) or duration < MIN_FREEZE_DAYS:
            raise ValidationError("Invalid duration provided, minimum of 3 days")
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.freeze_balance(
            amount, duration, resource, address, receiver_address
        )
        return self._sign_and_send(transaction, private_key)

    @extension_point
    def unfreeze_balance(
        self,
        resource: str = "BANDWIDTH",
        receiver_address: Optional[str] = None,
        private_key: Optional[str] = None,
        address: Optional[str] = None,
    ) -> dict[str, Any]:
        if resource not in RESOURCES:
            raise ValidationError('Invalid resource provided: Expected "BANDWIDTH" or "ENERGY"')
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.unfreeze_balance(resource, address, receiver_address)
        return self._sign_and_send(transaction, private_key)

    @extension_point
    def stake(
        self,
        amount: int,
        duration: int = MIN_FREEZE_DAYS,
        private_key: Optional[str] = None,
        address: Optional[str] = None,
    ) -> dict[str, Any]:
        """Stake ``amount`` matoshi for voting power."""
        if not is_integer(amount) or amount <= 0:
            raise ValidationError("Invalid amount provided")
        if not is_integer(duration) or duration < MIN_FREEZE_DAYS:
            raise ValidationError("Invalid duration provided, minimum of 3 days")
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.stake(amount, duration, address)
        return self._sign_and_send(transaction, private_key)

    @extension_point
    def unstake(self, private_key: Optional[str] = None, address: Optional[str] = None) -> dict[str, Any]:
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.unstake(address)
        return self._sign_and_send(transaction, private_key)

    @extension_point
    def update_account(
        self,
        account_name: str,
        private_key: Optional[str] = None,
        address: Optional[str] = None,
    ) -> dict[str, Any]:
        """Set the account name. The chain allows this only once per account."""
        if not isinstance(account_name, str) or not account_name:
            raise ValidationError("Name must be a string")
        private_key, address = self._sender(private_key, address)
        transaction = self.client.transaction_builder.update_account(account_name, address)
        return self._sign_and_send(transaction, private_key)

    # ============ Aliases ============

    def sign_message(self, *args: Any, **kwargs: Any) -> Union[str, dict[str, Any]]:
        return self.sign(*args, **kwargs)

    def sign_transaction(self, *args: Any, **kwargs: Any) -> Union[str, dict[str, Any]]:
        return self.sign(*args, **kwargs)

    def send(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.send_transaction(*args, **kwargs)

    def send_mcash(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.send_transaction(*args, **kwargs)

    def send_asset(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.send_token(*args, **kwargs)

    def broadcast(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return self.send_raw_transaction(*args, **kwargs)
