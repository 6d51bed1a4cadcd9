"""
secp256k1 key management and signing for Mcash accounts.

This module handles:
- Account generation and private key loading (``MCASH_PRIVATE_KEY``)
- Transaction signing (ECDSA over the transaction id)
- Signed messages with the Mcash (or legacy Ethereum) header

Keys may be kept in ~/.mcashweb/.env as MCASH_PRIVATE_KEY (hex format).
The SDK itself never persists keys unless ``save_private_key`` is called.
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from eth_hash.auto import keccak
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from ..errors import SignatureError, ValidationError
from ..utils import hex_to_bytes, is_hex, strip_0x
from .address import ADDRESS_PREFIX, from_hex, normalize_private_key, same_address


# Default config directory
MCASH_DIR = Path.home() / ".mcashweb"
MCASH_ENV = MCASH_DIR / ".env"

MCASH_MESSAGE_HEADER = "\x19MCASH Signed Message:\n32"
ETH_MESSAGE_HEADER = "\x19Ethereum Signed Message:\n32"


def _private_key(private_key: str) -> keys.PrivateKey:
    try:
        return keys.PrivateKey(bytes.fromhex(normalize_private_key(private_key)))
    except (ValueError, TypeError, KeyValidationError) as exc:
        raise ValidationError("Invalid private key provided") from exc


def generate_account() -> dict[str, Any]:
    """
    Generate a new secp256k1 keypair.

    Returns:
        Dict with ``private_key`` (64 hex chars), ``public_key`` (130 hex
        chars, uncompressed ``04`` form) and ``address`` ({hex, base58}).
    """
    private_key = secrets.token_hex(32)
    key = _private_key(private_key)
    hex_address = ADDRESS_PREFIX + key.public_key.to_canonical_address().hex()
    return {
        "private_key": private_key,
        "public_key": "04" + key.public_key.to_bytes().hex(),
        "address": {"hex": hex_address, "base58": from_hex(hex_address)},
    }


def save_private_key(private_key: str, env_path: Optional[Path] = None) -> Path:
    """
    Save private key to .env file.

    Args:
        private_key: hex private key
        env_path: Path to .env file (default: ~/.mcashweb/.env)

    Returns:
        Path to the saved .env file
    """
    env_path = env_path or MCASH_ENV
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing = {}
    if env_path.exists():
        for line in env_path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                k, v = line.split("=", 1)
                existing[k.strip()] = v.strip()

    existing["MCASH_PRIVATE_KEY"] = normalize_private_key(private_key)

    lines = [f"{k}={v}" for k, v in existing.items()]
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    if os.name != "nt":
        env_path.chmod(0o600)

    return env_path


def load_private_key(env_path: Optional[Path] = None) -> str:
    """
    Load private key from .env file or environment.

    Args:
        env_path: Path to .env file (default: ~/.mcashweb/.env)

    Returns:
        hex private key without ``0x``

    Raises:
        ValueError: If MCASH_PRIVATE_KEY is not set
    """
    env_path = env_path or MCASH_ENV

    if env_path.exists():
        load_dotenv(env_path, override=False)

    private_key = os.environ.get("MCASH_PRIVATE_KEY")
    if not private_key:
        raise ValueError(
            f"MCASH_PRIVATE_KEY not found. Run 'mcashweb account new --save' or set "
            f"MCASH_PRIVATE_KEY in {env_path}"
        )
    return normalize_private_key(private_key)


def sign_digest(digest: bytes, private_key: str) -> str:
    """Sign a 32-byte digest; returns ``r || s || v`` hex with v in {1b, 1c}."""
    signature = _private_key(private_key).sign_msg_hash(digest)
    return f"{signature.r:064x}{signature.s:064x}{signature.v + 27:02x}"


def recover_address(digest: bytes, signature: str) -> str:
    """
    Recover the hex address that produced ``signature`` over ``digest``.

    Raises:
        SignatureError: If the signature is malformed.
    """
    sig = strip_0x(signature)
    if len(sig) < 130 or not is_hex(sig):
        raise SignatureError("Invalid signature provided")
    recovery = 1 if sig[128:130].lower() == "1c" else 0
    try:
        vrs = (recovery, int(sig[0:64], 16), int(sig[64:128], 16))
        public_key = keys.Signature(vrs=vrs).recover_public_key_from_msg_hash(digest)
    except (BadSignature, KeyValidationError, ValueError) as exc:
        raise SignatureError("Invalid signature provided") from exc
    return ADDRESS_PREFIX + public_key.to_canonical_address().hex()


def message_digest(message_hex: str, use_mcash_header: bool = True) -> bytes:
    header = MCASH_MESSAGE_HEADER if use_mcash_header else ETH_MESSAGE_HEADER
    return keccak(header.encode("utf-8") + hex_to_bytes(message_hex))


def sign_message(message_hex: str, private_key: str, use_mcash_header: bool = True) -> str:
    """
    Sign a hex message under the Mcash (or Ethereum) signed-message header.

    Args:
        message_hex: Message bytes as hex, with or without ``0x``
        private_key: hex private key
        use_mcash_header: False selects the legacy Ethereum header

    Returns:
        ``0x``-prefixed ``r || s || v`` signature

    Raises:
        ValidationError: If the message is not hex or the key is invalid
    """
    if not is_hex(message_hex):
        raise ValidationError("Expected hex message input")
    return "0x" + sign_digest(message_digest(message_hex, use_mcash_header), private_key)


def verify_signature(
    message_hex: str,
    address: str,
    signature: str,
    use_mcash_header: bool = True,
) -> bool:
    """Return True if ``signature`` over ``message_hex`` was made by ``address``."""
    recovered = recover_address(message_digest(message_hex, use_mcash_header), signature)
    return same_address(recovered, address)


def sign_transaction(transaction: dict[str, Any], private_key: str) -> dict[str, Any]:
    """Sign ``transaction['txID']`` and append the signature to its list.

    Existing signatures are kept so multi-signature transactions accumulate.
    """
    signature = sign_digest(bytes.fromhex(transaction["txID"]), private_key)
    transaction.setdefault("signature", []).append(signature)
    return transaction
