"""
Sigil - Addresses and keys.

Base58check/hex address codec and secp256k1 signing for transactions and
signed messages.
"""
