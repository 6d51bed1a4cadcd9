"""
Pneuma - Node interaction layer for McashWeb.

Provides the HTTP provider, ABI coder, parameter validator, transaction
builder, signer/broadcaster and the event server client.

Uses httpx + eth-abi + eth-keys; no web3 stack.
"""
