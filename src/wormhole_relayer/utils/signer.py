"""
Transaction signers injected into the chain adapters.

A signer only turns an unsigned transaction into signed bytes ready for
submission. Key material never leaves the signer.
"""

import json
from typing import Any, Protocol

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from eth_account import Account
from eth_account.signers.local import LocalAccount


class Signer(Protocol):
    """Capability to sign a chain-specific transaction."""

    @property
    def address(self) -> str: ...

    def sign(self, transaction: Any) -> bytes: ...


class EvmSigner:
    """Signs EVM transaction dicts with a local eth_account key."""

    def __init__(self, private_key: str):
        self._account: LocalAccount = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, transaction: dict) -> bytes:
        signed = self._account.sign_transaction(transaction)
        return bytes(signed.raw_transaction)


def parse_solana_secret(secret: str) -> bytes:
    """
    Parse a Solana keypair secret.

    Accepts the JSON byte array written by `solana-keygen`, a base58 string,
    or hex. Either the 64-byte keypair or the 32-byte seed is accepted.

    Raises:
        ValueError: If the secret cannot be parsed
    """
    text = secret.strip()
    if text.startswith("["):
        raw = bytes(json.loads(text))
    else:
        try:
            raw = bytes.fromhex(text[2:] if text.startswith("0x") else text)
        except ValueError:
            raw = base58.b58decode(text)
    if len(raw) not in (32, 64):
        raise ValueError(f"Solana secret key must be 32 or 64 bytes, got {len(raw)}")
    return raw


class SolanaKeypairSigner:
    """Signs serialized Solana messages with an Ed25519 keypair."""

    def __init__(self, secret: bytes):
        seed = secret[:32]
        self._key = Ed25519PrivateKey.from_private_bytes(seed)
        public = self._key.public_key().public_bytes_raw()
        if len(secret) == 64 and secret[32:] != public:
            raise ValueError("Solana keypair public half does not match its secret")
        self._public = public

    @classmethod
    def from_secret(cls, secret: str) -> "SolanaKeypairSigner":
        return cls(parse_solana_secret(secret))

    @property
    def public_key(self) -> bytes:
        return self._public

    @property
    def address(self) -> str:
        return base58.b58encode(self._public).decode("ascii")

    def sign(self, transaction: bytes) -> bytes:
        """Return the 64-byte signature over a compiled transaction message."""
        return self._key.sign(transaction)
