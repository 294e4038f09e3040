"""
Shared data models for the Wormhole relay client.

This module contains the value types passed between the codec, the poller,
the chain adapters and the relay orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum

import base58
from web3 import Web3

ADDRESS_LENGTH = 32
SIGNATURE_LENGTH = 65
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U256 = 2**256 - 1


class ChainId(IntEnum):
    """Wormhole chain identifiers known to this client."""
    SOLANA = 1
    ETHEREUM = 2
    BASE = 30


def to_canonical_address(address: str | bytes) -> bytes:
    """Convert a native address into the 32-byte canonical form.

    Accepts raw bytes (20 or 32 long), 0x-prefixed or bare hex strings of 20
    or 32 bytes, and base58 Solana public keys.

    Raises:
        ValueError: If the address cannot be interpreted
    """
    if isinstance(address, (bytes, bytearray)):
        raw = bytes(address)
    elif Web3.is_address(address):
        raw = bytes(Web3.to_bytes(hexstr=address))
    else:
        text = address[2:] if address.startswith("0x") else address
        if len(text) == ADDRESS_LENGTH * 2:
            try:
                raw = bytes.fromhex(text)
            except ValueError:
                raw = base58.b58decode(address)
        else:
            try:
                raw = base58.b58decode(address)
            except ValueError:
                raise ValueError(f"Unrecognized address format: {address}") from None

    if len(raw) > ADDRESS_LENGTH:
        raise ValueError(f"Address too long ({len(raw)} bytes): {address!r}")
    if len(raw) not in (20, ADDRESS_LENGTH):
        raise ValueError(f"Unexpected address length {len(raw)}: {address!r}")
    return raw.rjust(ADDRESS_LENGTH, b"\x00")


@dataclass(frozen=True, slots=True)
class GuardianSignature:
    """A single guardian signature inside an attestation.

    Attributes:
        guardian_index: Position of the guardian in the guardian set
        signature: 65-byte recoverable secp256k1 signature
    """
    guardian_index: int
    signature: bytes


@dataclass(frozen=True, slots=True)
class Attestation:
    """A decoded VAA.

    Attributes:
        version: VAA format version (currently 1)
        guardian_set_index: Guardian set that produced the signatures
        signatures: Ordered guardian signatures
        timestamp: Observation time on the source chain
        nonce: Emitter-chosen nonce
        emitter_chain: Wormhole chain id of the emitter
        emitter_address: 32-byte canonical emitter address
        sequence: Per-emitter sequence number
        consistency_level: Finality level requested by the emitter
        payload: Application payload
    """
    version: int
    guardian_set_index: int
    signatures: tuple[GuardianSignature, ...]
    timestamp: int
    nonce: int
    emitter_chain: int
    emitter_address: bytes
    sequence: int
    consistency_level: int
    payload: bytes

    @property
    def unique_key(self) -> str:
        """Key identifying the emitted message across all chains."""
        return f"{self.emitter_chain}/{self.emitter_address.hex()}/{self.sequence}"

    def __str__(self) -> str:
        return (
            f"Attestation(chain={self.emitter_chain}, "
            f"emitter=0x{self.emitter_address.hex()}, seq={self.sequence}, "
            f"signatures={len(self.signatures)}, payload={len(self.payload)} bytes)"
        )


@dataclass(frozen=True, slots=True)
class TokenTransferPayload:
    """Token bridge transfer payload (type 1) or transfer with payload (type 3).

    Attributes:
        payload_type: 1 for a plain transfer, 3 for a transfer with payload
        amount: Amount normalized to at most 8 decimals
        token_address: 32-byte address of the token on its origin chain
        token_chain: Origin chain of the token
        recipient_address: 32-byte recipient (the redeeming contract for type 3)
        recipient_chain: Destination chain
        fee: Relayer fee, type 1 only
        sender_address: Address that initiated the transfer, type 3 only
        sender_payload: Arbitrary application payload, type 3 only
    """
    payload_type: int
    amount: int
    token_address: bytes
    token_chain: int
    recipient_address: bytes
    recipient_chain: int
    fee: int = 0
    sender_address: bytes | None = None
    sender_payload: bytes = b""


class MessageKind(IntEnum):
    """Discriminator of a messenger program payload."""
    ALIVE = 0
    MESSAGE = 1


@dataclass(frozen=True, slots=True)
class MessengerMessage:
    """Payload emitted by the cross-chain messenger.

    `program_id` is set for ALIVE messages, `body` for MESSAGE.
    """
    kind: MessageKind
    body: bytes = b""
    program_id: bytes | None = None


@dataclass(frozen=True, slots=True)
class ReceivedMessage:
    """Contents of a Received record on the Solana messenger program."""
    batch_id: int
    message_hash: bytes
    payload: bytes


class IntentKind(Enum):
    MESSAGE = "message"
    TOKEN_TRANSFER = "token_transfer"


@dataclass(frozen=True, slots=True)
class TransferIntent:
    """What the caller wants moved to another chain.

    Attributes:
        kind: MESSAGE or TOKEN_TRANSFER
        target_chain: Wormhole chain id of the destination
        payload: Message bytes (MESSAGE only)
        token: Native token address or mint (TOKEN_TRANSFER only)
        amount: Raw token amount in the token's own decimals
        recipient: 32-byte canonical recipient on the destination chain
        batch_id: Wormhole batch id / nonce
    """
    kind: IntentKind
    target_chain: int
    payload: bytes = b""
    token: str | None = None
    amount: int = 0
    recipient: bytes = b""
    batch_id: int = 0

    @classmethod
    def message(cls, payload: bytes, target_chain: int) -> "TransferIntent":
        return cls(kind=IntentKind.MESSAGE, target_chain=target_chain, payload=payload)

    @classmethod
    def token_transfer(
        cls,
        token: str,
        amount: int,
        target_chain: int,
        recipient: str | bytes,
        batch_id: int = 0,
    ) -> "TransferIntent":
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        return cls(
            kind=IntentKind.TOKEN_TRANSFER,
            target_chain=target_chain,
            token=token,
            amount=amount,
            recipient=to_canonical_address(recipient),
            batch_id=batch_id,
        )


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a source chain submission.

    Attributes:
        sequence: Sequence number assigned by the chain
        tx_ref: Transaction hash or signature
        emitter_chain: Wormhole chain id of the emitter
        emitter_address: 32-byte emitter that the guardians will attest
    """
    sequence: int
    tx_ref: str
    emitter_chain: int
    emitter_address: bytes


@dataclass(frozen=True, slots=True)
class ForeignEndpointRegistration:
    """A (chain, address) pair registered with a local endpoint."""
    chain_id: int
    address: bytes = field(repr=False)

    def __str__(self) -> str:
        return f"{self.chain_id}:0x{self.address.hex()}"
