"""
Binary codec for Wormhole attestations (VAAs) and their payloads.

Layout (all integers big-endian):

    header: version u8 | guardian_set_index u32 | n u8 | n * (index u8, sig 65)
    body:   timestamp u32 | nonce u32 | emitter_chain u16 | emitter 32 |
            sequence u64 | consistency_level u8 | payload ...
"""

import logging

from web3 import Web3

from ..errors import AttestationParseError
from ..models import (
    ADDRESS_LENGTH,
    MAX_U16,
    MAX_U32,
    MAX_U64,
    MAX_U256,
    SIGNATURE_LENGTH,
    Attestation,
    GuardianSignature,
    MessageKind,
    MessengerMessage,
    TokenTransferPayload,
)

logger = logging.getLogger(__name__)

HEADER_LENGTH = 6
GUARDIAN_SIGNATURE_LENGTH = 1 + SIGNATURE_LENGTH
BODY_FIXED_LENGTH = 51
MAX_SIGNATURES = 255

TRANSFER = 1
TRANSFER_WITH_PAYLOAD = 3
TRANSFER_FIXED_LENGTH = 133

MAX_MESSAGE_LENGTH = 1024
MAX_DECIMALS = 8


class _Reader:
    """Cursor over a byte string that refuses to read past the end."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise AttestationParseError(
                "truncated",
                f"need {size} bytes at offset {self.offset}, have {len(self.data) - self.offset}",
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def uint(self, size: int) -> int:
        return int.from_bytes(self.take(size), "big")

    def rest(self) -> bytes:
        chunk = self.data[self.offset:]
        self.offset = len(self.data)
        return chunk

    def remaining(self) -> int:
        return len(self.data) - self.offset


def _check_range(name: str, value: int, maximum: int) -> None:
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} out of range: {value}")


def _check_address(name: str, value: bytes) -> None:
    if len(value) != ADDRESS_LENGTH:
        raise ValueError(f"{name} must be {ADDRESS_LENGTH} bytes, got {len(value)}")


class AttestationCodec:
    """Encode and decode attestations and the payloads they carry."""

    @staticmethod
    def decode(data: bytes) -> Attestation:
        """
        Decode raw VAA bytes.

        Args:
            data: Bytes as served by the guardian API

        Returns:
            The decoded Attestation

        Raises:
            AttestationParseError: If the bytes are truncated
        """
        reader = _Reader(bytes(data))
        version = reader.uint(1)
        guardian_set_index = reader.uint(4)
        count = reader.uint(1)

        signatures = []
        for _ in range(count):
            index = reader.uint(1)
            signatures.append(GuardianSignature(index, reader.take(SIGNATURE_LENGTH)))

        timestamp = reader.uint(4)
        nonce = reader.uint(4)
        emitter_chain = reader.uint(2)
        emitter_address = reader.take(ADDRESS_LENGTH)
        sequence = reader.uint(8)
        consistency_level = reader.uint(1)

        return Attestation(
            version=version,
            guardian_set_index=guardian_set_index,
            signatures=tuple(signatures),
            timestamp=timestamp,
            nonce=nonce,
            emitter_chain=emitter_chain,
            emitter_address=emitter_address,
            sequence=sequence,
            consistency_level=consistency_level,
            payload=reader.rest(),
        )

    @staticmethod
    def encode_body(attestation: Attestation) -> bytes:
        """Serialize the signed portion of an attestation."""
        _check_range("timestamp", attestation.timestamp, MAX_U32)
        _check_range("nonce", attestation.nonce, MAX_U32)
        _check_range("emitter_chain", attestation.emitter_chain, MAX_U16)
        _check_range("sequence", attestation.sequence, MAX_U64)
        _check_range("consistency_level", attestation.consistency_level, 0xFF)
        _check_address("emitter_address", attestation.emitter_address)

        return b"".join([
            attestation.timestamp.to_bytes(4, "big"),
            attestation.nonce.to_bytes(4, "big"),
            attestation.emitter_chain.to_bytes(2, "big"),
            attestation.emitter_address,
            attestation.sequence.to_bytes(8, "big"),
            attestation.consistency_level.to_bytes(1, "big"),
            attestation.payload,
        ])

    @staticmethod
    def encode(attestation: Attestation) -> bytes:
        """
        Serialize an attestation to its wire form.

        Raises:
            ValueError: If a field does not fit its wire width
        """
        _check_range("version", attestation.version, 0xFF)
        _check_range("guardian_set_index", attestation.guardian_set_index, MAX_U32)
        if len(attestation.signatures) > MAX_SIGNATURES:
            raise ValueError(
                f"At most {MAX_SIGNATURES} signatures allowed, got {len(attestation.signatures)}"
            )

        parts = [
            attestation.version.to_bytes(1, "big"),
            attestation.guardian_set_index.to_bytes(4, "big"),
            len(attestation.signatures).to_bytes(1, "big"),
        ]
        for sig in attestation.signatures:
            _check_range("guardian_index", sig.guardian_index, 0xFF)
            if len(sig.signature) != SIGNATURE_LENGTH:
                raise ValueError(
                    f"Guardian signature must be {SIGNATURE_LENGTH} bytes, got {len(sig.signature)}"
                )
            parts.append(sig.guardian_index.to_bytes(1, "big"))
            parts.append(sig.signature)
        parts.append(AttestationCodec.encode_body(attestation))
        return b"".join(parts)

    @staticmethod
    def body_hash(attestation: Attestation) -> bytes:
        """keccak256 of the body; seeds the posted VAA account on Solana."""
        return bytes(Web3.keccak(AttestationCodec.encode_body(attestation)))

    @staticmethod
    def digest(attestation: Attestation) -> bytes:
        """Double keccak256 of the body; the replay key on EVM contracts."""
        return bytes(Web3.keccak(AttestationCodec.body_hash(attestation)))

    @staticmethod
    def decode_token_transfer_payload(payload: bytes) -> TokenTransferPayload:
        """
        Decode a token bridge payload of type 1 or 3.

        The amount is returned as carried on the wire (8-decimal normalized).

        Raises:
            AttestationParseError: On truncation or an unknown payload type
        """
        reader = _Reader(bytes(payload))
        payload_type = reader.uint(1)
        if payload_type not in (TRANSFER, TRANSFER_WITH_PAYLOAD):
            raise AttestationParseError(
                "unknown payload type", f"token bridge payload id {payload_type}"
            )

        amount = reader.uint(32)
        token_address = reader.take(ADDRESS_LENGTH)
        token_chain = reader.uint(2)
        recipient_address = reader.take(ADDRESS_LENGTH)
        recipient_chain = reader.uint(2)

        if payload_type == TRANSFER:
            return TokenTransferPayload(
                payload_type=payload_type,
                amount=amount,
                token_address=token_address,
                token_chain=token_chain,
                recipient_address=recipient_address,
                recipient_chain=recipient_chain,
                fee=reader.uint(32),
            )

        return TokenTransferPayload(
            payload_type=payload_type,
            amount=amount,
            token_address=token_address,
            token_chain=token_chain,
            recipient_address=recipient_address,
            recipient_chain=recipient_chain,
            sender_address=reader.take(ADDRESS_LENGTH),
            sender_payload=reader.rest(),
        )

    @staticmethod
    def encode_token_transfer_payload(transfer: TokenTransferPayload) -> bytes:
        if transfer.payload_type not in (TRANSFER, TRANSFER_WITH_PAYLOAD):
            raise ValueError(f"Unsupported token bridge payload type {transfer.payload_type}")
        _check_range("amount", transfer.amount, MAX_U256)
        _check_range("token_chain", transfer.token_chain, MAX_U16)
        _check_range("recipient_chain", transfer.recipient_chain, MAX_U16)
        _check_address("token_address", transfer.token_address)
        _check_address("recipient_address", transfer.recipient_address)

        head = b"".join([
            transfer.payload_type.to_bytes(1, "big"),
            transfer.amount.to_bytes(32, "big"),
            transfer.token_address,
            transfer.token_chain.to_bytes(2, "big"),
            transfer.recipient_address,
            transfer.recipient_chain.to_bytes(2, "big"),
        ])
        if transfer.payload_type == TRANSFER:
            _check_range("fee", transfer.fee, MAX_U256)
            return head + transfer.fee.to_bytes(32, "big")

        if transfer.sender_address is None:
            raise ValueError("Transfer with payload requires a sender address")
        _check_address("sender_address", transfer.sender_address)
        return head + transfer.sender_address + transfer.sender_payload

    @staticmethod
    def decode_messenger_message(payload: bytes) -> MessengerMessage:
        """Decode an Alive or Message payload of the cross-chain messenger."""
        reader = _Reader(bytes(payload))
        kind = reader.uint(1)
        match kind:
            case MessageKind.ALIVE:
                return MessengerMessage(kind=MessageKind.ALIVE, program_id=reader.take(ADDRESS_LENGTH))
            case MessageKind.MESSAGE:
                length = reader.uint(2)
                if length > MAX_MESSAGE_LENGTH:
                    raise AttestationParseError(
                        "message too large", f"{length} bytes (max {MAX_MESSAGE_LENGTH})"
                    )
                return MessengerMessage(kind=MessageKind.MESSAGE, body=reader.take(length))
            case _:
                raise AttestationParseError("unknown payload type", f"messenger payload id {kind}")

    @staticmethod
    def encode_messenger_message(message: MessengerMessage) -> bytes:
        match message.kind:
            case MessageKind.ALIVE:
                if message.program_id is None:
                    raise ValueError("Alive message requires a program id")
                _check_address("program_id", message.program_id)
                return bytes([MessageKind.ALIVE]) + message.program_id
            case MessageKind.MESSAGE:
                if len(message.body) > MAX_MESSAGE_LENGTH:
                    raise ValueError(
                        f"Message of {len(message.body)} bytes exceeds {MAX_MESSAGE_LENGTH} bytes"
                    )
                return bytes([MessageKind.MESSAGE]) + len(message.body).to_bytes(2, "big") + message.body
            case _:
                raise ValueError(f"Unsupported message kind {message.kind}")

    @staticmethod
    def encode_bridge_recipient(recipient: bytes) -> bytes:
        """Inner payload (Hello) attached to transfers by the bridge app."""
        _check_address("recipient", recipient)
        return b"\x01" + recipient

    @staticmethod
    def decode_bridge_recipient(payload: bytes) -> bytes:
        reader = _Reader(bytes(payload))
        kind = reader.uint(1)
        if kind != 1:
            raise AttestationParseError("unknown payload type", f"bridge payload id {kind}")
        return reader.take(ADDRESS_LENGTH)


def normalize_amount(amount: int, decimals: int) -> int:
    """Scale a raw amount down to the 8 decimals the token bridge carries."""
    if decimals > MAX_DECIMALS:
        return amount // 10 ** (decimals - MAX_DECIMALS)
    return amount


def denormalize_amount(amount: int, decimals: int) -> int:
    if decimals > MAX_DECIMALS:
        return amount * 10 ** (decimals - MAX_DECIMALS)
    return amount


def truncate_amount(amount: int, decimals: int) -> int:
    """Drop the dust that cannot survive normalization."""
    return denormalize_amount(normalize_amount(amount, decimals), decimals)
