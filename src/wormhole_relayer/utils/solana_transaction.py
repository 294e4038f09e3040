"""
Minimal Solana legacy transaction builder.

Covers what the relay client needs to submit Anchor instructions: account
ordering, message compilation, and wire serialization with signatures.
"""

import hashlib
from dataclasses import dataclass

from .address_deriver import decode_pubkey


def encode_compact_u16(value: int) -> bytes:
    """Encode a length as Solana's variable-length compact-u16."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def anchor_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>"), Anchor's instruction tag."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def borsh_bytes(data: bytes) -> bytes:
    return len(data).to_bytes(4, "little") + data


@dataclass(frozen=True, slots=True)
class AccountMeta:
    pubkey: bytes
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True, slots=True)
class Instruction:
    program_id: bytes
    accounts: tuple[AccountMeta, ...]
    data: bytes


def anchor_instruction(program_id: bytes, name: str, args: bytes, accounts: list[AccountMeta]) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=tuple(accounts),
        data=anchor_discriminator(name) + args,
    )


def writable(pubkey: bytes, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=signer, is_writable=True)


def readonly(pubkey: bytes | str, signer: bool = False) -> AccountMeta:
    return AccountMeta(decode_pubkey(pubkey), is_signer=signer, is_writable=False)


class SolanaTransaction:
    """A single-signer legacy transaction."""

    def __init__(self, fee_payer: bytes, instructions: list[Instruction], recent_blockhash: str):
        self.fee_payer = fee_payer
        self.instructions = instructions
        self.recent_blockhash = decode_pubkey(recent_blockhash)

    def _ordered_accounts(self) -> tuple[list[bytes], int, int, int]:
        flags: dict[bytes, list[bool]] = {self.fee_payer: [True, True]}
        for ix in self.instructions:
            for meta in ix.accounts:
                signer, write = flags.setdefault(meta.pubkey, [False, False])
                flags[meta.pubkey] = [signer or meta.is_signer, write or meta.is_writable]
            flags.setdefault(ix.program_id, [False, False])

        def rank(key: bytes) -> int:
            signer, write = flags[key]
            if signer:
                return 0 if write else 1
            return 2 if write else 3

        others = sorted((k for k in flags if k != self.fee_payer), key=rank)
        keys = [self.fee_payer, *others]
        num_signers = sum(1 for k in keys if flags[k][0])
        readonly_signed = sum(1 for k in keys if flags[k][0] and not flags[k][1])
        readonly_unsigned = sum(1 for k in keys if not flags[k][0] and not flags[k][1])
        return keys, num_signers, readonly_signed, readonly_unsigned

    def compile_message(self) -> bytes:
        """Serialize the message that signers sign."""
        keys, num_signers, readonly_signed, readonly_unsigned = self._ordered_accounts()
        if num_signers != 1:
            raise ValueError(f"Only single-signer transactions are supported, got {num_signers}")
        index = {key: i for i, key in enumerate(keys)}

        out = bytearray([num_signers, readonly_signed, readonly_unsigned])
        out += encode_compact_u16(len(keys))
        for key in keys:
            out += key
        out += self.recent_blockhash
        out += encode_compact_u16(len(self.instructions))
        for ix in self.instructions:
            out.append(index[ix.program_id])
            out += encode_compact_u16(len(ix.accounts))
            out += bytes(index[meta.pubkey] for meta in ix.accounts)
            out += encode_compact_u16(len(ix.data))
            out += ix.data
        return bytes(out)

    @staticmethod
    def serialize(message: bytes, signature: bytes) -> bytes:
        """Wire form: signature count, signatures, then the message."""
        if len(signature) != 64:
            raise ValueError(f"Ed25519 signature must be 64 bytes, got {len(signature)}")
        return encode_compact_u16(1) + signature + message
