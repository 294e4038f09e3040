#!/usr/bin/env python3
"""Tests for the Solana transaction builder and the transaction signers."""

import hashlib
import json

import base58
import pytest
from eth_account import Account

from wormhole_relayer.utils.signer import EvmSigner, SolanaKeypairSigner, parse_solana_secret
from wormhole_relayer.utils.solana_transaction import (
    Instruction,
    SolanaTransaction,
    anchor_discriminator,
    borsh_bytes,
    encode_compact_u16,
    readonly,
    writable,
)

PAYER = b"\x01" * 32
READ = b"\x02" * 32
WRITE = b"\x03" * 32
PROGRAM = b"\x04" * 32
BLOCKHASH = b"\x05" * 32


class TestEncoding:
    """Tests for the wire encoding helpers."""

    @pytest.mark.parametrize("value,expected", [
        (0, b"\x00"),
        (127, b"\x7f"),
        (128, b"\x80\x01"),
        (16384, b"\x80\x80\x01"),
    ])
    def test_compact_u16(self, value, expected):
        assert encode_compact_u16(value) == expected

    def test_anchor_discriminator(self):
        assert anchor_discriminator("send_message") == hashlib.sha256(b"global:send_message").digest()[:8]

    def test_borsh_bytes(self):
        assert borsh_bytes(b"hi") == b"\x02\x00\x00\x00hi"


class TestSolanaTransaction:
    """Tests for message compilation."""

    def _transaction(self, instructions):
        return SolanaTransaction(PAYER, instructions, base58.b58encode(BLOCKHASH).decode())

    def test_account_ordering_and_header(self):
        ix = Instruction(
            program_id=PROGRAM,
            accounts=(writable(PAYER, signer=True), readonly(READ), writable(WRITE)),
            data=b"\xaa\xbb",
        )

        message = self._transaction([ix]).compile_message()

        expected = (
            bytes([1, 0, 2])
            + b"\x04" + PAYER + WRITE + READ + PROGRAM
            + BLOCKHASH
            + b"\x01"
            + b"\x03" + b"\x03" + bytes([0, 2, 1])
            + b"\x02" + b"\xaa\xbb"
        )
        assert message == expected

    def test_duplicate_accounts_merge_flags(self):
        ix = Instruction(
            program_id=PROGRAM,
            accounts=(readonly(WRITE), writable(WRITE)),
            data=b"",
        )

        message = self._transaction([ix]).compile_message()

        # payer and WRITE are writable, only the program is read-only
        assert message[:3] == bytes([1, 0, 1])
        assert message[4:4 + 96] == PAYER + WRITE + PROGRAM

    def test_second_signer_rejected(self):
        ix = Instruction(program_id=PROGRAM, accounts=(writable(WRITE, signer=True),), data=b"")

        with pytest.raises(ValueError):
            self._transaction([ix]).compile_message()

    def test_serialize(self):
        raw = SolanaTransaction.serialize(b"message", b"\x07" * 64)

        assert raw == b"\x01" + b"\x07" * 64 + b"message"

    def test_serialize_rejects_bad_signature(self):
        with pytest.raises(ValueError):
            SolanaTransaction.serialize(b"message", b"\x07" * 63)


class TestEvmSigner:
    """Tests for EvmSigner."""

    def test_signed_transaction_recovers_sender(self):
        signer = EvmSigner("0x" + "11" * 32)
        tx = {
            "to": "0x" + "22" * 20,
            "value": 1,
            "gas": 21000,
            "gasPrice": 10**9,
            "nonce": 0,
            "chainId": 1,
        }

        raw = signer.sign(tx)

        assert isinstance(raw, bytes)
        assert Account.recover_transaction(raw) == signer.address


class TestSolanaKeypairSigner:
    """Tests for Solana secret parsing and signing."""

    SEED = bytes(range(32))

    def _keypair(self) -> bytes:
        return self.SEED + SolanaKeypairSigner(self.SEED).public_key

    def test_secret_formats_agree(self):
        keypair = self._keypair()
        public = SolanaKeypairSigner(self.SEED).public_key

        for secret in (
            json.dumps(list(keypair)),
            self.SEED.hex(),
            "0x" + keypair.hex(),
            base58.b58encode(keypair).decode(),
        ):
            assert SolanaKeypairSigner.from_secret(secret).public_key == public

    def test_address_is_base58(self):
        signer = SolanaKeypairSigner(self.SEED)

        assert base58.b58decode(signer.address) == signer.public_key

    def test_signature_length(self):
        assert len(SolanaKeypairSigner(self.SEED).sign(b"message")) == 64

    def test_mismatched_public_half(self):
        with pytest.raises(ValueError, match="does not match"):
            SolanaKeypairSigner(self.SEED + bytes(32))

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            parse_solana_secret(json.dumps([1, 2, 3]))
