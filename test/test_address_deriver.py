#!/usr/bin/env python3
"""Tests for program-derived address derivation."""

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from wormhole_relayer.errors import InvalidSeedError
from wormhole_relayer.utils.address_deriver import (
    TOKEN_PROGRAM_ID,
    CoreBridgeAddresses,
    MessengerAddresses,
    TokenBridgeAddresses,
    create_program_address,
    decode_pubkey,
    derive_address,
    encode_pubkey,
    find_program_address,
    is_on_curve,
)

PROGRAM_ID = "worm2ZoG2kUd4vFXhvjh93UUH596ayRfgQ2MgjNMTth"


class TestCurveCheck:
    """Tests for the ed25519 on-curve predicate."""

    def test_generated_public_keys_are_on_curve(self):
        for _ in range(8):
            public = Ed25519PrivateKey.generate().public_key().public_bytes_raw()
            assert is_on_curve(public)

    def test_program_ids_are_on_curve(self):
        assert is_on_curve(decode_pubkey(TOKEN_PROGRAM_ID))
        assert is_on_curve(decode_pubkey(PROGRAM_ID))

    def test_wrong_length_is_not_a_point(self):
        assert not is_on_curve(b"\x01" * 31)


class TestFindProgramAddress:
    """Tests for PDA search."""

    def test_deterministic(self):
        seeds = [b"received", (1).to_bytes(2, "little"), (42).to_bytes(8, "little")]

        first = find_program_address(seeds, PROGRAM_ID)
        second = find_program_address(seeds, PROGRAM_ID)

        assert first == second
        assert len(first[0]) == 32

    def test_result_is_off_curve_and_reproducible_from_bump(self):
        address, bump = find_program_address([b"config"], PROGRAM_ID)

        assert not is_on_curve(address)
        assert 0 <= bump <= 255
        assert create_program_address([b"config", bytes([bump])], PROGRAM_ID) == address

    def test_higher_bumps_were_on_curve(self):
        """The first bump tried that is off-curve wins."""
        address, bump = find_program_address([b"emitter"], PROGRAM_ID)

        for higher in range(bump + 1, 256):
            with pytest.raises(InvalidSeedError):
                create_program_address([b"emitter", bytes([higher])], PROGRAM_ID)

    def test_different_seeds_give_different_addresses(self):
        assert derive_address(PROGRAM_ID, [b"sent", (1).to_bytes(8, "little")]) != derive_address(
            PROGRAM_ID, [b"sent", (2).to_bytes(8, "little")]
        )

    def test_seed_too_long(self):
        with pytest.raises(InvalidSeedError):
            derive_address(PROGRAM_ID, [b"x" * 33])

    def test_too_many_seeds(self):
        with pytest.raises(InvalidSeedError):
            derive_address(PROGRAM_ID, [b"s"] * 16)

        assert len(derive_address(PROGRAM_ID, [b"s"] * 15)) == 32

    def test_base58_round_trip(self):
        raw = decode_pubkey(PROGRAM_ID)

        assert encode_pubkey(raw) == PROGRAM_ID


class TestNamedAddresses:
    """Named derivations use the documented seed encodings."""

    def test_messenger_received_uses_little_endian(self):
        messenger = MessengerAddresses(PROGRAM_ID)

        expected = derive_address(
            PROGRAM_ID, [b"received", (2).to_bytes(2, "little"), (42).to_bytes(8, "little")]
        )

        assert messenger.received(2, 42) == expected

    def test_token_bridge_claim_uses_big_endian(self):
        token_bridge = TokenBridgeAddresses(PROGRAM_ID)
        emitter = b"\x01" * 32

        expected = derive_address(
            PROGRAM_ID, [emitter, (2).to_bytes(2, "big"), (42).to_bytes(8, "big")]
        )

        assert token_bridge.claim(emitter, 2, 42) == expected

    def test_core_bridge_posted_vaa(self):
        core = CoreBridgeAddresses(PROGRAM_ID)
        vaa_hash = b"\xab" * 32

        assert core.posted_vaa(vaa_hash) == derive_address(PROGRAM_ID, [b"PostedVAA", vaa_hash])
        assert core.sequence_tracker(vaa_hash) == derive_address(PROGRAM_ID, [b"Sequence", vaa_hash])
