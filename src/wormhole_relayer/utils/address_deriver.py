"""
Deterministic derivation of Solana program-derived addresses (PDAs).

A PDA is a sha256 hash of the seeds, a bump byte, the owning program id and a
fixed marker, chosen so that the result is not a valid ed25519 public key and
therefore has no private key. The named helpers below reproduce the seed
layouts of the messenger, token bridge app, token bridge and core bridge
programs.
"""

import hashlib
from collections.abc import Sequence

import base58

from ..errors import InvalidSeedError

MAX_SEED_LENGTH = 32
MAX_SEEDS = 16
PDA_MARKER = b"ProgramDerivedAddress"

# ed25519 curve parameters
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNkLJA8knL"
SYSVAR_CLOCK_ID = "SysvarC1ock11111111111111111111111111111111"
SYSVAR_RENT_ID = "SysvarRent111111111111111111111111111111111"


def decode_pubkey(key: str | bytes) -> bytes:
    """Return the 32 raw bytes of a base58 public key."""
    if isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
    else:
        raw = base58.b58decode(key)
    if len(raw) != 32:
        raise ValueError(f"Public key must be 32 bytes, got {len(raw)}")
    return raw


def encode_pubkey(key: bytes) -> str:
    return base58.b58encode(key).decode("ascii")


def u16_le(value: int) -> bytes:
    return value.to_bytes(2, "little")


def u16_be(value: int) -> bytes:
    return value.to_bytes(2, "big")


def u64_le(value: int) -> bytes:
    return value.to_bytes(8, "little")


def u64_be(value: int) -> bytes:
    return value.to_bytes(8, "big")


def is_on_curve(point: bytes) -> bool:
    """Check whether 32 bytes decompress to a point on the ed25519 curve.

    The encoding holds y in little-endian with the sign of x in the top bit.
    A point exists iff x^2 = (y^2 - 1) / (d*y^2 + 1) has a square root mod p.
    """
    if len(point) != 32:
        return False
    # non-canonical y values are reduced, matching the runtime's decompression
    y = (int.from_bytes(point, "little") & ((1 << 255) - 1)) % _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise InvalidSeedError(f"Too many seeds: {len(seeds)} (max {MAX_SEEDS})")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidSeedError(
                f"Seed of {len(seed)} bytes exceeds {MAX_SEED_LENGTH} bytes"
            )


def create_program_address(seeds: Sequence[bytes], program_id: str | bytes) -> bytes:
    """Hash seeds into an address, failing if the result lies on the curve.

    Raises:
        InvalidSeedError: If the seeds are too long or too many, or the hash
            is a valid public key
    """
    _check_seeds(seeds)
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(decode_pubkey(program_id))
    hasher.update(PDA_MARKER)
    address = hasher.digest()
    if is_on_curve(address):
        raise InvalidSeedError("Derived address lies on the ed25519 curve")
    return address


def find_program_address(seeds: Sequence[bytes], program_id: str | bytes) -> tuple[bytes, int]:
    """Find the first off-curve address, trying bump seeds from 255 down to 0.

    Returns:
        Tuple of (address, bump)

    Raises:
        InvalidSeedError: If the seeds are invalid or no bump yields an address
    """
    _check_seeds(list(seeds) + [b"\x00"])
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except InvalidSeedError:
            continue
    raise InvalidSeedError("Unable to find a viable program address bump")


def derive_address(program_id: str | bytes, seeds: Sequence[bytes]) -> bytes:
    """Derive the canonical PDA for seeds under program_id."""
    address, _ = find_program_address(seeds, program_id)
    return address


class MessengerAddresses:
    """PDAs owned by the cross-chain messenger program."""

    def __init__(self, program_id: str | bytes):
        self.program_id = decode_pubkey(program_id)

    def config(self) -> bytes:
        return derive_address(self.program_id, [b"config"])

    def emitter(self) -> bytes:
        return derive_address(self.program_id, [b"emitter"])

    def sent(self, sequence: int) -> bytes:
        return derive_address(self.program_id, [b"sent", u64_le(sequence)])

    def foreign_emitter(self, chain: int) -> bytes:
        return derive_address(self.program_id, [b"foreign_emitter", u16_le(chain)])

    def received(self, chain: int, sequence: int) -> bytes:
        return derive_address(
            self.program_id, [b"received", u16_le(chain), u64_le(sequence)]
        )


class BridgeAppAddresses:
    """PDAs owned by the token bridge application program."""

    def __init__(self, program_id: str | bytes):
        self.program_id = decode_pubkey(program_id)

    def sender_config(self) -> bytes:
        return derive_address(self.program_id, [b"sender"])

    def redeemer_config(self) -> bytes:
        return derive_address(self.program_id, [b"redeemer"])

    def emitter(self) -> bytes:
        return derive_address(self.program_id, [b"emitter"])

    def foreign_contract(self, chain: int) -> bytes:
        return derive_address(self.program_id, [b"foreign_contract", u16_le(chain)])

    def tmp_token_account(self, mint: bytes) -> bytes:
        return derive_address(self.program_id, [b"tmp", mint])

    def bridged_message(self, sequence: int) -> bytes:
        return derive_address(self.program_id, [b"bridged", u64_le(sequence)])


class TokenBridgeAddresses:
    """PDAs owned by the Wormhole token bridge program."""

    def __init__(self, program_id: str | bytes):
        self.program_id = decode_pubkey(program_id)

    def config(self) -> bytes:
        return derive_address(self.program_id, [b"config"])

    def authority_signer(self) -> bytes:
        return derive_address(self.program_id, [b"authority_signer"])

    def custody_signer(self) -> bytes:
        return derive_address(self.program_id, [b"custody_signer"])

    def mint_authority(self) -> bytes:
        return derive_address(self.program_id, [b"mint_signer"])

    def emitter(self) -> bytes:
        return derive_address(self.program_id, [b"emitter"])

    def custody(self, mint: bytes) -> bytes:
        return derive_address(self.program_id, [mint])

    def endpoint(self, chain: int, foreign_emitter: bytes) -> bytes:
        return derive_address(self.program_id, [u16_be(chain), foreign_emitter])

    def claim(self, emitter_address: bytes, emitter_chain: int, sequence: int) -> bytes:
        return derive_address(
            self.program_id, [emitter_address, u16_be(emitter_chain), u64_be(sequence)]
        )

    def wrapped_mint(self, token_chain: int, token_address: bytes) -> bytes:
        return derive_address(
            self.program_id, [b"wrapped", u16_be(token_chain), token_address]
        )

    def wrapped_meta(self, mint: bytes) -> bytes:
        return derive_address(self.program_id, [b"meta", mint])


class CoreBridgeAddresses:
    """PDAs owned by the Wormhole core bridge program."""

    def __init__(self, program_id: str | bytes):
        self.program_id = decode_pubkey(program_id)

    def bridge(self) -> bytes:
        return derive_address(self.program_id, [b"Bridge"])

    def fee_collector(self) -> bytes:
        return derive_address(self.program_id, [b"fee_collector"])

    def sequence_tracker(self, emitter: bytes) -> bytes:
        return derive_address(self.program_id, [b"Sequence", emitter])

    def posted_vaa(self, vaa_hash: bytes) -> bytes:
        return derive_address(self.program_id, [b"PostedVAA", vaa_hash])


def associated_token_address(owner: bytes, mint: bytes) -> bytes:
    """Associated token account of owner for mint."""
    return derive_address(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        [owner, decode_pubkey(TOKEN_PROGRAM_ID), mint],
    )
