#!/usr/bin/env python3
"""Configuration management for the Wormhole relay client.

Type-safe configuration dataclasses with validation. The process environment
is read in exactly one place, RelayerConfig.from_env, and the resulting object
is passed to every component.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import ClassVar
from urllib.parse import urlparse

import base58
from web3 import Web3

from .models import ChainId

logger = logging.getLogger(__name__)

DEFAULT_WORMHOLE_RPC_URL = "https://api.wormholescan.io"
DEFAULT_SOLANA_WORMHOLE_PROGRAM_ID = "worm2ZoG2kUd4vFXhvjh93UUH596ayRfgQ2MgjNMTth"
DEFAULT_SOLANA_TOKEN_BRIDGE_PROGRAM_ID = "wormDTUJ6AWPNvk59vGQbDvGJmqbDTdgWgAqcLBCgUb"

# Token bridge emitters of the EVM chains, registered on the Solana side
DEFAULT_FOREIGN_TOKEN_BRIDGES: dict[int, str] = {
    ChainId.ETHEREUM: "0xdb5492265f6038831e89f495970ff09e8ee4bc61",
    ChainId.BASE: "0x8d2de8d2f73f1f4cab472ac9a881c9b123c79627",
}


def _validate_rpc_url(url: str, name: str) -> None:
    if not url:
        raise ValueError(f"{name} is required")
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid {name} scheme: {parsed.scheme}. Expected http or https"
        )


def _checksum(value: str | None, name: str) -> str | None:
    if not value:
        return None
    if not Web3.is_address(value):
        raise ValueError(f"Invalid {name}: {value}")
    return Web3.to_checksum_address(value)


def _validate_program_id(value: str | None, name: str) -> None:
    if not value:
        return
    try:
        raw = base58.b58decode(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} is not base58") from None
    if len(raw) != 32:
        raise ValueError(f"Invalid {name}: expected 32 bytes, got {len(raw)}")


@dataclass(frozen=True, slots=True)
class EvmChainConfig:
    """Configuration for an EVM chain.

    Attributes:
        rpc_url: HTTP(S) JSON-RPC endpoint
        private_key: Hex private key used to sign transactions
        wormhole_chain_id: Wormhole chain id (not the EVM chain id)
        wormhole_address: Core bridge contract (emits LogMessagePublished)
        messenger_address: Cross-chain messenger contract
        bridge_address: Token bridge application contract
        token_bridge_address: Wormhole token bridge contract
        gas_multiplier: Safety factor applied to gas estimates
    """

    rpc_url: str
    private_key: str
    wormhole_chain_id: int = ChainId.ETHEREUM
    wormhole_address: str | None = None
    messenger_address: str | None = None
    bridge_address: str | None = None
    token_bridge_address: str | None = None
    gas_multiplier: float = 1.5

    def __post_init__(self) -> None:
        """Validate EVM chain configuration."""
        _validate_rpc_url(self.rpc_url, "EVM RPC URL (EVM_RPC_URL)")

        key = self.private_key[2:] if self.private_key.startswith('0x') else self.private_key
        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError("Invalid private key format. Must be hexadecimal") from None

        if not 0 < self.wormhole_chain_id <= 0xFFFF:
            raise ValueError(f"Invalid Wormhole chain id: {self.wormhole_chain_id}")
        if self.gas_multiplier < 1:
            raise ValueError(f"Gas multiplier must be >= 1, got {self.gas_multiplier}")

        for name in ('wormhole_address', 'messenger_address', 'bridge_address', 'token_bridge_address'):
            checksummed = _checksum(getattr(self, name), name)
            object.__setattr__(self, name, checksummed)


@dataclass(frozen=True, slots=True)
class SolanaChainConfig:
    """Configuration for the Solana side.

    Attributes:
        rpc_url: HTTP(S) JSON-RPC endpoint
        secret_key: 64-byte keypair as JSON array, base58 or hex
        messenger_program_id: Cross-chain messenger program
        bridge_program_id: Token bridge application program
        wormhole_program_id: Wormhole core bridge program
        token_bridge_program_id: Wormhole token bridge program
        foreign_token_bridges: Token bridge emitter per foreign chain
        commitment: Commitment level used for reads and confirmation
        min_balance_lamports: SOL kept in reserve for fees and rent
    """

    rpc_url: str
    secret_key: str
    messenger_program_id: str | None = None
    bridge_program_id: str | None = None
    wormhole_program_id: str = DEFAULT_SOLANA_WORMHOLE_PROGRAM_ID
    token_bridge_program_id: str = DEFAULT_SOLANA_TOKEN_BRIDGE_PROGRAM_ID
    foreign_token_bridges: Mapping[int, str] = field(
        default_factory=lambda: dict(DEFAULT_FOREIGN_TOKEN_BRIDGES)
    )
    commitment: str = "confirmed"
    min_balance_lamports: int = 10_000_000

    SUPPORTED_COMMITMENTS: ClassVar[set[str]] = {'processed', 'confirmed', 'finalized'}

    def __post_init__(self) -> None:
        """Validate Solana configuration."""
        _validate_rpc_url(self.rpc_url, "Solana RPC URL (SOLANA_RPC_URL)")
        if not self.secret_key:
            raise ValueError("Solana secret key is required (SOLANA_PRIVATE_KEY or SOLANA_KEYPAIR_PATH)")
        if self.commitment not in self.SUPPORTED_COMMITMENTS:
            raise ValueError(
                f"Unsupported commitment: {self.commitment}. "
                f"Supported: {', '.join(sorted(self.SUPPORTED_COMMITMENTS))}"
            )
        if self.min_balance_lamports < 0:
            raise ValueError(f"Minimum balance must be non-negative, got {self.min_balance_lamports}")

        _validate_program_id(self.messenger_program_id, "messenger program id")
        _validate_program_id(self.bridge_program_id, "bridge program id")
        _validate_program_id(self.wormhole_program_id, "wormhole program id")
        _validate_program_id(self.token_bridge_program_id, "token bridge program id")
        for chain, address in self.foreign_token_bridges.items():
            if not Web3.is_address(address):
                raise ValueError(f"Invalid token bridge address for chain {chain}: {address}")


@dataclass(frozen=True, slots=True)
class GuardianApiConfig:
    """Settings for polling the guardian network for signed attestations."""
    base_url: str = DEFAULT_WORMHOLE_RPC_URL
    poll_interval: float = 5  # seconds between fetch attempts
    timeout: float = 180  # overall deadline for one attestation
    request_timeout: float = 30  # per HTTP request

    def __post_init__(self) -> None:
        """Validate polling settings."""
        _validate_rpc_url(self.base_url, "Wormhole RPC URL (WORMHOLE_RPC_URL)")
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
        if self.poll_interval > 300:
            raise ValueError(f"Poll interval too long (max 300s), got {self.poll_interval}")
        if self.timeout <= 0:
            raise ValueError(f"Attestation timeout must be positive, got {self.timeout}")
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the relay client.

    Attributes:
        evm: EVM chain settings (None when the EVM side is not used)
        solana: Solana settings (None when the Solana side is not used)
        guardian_api: Attestation polling settings
    """

    evm: EvmChainConfig | None
    solana: SolanaChainConfig | None
    guardian_api: GuardianApiConfig = field(default_factory=GuardianApiConfig)

    def __post_init__(self) -> None:
        if self.evm is None and self.solana is None:
            raise ValueError("At least one chain must be configured (EVM_RPC_URL or SOLANA_RPC_URL)")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RelayerConfig":
        """Load configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        env = os.environ if environ is None else environ

        evm_config = None
        if evm_rpc_url := env.get("EVM_RPC_URL", ""):
            private_key = env.get("EVM_PRIVATE_KEY", "")
            if not private_key:
                raise ValueError(
                    "EVM_PRIVATE_KEY environment variable is required when EVM_RPC_URL is set"
                )
            evm_config = EvmChainConfig(
                rpc_url=evm_rpc_url,
                private_key=private_key,
                wormhole_chain_id=int(env.get("EVM_CHAIN_ID", str(int(ChainId.ETHEREUM)))),
                wormhole_address=env.get("EVM_WORMHOLE_ADDRESS") or None,
                messenger_address=env.get("EVM_MESSENGER_ADDRESS") or None,
                bridge_address=env.get("EVM_BRIDGE_ADDRESS") or None,
                token_bridge_address=env.get("EVM_TOKEN_BRIDGE_ADDRESS") or None,
            )

        solana_config = None
        if solana_rpc_url := env.get("SOLANA_RPC_URL", ""):
            secret_key = env.get("SOLANA_PRIVATE_KEY", "")
            if not secret_key and (keypair_path := env.get("SOLANA_KEYPAIR_PATH")):
                with open(os.path.expanduser(keypair_path)) as file:
                    secret_key = file.read().strip()
            if not secret_key:
                raise ValueError(
                    "SOLANA_PRIVATE_KEY or SOLANA_KEYPAIR_PATH is required when SOLANA_RPC_URL is set"
                )
            foreign_token_bridges = dict(DEFAULT_FOREIGN_TOKEN_BRIDGES)
            if evm_config is not None and evm_config.token_bridge_address:
                foreign_token_bridges[evm_config.wormhole_chain_id] = evm_config.token_bridge_address
            solana_config = SolanaChainConfig(
                rpc_url=solana_rpc_url,
                secret_key=secret_key,
                messenger_program_id=env.get("SOLANA_MESSENGER_PROGRAM_ID") or None,
                bridge_program_id=env.get("SOLANA_BRIDGE_PROGRAM_ID") or None,
                wormhole_program_id=env.get(
                    "SOLANA_WORMHOLE_PROGRAM_ID", DEFAULT_SOLANA_WORMHOLE_PROGRAM_ID
                ),
                token_bridge_program_id=env.get(
                    "SOLANA_TOKEN_BRIDGE_PROGRAM_ID", DEFAULT_SOLANA_TOKEN_BRIDGE_PROGRAM_ID
                ),
                foreign_token_bridges=foreign_token_bridges,
            )

        guardian_api = GuardianApiConfig(
            base_url=env.get("WORMHOLE_RPC_URL", DEFAULT_WORMHOLE_RPC_URL),
            poll_interval=float(env.get("POLL_INTERVAL", "5")),
            timeout=float(env.get("ATTESTATION_TIMEOUT", "180")),
            request_timeout=float(env.get("REQUEST_TIMEOUT", "30")),
        )

        return cls(evm=evm_config, solana=solana_config, guardian_api=guardian_api)

    def log_config(self) -> None:
        """Log the configuration in a readable format, hiding secrets."""
        logger.info("=" * 60)
        logger.info("Wormhole Relayer Configuration")
        logger.info("=" * 60)

        if self.evm:
            logger.info(f"EVM Chain (wormhole id {self.evm.wormhole_chain_id}):")
            logger.info(f"  RPC URL: {self.evm.rpc_url}")
            logger.info(f"  Core bridge: {self.evm.wormhole_address or '[NOT SET]'}")
            logger.info(f"  Messenger: {self.evm.messenger_address or '[NOT SET]'}")
            logger.info(f"  Bridge: {self.evm.bridge_address or '[NOT SET]'}")
            logger.info(f"  Token bridge: {self.evm.token_bridge_address or '[NOT SET]'}")
            logger.info("  Private Key: [SET]")

        if self.solana:
            logger.info("Solana:")
            logger.info(f"  RPC URL: {self.solana.rpc_url}")
            logger.info(f"  Messenger program: {self.solana.messenger_program_id or '[NOT SET]'}")
            logger.info(f"  Bridge program: {self.solana.bridge_program_id or '[NOT SET]'}")
            logger.info(f"  Core bridge: {self.solana.wormhole_program_id}")
            logger.info(f"  Token bridge: {self.solana.token_bridge_program_id}")
            logger.info(f"  Commitment: {self.solana.commitment}")
            logger.info("  Keypair: [SET]")

        logger.info("Guardian API:")
        logger.info(f"  Base URL: {self.guardian_api.base_url}")
        logger.info(f"  Poll Interval: {self.guardian_api.poll_interval} seconds")
        logger.info(f"  Attestation Timeout: {self.guardian_api.timeout} seconds")
        logger.info(f"  Request Timeout: {self.guardian_api.request_timeout} seconds")
        logger.info("=" * 60)
