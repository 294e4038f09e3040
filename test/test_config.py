#!/usr/bin/env python3
"""Tests for the configuration module."""

import json

import pytest
from web3 import Web3

from wormhole_relayer.config import (
    EvmChainConfig,
    GuardianApiConfig,
    RelayerConfig,
    SolanaChainConfig,
)
from wormhole_relayer.models import ChainId

PRIVATE_KEY = "0x" + "11" * 32
SOLANA_SECRET = json.dumps(list(range(64)))


class TestEvmChainConfig:
    """Tests for EvmChainConfig."""

    def test_valid_config(self):
        config = EvmChainConfig(
            rpc_url="https://ethereum-sepolia.publicnode.com",
            private_key=PRIVATE_KEY,
            messenger_address="0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d",
        )

        assert config.wormhole_chain_id == ChainId.ETHEREUM
        assert config.messenger_address == Web3.to_checksum_address("0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d")
        assert config.bridge_address is None
        assert config.gas_multiplier == 1.5

    def test_invalid_url_scheme(self):
        with pytest.raises(ValueError, match="scheme"):
            EvmChainConfig(rpc_url="ftp://node", private_key=PRIVATE_KEY)

    def test_invalid_private_key(self):
        with pytest.raises(ValueError, match="length"):
            EvmChainConfig(rpc_url="https://node", private_key="0x1234")
        with pytest.raises(ValueError, match="hexadecimal"):
            EvmChainConfig(rpc_url="https://node", private_key="zz" * 32)

    def test_invalid_contract_address(self):
        with pytest.raises(ValueError):
            EvmChainConfig(rpc_url="https://node", private_key=PRIVATE_KEY, bridge_address="0x1234")

    def test_frozen(self):
        config = EvmChainConfig(rpc_url="https://node", private_key=PRIVATE_KEY)

        with pytest.raises(AttributeError):
            config.rpc_url = "https://other"


class TestSolanaChainConfig:
    """Tests for SolanaChainConfig."""

    def test_defaults(self):
        config = SolanaChainConfig(rpc_url="https://api.devnet.solana.com", secret_key=SOLANA_SECRET)

        assert config.wormhole_program_id == "worm2ZoG2kUd4vFXhvjh93UUH596ayRfgQ2MgjNMTth"
        assert config.commitment == "confirmed"
        assert ChainId.ETHEREUM in config.foreign_token_bridges

    def test_invalid_program_id(self):
        with pytest.raises(ValueError, match="program id"):
            SolanaChainConfig(
                rpc_url="https://api.devnet.solana.com",
                secret_key=SOLANA_SECRET,
                messenger_program_id="not-base58-0OIl",
            )

    def test_invalid_commitment(self):
        with pytest.raises(ValueError, match="commitment"):
            SolanaChainConfig(rpc_url="https://node", secret_key=SOLANA_SECRET, commitment="max")


class TestGuardianApiConfig:
    """Tests for GuardianApiConfig."""

    def test_defaults(self):
        config = GuardianApiConfig()

        assert config.base_url == "https://api.wormholescan.io"
        assert config.poll_interval == 5
        assert config.timeout == 180

    @pytest.mark.parametrize("field,value", [
        ("poll_interval", 0),
        ("poll_interval", 301),
        ("timeout", -1),
        ("request_timeout", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            GuardianApiConfig(**{field: value})


class TestRelayerConfig:
    """Tests for RelayerConfig.from_env."""

    def test_from_env_both_chains(self):
        env = {
            "EVM_RPC_URL": "https://base-sepolia.publicnode.com",
            "EVM_PRIVATE_KEY": PRIVATE_KEY,
            "EVM_CHAIN_ID": "30",
            "EVM_BRIDGE_ADDRESS": "0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d",
            "SOLANA_RPC_URL": "https://api.devnet.solana.com",
            "SOLANA_PRIVATE_KEY": SOLANA_SECRET,
            "SOLANA_BRIDGE_PROGRAM_ID": "5HVG1XFoN3KXa6gcFkCs7iFcHvtsbmY6drvP34S1mwn4",
            "POLL_INTERVAL": "2",
            "ATTESTATION_TIMEOUT": "60",
        }

        config = RelayerConfig.from_env(env)

        assert config.evm.wormhole_chain_id == ChainId.BASE
        assert config.solana.bridge_program_id == "5HVG1XFoN3KXa6gcFkCs7iFcHvtsbmY6drvP34S1mwn4"
        assert config.guardian_api.poll_interval == 2
        assert config.guardian_api.timeout == 60

    def test_from_env_registers_evm_token_bridge_for_solana(self):
        token_bridge = "0x" + "ab" * 20
        config = RelayerConfig.from_env({
            "EVM_RPC_URL": "https://ethereum-sepolia.publicnode.com",
            "EVM_PRIVATE_KEY": PRIVATE_KEY,
            "EVM_CHAIN_ID": "10002",
            "EVM_TOKEN_BRIDGE_ADDRESS": token_bridge,
            "SOLANA_RPC_URL": "https://api.devnet.solana.com",
            "SOLANA_PRIVATE_KEY": SOLANA_SECRET,
        })

        bridges = config.solana.foreign_token_bridges
        assert bridges[10002] == config.evm.token_bridge_address
        assert bridges[10002] == Web3.to_checksum_address(token_bridge)
        assert ChainId.BASE in bridges

    def test_from_env_evm_token_bridge_overrides_default(self):
        token_bridge = "0x" + "cd" * 20
        config = RelayerConfig.from_env({
            "EVM_RPC_URL": "https://ethereum-sepolia.publicnode.com",
            "EVM_PRIVATE_KEY": PRIVATE_KEY,
            "EVM_TOKEN_BRIDGE_ADDRESS": token_bridge,
            "SOLANA_RPC_URL": "https://api.devnet.solana.com",
            "SOLANA_PRIVATE_KEY": SOLANA_SECRET,
        })

        assert config.solana.foreign_token_bridges[ChainId.ETHEREUM] == Web3.to_checksum_address(token_bridge)

    def test_from_env_keypair_file(self, tmp_path):
        keypair = tmp_path / "id.json"
        keypair.write_text(SOLANA_SECRET)

        config = RelayerConfig.from_env({
            "SOLANA_RPC_URL": "https://api.devnet.solana.com",
            "SOLANA_KEYPAIR_PATH": str(keypair),
        })

        assert config.evm is None
        assert config.solana.secret_key == SOLANA_SECRET

    def test_from_env_requires_a_chain(self):
        with pytest.raises(ValueError, match="At least one chain"):
            RelayerConfig.from_env({})

    def test_from_env_requires_evm_key(self):
        with pytest.raises(ValueError, match="EVM_PRIVATE_KEY"):
            RelayerConfig.from_env({"EVM_RPC_URL": "https://node"})

    def test_log_config_hides_secrets(self, caplog):
        config = RelayerConfig.from_env({
            "EVM_RPC_URL": "https://node",
            "EVM_PRIVATE_KEY": PRIVATE_KEY,
        })

        with caplog.at_level("INFO"):
            config.log_config()

        assert "https://node" in caplog.text
        assert PRIVATE_KEY not in caplog.text
