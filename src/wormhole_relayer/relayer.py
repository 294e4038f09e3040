"""
Wormhole relayer service.

Wires configuration, signers, chain adapters, the attestation poller, the
relay orchestrator and the registration manager together for the EVM <->
Solana messenger and token bridge app pairs.
"""

import logging
from enum import Enum

from .adapters.base import VaaPoster
from .adapters.evm_adapter import EvmMessengerAdapter, EvmTokenBridgeAdapter
from .adapters.solana_adapter import SolanaMessengerAdapter, SolanaTokenBridgeAdapter
from .attestation_poller import AttestationPoller
from .config import RelayerConfig
from .models import ForeignEndpointRegistration, ReceivedMessage
from .registration_manager import RegistrationManager
from .relay_orchestrator import RelayOrchestrator
from .utils.contract_utility import ContractUtility
from .utils.signer import EvmSigner, SolanaKeypairSigner
from .utils.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)


class App(Enum):
    MESSENGER = "messenger"
    BRIDGE = "bridge"


class Direction(Enum):
    EVM_TO_SOLANA = "evm-to-solana"
    SOLANA_TO_EVM = "solana-to-evm"


class WormholeRelayer:
    """
    Entry point object tying the relay components to one configuration.

    Adapters are built lazily so a configuration that only covers one side
    can still be used for that side's operations.
    """

    def __init__(self, config: RelayerConfig, vaa_poster: VaaPoster | None = None):
        """
        Initialize the relayer.

        Args:
            config: Relayer configuration
            vaa_poster: Collaborator that posts VAAs to the Solana core bridge
        """
        self.config = config
        self.vaa_poster = vaa_poster
        self.poller = AttestationPoller(config.guardian_api)
        self.registration = RegistrationManager()
        self._adapters: dict[tuple[str, App], object] = {}

    @classmethod
    def from_env(cls) -> "WormholeRelayer":
        """
        Create a relayer from environment variables.

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env()
        config.log_config()
        return cls(config)

    def evm_adapter(self, app: App) -> EvmMessengerAdapter | EvmTokenBridgeAdapter:
        if (adapter := self._adapters.get(("evm", app))) is not None:
            return adapter
        if self.config.evm is None:
            raise ValueError("EVM chain is not configured (EVM_RPC_URL)")
        signer = EvmSigner(self.config.evm.private_key)
        contracts = ContractUtility(self.config.evm.rpc_url)
        match app:
            case App.MESSENGER:
                adapter = EvmMessengerAdapter(self.config.evm, signer, contracts)
            case App.BRIDGE:
                adapter = EvmTokenBridgeAdapter(self.config.evm, signer, contracts)
        self._adapters[("evm", app)] = adapter
        logger.info(f"EVM {app.value} adapter ready for {signer.address}")
        return adapter

    def solana_adapter(self, app: App) -> SolanaMessengerAdapter | SolanaTokenBridgeAdapter:
        if (adapter := self._adapters.get(("solana", app))) is not None:
            return adapter
        if self.config.solana is None:
            raise ValueError("Solana is not configured (SOLANA_RPC_URL)")
        signer = SolanaKeypairSigner.from_secret(self.config.solana.secret_key)
        rpc = SolanaRpcClient(
            self.config.solana.rpc_url,
            commitment=self.config.solana.commitment,
            request_timeout=self.config.guardian_api.request_timeout,
        )
        match app:
            case App.MESSENGER:
                adapter = SolanaMessengerAdapter(self.config.solana, rpc, signer, self.vaa_poster)
            case App.BRIDGE:
                adapter = SolanaTokenBridgeAdapter(self.config.solana, rpc, signer, self.vaa_poster)
        self._adapters[("solana", app)] = adapter
        logger.info(f"Solana {app.value} adapter ready for {signer.address}")
        return adapter

    def orchestrator(self, app: App, direction: Direction) -> RelayOrchestrator:
        evm, solana = self.evm_adapter(app), self.solana_adapter(app)
        match direction:
            case Direction.EVM_TO_SOLANA:
                return RelayOrchestrator(evm, solana, self.poller)
            case Direction.SOLANA_TO_EVM:
                return RelayOrchestrator(solana, evm, self.poller)

    async def register(self, app: App) -> tuple[ForeignEndpointRegistration, ForeignEndpointRegistration]:
        """Register the EVM and Solana endpoints of an app with each other."""
        return await self.registration.register_pair(self.evm_adapter(app), self.solana_adapter(app))

    async def read_message(self, emitter_chain: int, sequence: int) -> ReceivedMessage | None:
        """Read a message received by the Solana messenger."""
        return await self.solana_adapter(App.MESSENGER).read_received_message(emitter_chain, sequence)

    async def close_received(self, emitter_chain: int, sequence: int) -> str | None:
        """Close a Received record on the Solana messenger to reclaim its rent."""
        return await self.solana_adapter(App.MESSENGER).close_received(emitter_chain, sequence)
