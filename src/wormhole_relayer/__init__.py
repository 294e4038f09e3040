"""
Wormhole relayer package.

Cross-chain message and token relay client between Solana and EVM chains.
"""

from .attestation_poller import AttestationPoller
from .config import RelayerConfig
from .models import Attestation, ChainId, TransferIntent
from .registration_manager import RegistrationManager
from .relay_orchestrator import RelayOrchestrator, RelayState, RelayTransfer
from .relayer import WormholeRelayer

__all__ = [
    "Attestation",
    "AttestationPoller",
    "ChainId",
    "RegistrationManager",
    "RelayOrchestrator",
    "RelayState",
    "RelayTransfer",
    "RelayerConfig",
    "TransferIntent",
    "WormholeRelayer",
]
__version__ = "0.1.0"
