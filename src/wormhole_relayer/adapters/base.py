"""
Chain adapter roles.

An adapter owns one endpoint (messenger or token bridge app) on one chain.
It can act as the source of a transfer, the destination of one, or both.
Adapters keep no per-transfer state; everything a transfer needs is passed in
and returned.
"""

from abc import ABC, abstractmethod

from ..models import Attestation, SendResult, TransferIntent


class ChainAdapter(ABC):
    """Identity and foreign-endpoint registry of a chain endpoint."""

    @property
    @abstractmethod
    def chain_id(self) -> int:
        """Wormhole chain id of this endpoint."""

    @property
    @abstractmethod
    def emitter_address(self) -> bytes:
        """32-byte address the guardians attest as the emitter of our messages."""

    @property
    def endpoint_address(self) -> bytes:
        """32-byte address a remote endpoint must register for us."""
        return self.emitter_address

    @abstractmethod
    async def register_foreign_endpoint(self, chain_id: int, address: bytes) -> str | None:
        """Register a remote endpoint.

        Returns:
            The transaction reference, or None if the same address was
            already registered

        Raises:
            InsufficientFundsError, RpcFailureError
        """

    @abstractmethod
    async def get_registered_endpoint(self, chain_id: int) -> bytes | None:
        """Read back the 32-byte address registered for chain_id, if any."""


class SourceChainAdapter(ChainAdapter):
    """An endpoint that can emit messages or transfers."""

    @abstractmethod
    async def send(self, intent: TransferIntent) -> SendResult:
        """Submit the intent and return the sequence assigned by the chain.

        Raises:
            InsufficientFundsError, InsufficientAllowanceError,
            RpcFailureError, ValueError
        """


class DestinationChainAdapter(ChainAdapter):
    """An endpoint that can redeem attestations."""

    @abstractmethod
    async def is_redeemed(self, attestation: Attestation) -> bool:
        """Probe the chain's replay-protection record for this attestation."""

    @abstractmethod
    async def redeem(self, attestation: Attestation) -> str:
        """Submit the attestation for execution.

        Returns:
            The transaction reference

        Raises:
            AlreadyRedeemedError: If the chain has already consumed it
            RpcFailureError: On any other failure
        """


class VaaPoster(ABC):
    """Posts a signed VAA to the Solana core bridge so programs can consume it.

    Verifying guardian signatures on Solana takes several transactions and
    extra signer keypairs; implementations live outside this package.
    """

    @abstractmethod
    async def post_vaa(self, attestation: Attestation) -> None:
        """Ensure the PostedVAA account for the attestation exists."""
