"""
Registration of messenger / bridge endpoints with each other.

Each endpoint only accepts attestations from the foreign endpoint registered
for the emitting chain, so a pair must be registered both ways before any
transfer can be redeemed.
"""

import logging

from .adapters.base import ChainAdapter
from .errors import RegistrationVerificationFailedError
from .models import ForeignEndpointRegistration

logger = logging.getLogger(__name__)


class RegistrationManager:
    """Registers chain adapters with each other and verifies the result."""

    async def register(self, adapter: ChainAdapter, chain_id: int, address: bytes) -> ForeignEndpointRegistration:
        """
        Register (chain_id, address) on one adapter and read it back.

        Args:
            adapter: Endpoint being configured
            chain_id: Chain of the remote endpoint
            address: 32-byte canonical address of the remote endpoint

        Returns:
            The registration as stored on chain

        Raises:
            RegistrationVerificationFailedError: If the stored value differs
        """
        tx_ref = await adapter.register_foreign_endpoint(chain_id, address)
        if tx_ref is None:
            logger.info(f"Chain {adapter.chain_id}: endpoint for chain {chain_id} already up to date")
        else:
            logger.info(f"Chain {adapter.chain_id}: registered chain {chain_id} in {tx_ref}")

        stored = await adapter.get_registered_endpoint(chain_id)
        if stored != address:
            raise RegistrationVerificationFailedError(
                f"Chain {adapter.chain_id} stores "
                f"{'nothing' if stored is None else '0x' + stored.hex()} for chain {chain_id}, "
                f"expected 0x{address.hex()}"
            )
        return ForeignEndpointRegistration(chain_id, stored)

    async def register_pair(
        self,
        local: ChainAdapter,
        remote: ChainAdapter,
        remote_chain_id: int | None = None,
        remote_address: bytes | None = None,
    ) -> tuple[ForeignEndpointRegistration, ForeignEndpointRegistration]:
        """Register local and remote endpoints with each other.

        Args:
            local: Local endpoint adapter
            remote: Remote endpoint adapter
            remote_chain_id: Overrides remote.chain_id
            remote_address: Overrides remote.endpoint_address

        Returns:
            Tuple of (registration stored locally, registration stored remotely)
        """
        remote_chain_id = remote.chain_id if remote_chain_id is None else remote_chain_id
        remote_address = remote.endpoint_address if remote_address is None else remote_address
        if remote_chain_id == local.chain_id:
            raise ValueError(f"Both endpoints are on chain {remote_chain_id}")

        logger.info(f"Registering chain {local.chain_id} <-> chain {remote_chain_id}")
        on_local = await self.register(local, remote_chain_id, remote_address)
        on_remote = await self.register(remote, local.chain_id, local.endpoint_address)
        logger.info(f"Registration complete: {on_local} / {on_remote}")
        return on_local, on_remote
