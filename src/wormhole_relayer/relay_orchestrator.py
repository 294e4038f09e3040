"""
Relay orchestrator.

Drives one transfer through send -> wait for attestation -> redeem, recording
every state change. Replay protection lives on the destination chain; the
orchestrator only probes it and treats "already redeemed" as success.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from .adapters.base import DestinationChainAdapter, SourceChainAdapter
from .attestation_poller import AttestationPoller
from .errors import AlreadyRedeemedError, AttestationParseError, RelayerError
from .models import Attestation, TransferIntent

logger = logging.getLogger(__name__)


class RelayState(Enum):
    INITIATED = "initiated"
    SENT = "sent"
    AWAITING_ATTESTATION = "awaiting_attestation"
    ATTESTED = "attested"
    REDEEMED = "redeemed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[RelayState, set[RelayState]] = {
    RelayState.INITIATED: {RelayState.SENT, RelayState.FAILED},
    RelayState.SENT: {RelayState.AWAITING_ATTESTATION, RelayState.FAILED},
    RelayState.AWAITING_ATTESTATION: {RelayState.ATTESTED, RelayState.FAILED},
    RelayState.ATTESTED: {RelayState.REDEEMED, RelayState.FAILED},
    RelayState.REDEEMED: set(),
    RelayState.FAILED: set(),
}


@dataclass
class RelayTransfer:
    """Progress record of a single transfer.

    Owned by the orchestrator call that created it; never shared between
    concurrent relays.

    Attributes:
        intent: What is being moved
        state: Current state
        history: Every state entered, in order
        sequence: Sequence assigned on the source chain, once known
        source_tx: Source chain transaction reference
        attestation: The attestation that was redeemed
        redeem_tx: Destination chain transaction reference
        already_redeemed: True if the destination had already consumed it
        error: The error that moved the transfer to FAILED
    """
    intent: TransferIntent
    state: RelayState = RelayState.INITIATED
    history: list[RelayState] = field(default_factory=lambda: [RelayState.INITIATED])
    sequence: int | None = None
    source_tx: str | None = None
    emitter_chain: int | None = None
    emitter_address: bytes | None = None
    attestation: Attestation | None = None
    redeem_tx: str | None = None
    already_redeemed: bool = False
    error: Exception | None = None

    def advance(self, new_state: RelayState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal relay transition {self.state.value} -> {new_state.value}")
        logger.info(
            f"Transfer seq={self.sequence}: {self.state.value} -> {new_state.value}"
        )
        self.state = new_state
        self.history.append(new_state)

    def fail(self, error: Exception) -> None:
        self.error = error
        logger.error(f"Transfer seq={self.sequence} failed in {self.state.value}: {error}")
        self.advance(RelayState.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.state is RelayState.REDEEMED

    @property
    def resumable(self) -> bool:
        """A failed transfer whose message was emitted can be polled again."""
        return self.state is RelayState.FAILED and self.sequence is not None


class RelayOrchestrator:
    """Runs transfers from one source adapter to one destination adapter."""

    def __init__(
        self,
        source: SourceChainAdapter,
        destination: DestinationChainAdapter,
        poller: AttestationPoller,
        attestation_timeout: float | None = None,
    ):
        self.source = source
        self.destination = destination
        self.poller = poller
        self.attestation_timeout = attestation_timeout

    async def relay(self, intent: TransferIntent) -> RelayTransfer:
        """Send the intent and carry it through to redemption.

        Errors are recorded on the returned transfer rather than raised.
        """
        return await self._relay(RelayTransfer(intent=intent))

    async def _relay(self, transfer: RelayTransfer) -> RelayTransfer:
        intent = transfer.intent
        if intent.target_chain != self.destination.chain_id:
            transfer.fail(ValueError(
                f"Intent targets chain {intent.target_chain}, destination is {self.destination.chain_id}"
            ))
            return transfer

        try:
            result = await self.source.send(intent)
        except (RelayerError, ValueError) as e:
            transfer.fail(e)
            return transfer

        transfer.sequence = result.sequence
        transfer.source_tx = result.tx_ref
        transfer.emitter_chain = result.emitter_chain
        transfer.emitter_address = result.emitter_address
        transfer.advance(RelayState.SENT)
        return await self._attest_and_redeem(transfer)

    async def resume(self, transfer: RelayTransfer) -> RelayTransfer:
        """Retry a failed transfer from SENT, using the sequence it already has."""
        if not transfer.resumable:
            raise ValueError(f"Transfer in state {transfer.state.value} cannot be resumed")
        resumed = RelayTransfer(
            intent=transfer.intent,
            sequence=transfer.sequence,
            source_tx=transfer.source_tx,
            emitter_chain=transfer.emitter_chain,
            emitter_address=transfer.emitter_address,
        )
        resumed.advance(RelayState.SENT)
        return await self._attest_and_redeem(resumed)

    async def resume_sequence(self, intent: TransferIntent, sequence: int) -> RelayTransfer:
        """Pick up a transfer sent earlier (possibly by another process)."""
        transfer = RelayTransfer(
            intent=intent,
            sequence=sequence,
            emitter_chain=self.source.chain_id,
            emitter_address=self.source.emitter_address,
        )
        transfer.advance(RelayState.SENT)
        return await self._attest_and_redeem(transfer)

    async def _attest_and_redeem(self, transfer: RelayTransfer) -> RelayTransfer:
        transfer.advance(RelayState.AWAITING_ATTESTATION)
        try:
            attestation = await self.poller.wait_for_attestation(
                transfer.emitter_chain,
                transfer.emitter_address,
                transfer.sequence,
                timeout=self.attestation_timeout,
            )
        except RelayerError as e:
            transfer.fail(e)
            return transfer

        if (
            attestation.sequence != transfer.sequence
            or attestation.emitter_chain != transfer.emitter_chain
            or attestation.emitter_address != transfer.emitter_address
        ):
            transfer.fail(AttestationParseError("attestation mismatch", attestation.unique_key))
            return transfer

        transfer.attestation = attestation
        transfer.advance(RelayState.ATTESTED)

        try:
            transfer.redeem_tx = await self.destination.redeem(attestation)
        except AlreadyRedeemedError as e:
            logger.info(f"{attestation.unique_key} was already redeemed: {e}")
            transfer.already_redeemed = True
        except (RelayerError, ValueError) as e:
            transfer.fail(e)
            return transfer

        transfer.advance(RelayState.REDEEMED)
        return transfer

    async def _relay_isolated(self, intent: TransferIntent) -> RelayTransfer:
        transfer = RelayTransfer(intent=intent)
        try:
            return await self._relay(transfer)
        except Exception as e:
            logger.exception(f"Unexpected error relaying transfer seq={transfer.sequence}")
            transfer.fail(e)
            return transfer

    async def relay_all(self, intents: list[TransferIntent]) -> list[RelayTransfer]:
        """Relay independent intents concurrently, one task each.

        An unexpected error in one relay fails that transfer only; the
        others run to completion.
        """
        return list(await asyncio.gather(*(self._relay_isolated(intent) for intent in intents)))
