#!/usr/bin/env python3
"""Tests for the relay state machine."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wormhole_relayer.errors import (
    AlreadyRedeemedError,
    AttestationTimeoutError,
    InsufficientFundsError,
    RpcFailureError,
)
from wormhole_relayer.models import (
    Attestation,
    ChainId,
    GuardianSignature,
    SendResult,
    TransferIntent,
)
from wormhole_relayer.relay_orchestrator import RelayOrchestrator, RelayState, RelayTransfer

EMITTER = bytes(31) + b"\x01"

HAPPY_PATH = [
    RelayState.INITIATED,
    RelayState.SENT,
    RelayState.AWAITING_ATTESTATION,
    RelayState.ATTESTED,
    RelayState.REDEEMED,
]


def make_attestation(sequence: int = 42, emitter: bytes = EMITTER) -> Attestation:
    return Attestation(
        version=1,
        guardian_set_index=0,
        signatures=(GuardianSignature(0, b"\x01" * 65),),
        timestamp=0,
        nonce=0,
        emitter_chain=ChainId.SOLANA,
        emitter_address=emitter,
        sequence=sequence,
        consistency_level=1,
        payload=b"",
    )


@pytest.fixture
def source():
    """Source adapter on Solana returning sequence 42."""
    mock = MagicMock()
    mock.chain_id = ChainId.SOLANA
    mock.emitter_address = EMITTER
    mock.send = AsyncMock(return_value=SendResult(42, "sig-1", ChainId.SOLANA, EMITTER))
    return mock


@pytest.fixture
def destination():
    """Destination adapter on Ethereum."""
    mock = MagicMock()
    mock.chain_id = ChainId.ETHEREUM
    mock.redeem = AsyncMock(return_value="0xredeem")
    return mock


@pytest.fixture
def poller():
    mock = MagicMock()
    mock.wait_for_attestation = AsyncMock(return_value=make_attestation())
    return mock


@pytest.fixture
def intent():
    return TransferIntent.message(b"hello", ChainId.ETHEREUM)


class TestRelayOrchestrator:
    """Test suite for RelayOrchestrator."""

    @pytest.mark.asyncio
    async def test_happy_path(self, source, destination, poller, intent):
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.relay(intent)

        assert transfer.history == HAPPY_PATH
        assert transfer.succeeded
        assert transfer.sequence == 42
        assert transfer.source_tx == "sig-1"
        assert transfer.redeem_tx == "0xredeem"
        assert not transfer.already_redeemed
        poller.wait_for_attestation.assert_awaited_once_with(
            ChainId.SOLANA, EMITTER, 42, timeout=None
        )
        destination.redeem.assert_awaited_once_with(make_attestation())

    @pytest.mark.asyncio
    async def test_already_redeemed_is_success(self, source, destination, poller, intent):
        destination.redeem.side_effect = AlreadyRedeemedError("consumed")
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.relay(intent)

        assert transfer.state is RelayState.REDEEMED
        assert transfer.already_redeemed
        assert transfer.redeem_tx is None
        assert transfer.error is None

    @pytest.mark.asyncio
    async def test_send_failure(self, source, destination, poller, intent):
        source.send.side_effect = InsufficientFundsError("no gas")
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.relay(intent)

        assert transfer.history == [RelayState.INITIATED, RelayState.FAILED]
        assert isinstance(transfer.error, InsufficientFundsError)
        assert transfer.sequence is None
        assert not transfer.resumable
        poller.wait_for_attestation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_destination_chain(self, source, destination, poller):
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.relay(TransferIntent.message(b"x", ChainId.BASE))

        assert transfer.state is RelayState.FAILED
        source.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_then_resume(self, source, destination, poller, intent):
        poller.wait_for_attestation.side_effect = [
            AttestationTimeoutError(1, EMITTER.hex(), 42, 180),
            make_attestation(),
        ]
        orchestrator = RelayOrchestrator(source, destination, poller)

        failed = await orchestrator.relay(intent)

        assert failed.state is RelayState.FAILED
        assert isinstance(failed.error, TimeoutError)
        assert failed.resumable
        assert failed.sequence == 42

        resumed = await orchestrator.resume(failed)

        assert resumed.succeeded
        assert resumed.sequence == 42
        assert resumed.history == HAPPY_PATH
        source.send.assert_awaited_once()
        assert poller.wait_for_attestation.await_count == 2

    @pytest.mark.asyncio
    async def test_resume_rejects_completed_transfer(self, source, destination, poller, intent):
        orchestrator = RelayOrchestrator(source, destination, poller)
        transfer = await orchestrator.relay(intent)

        with pytest.raises(ValueError):
            await orchestrator.resume(transfer)

    @pytest.mark.asyncio
    async def test_mismatched_attestation_is_never_redeemed(self, source, destination, poller, intent):
        poller.wait_for_attestation.return_value = make_attestation(sequence=41)
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.relay(intent)

        assert transfer.state is RelayState.FAILED
        destination.redeem.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redeem_failure(self, source, destination, poller, intent):
        destination.redeem.side_effect = RpcFailureError("node down")
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.relay(intent)

        assert transfer.history == HAPPY_PATH[:-1] + [RelayState.FAILED]
        assert isinstance(transfer.error, RpcFailureError)

    @pytest.mark.asyncio
    async def test_resume_sequence(self, source, destination, poller, intent):
        orchestrator = RelayOrchestrator(source, destination, poller)

        transfer = await orchestrator.resume_sequence(intent, 42)

        assert transfer.succeeded
        source.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_relay_all(self, source, destination, poller):
        source.send.side_effect = [
            SendResult(42, "sig-1", ChainId.SOLANA, EMITTER),
            SendResult(43, "sig-2", ChainId.SOLANA, EMITTER),
        ]
        poller.wait_for_attestation.side_effect = lambda chain, emitter, seq, timeout=None: \
            make_attestation(sequence=seq)
        orchestrator = RelayOrchestrator(source, destination, poller)
        intents = [TransferIntent.message(b"a", ChainId.ETHEREUM), TransferIntent.message(b"b", ChainId.ETHEREUM)]

        transfers = await orchestrator.relay_all(intents)

        assert [t.sequence for t in transfers] == [42, 43]
        assert all(t.succeeded for t in transfers)

    @pytest.mark.asyncio
    async def test_relay_all_isolates_unexpected_errors(self, source, destination, poller):
        source.send.side_effect = [
            SendResult(42, "sig-1", ChainId.SOLANA, EMITTER),
            SendResult(43, "sig-2", ChainId.SOLANA, EMITTER),
            SendResult(44, "sig-3", ChainId.SOLANA, EMITTER),
        ]

        async def wait(chain, emitter, seq, timeout=None):
            if seq == 43:
                raise KeyError("vaaBytes")
            return make_attestation(sequence=seq)

        poller.wait_for_attestation.side_effect = wait
        orchestrator = RelayOrchestrator(source, destination, poller)
        intents = [TransferIntent.message(p, ChainId.ETHEREUM) for p in (b"a", b"b", b"c")]

        transfers = await orchestrator.relay_all(intents)

        assert [t.state for t in transfers] == [RelayState.REDEEMED, RelayState.FAILED, RelayState.REDEEMED]
        assert isinstance(transfers[1].error, KeyError)
        assert transfers[1].resumable
        assert destination.redeem.await_count == 2


class TestRelayTransfer:
    """Tests for the transition table."""

    def test_illegal_transition(self):
        transfer = RelayTransfer(intent=TransferIntent.message(b"", ChainId.ETHEREUM))

        with pytest.raises(RuntimeError):
            transfer.advance(RelayState.REDEEMED)

    def test_failed_is_terminal(self):
        transfer = RelayTransfer(intent=TransferIntent.message(b"", ChainId.ETHEREUM))
        transfer.fail(RpcFailureError("x"))

        with pytest.raises(RuntimeError):
            transfer.advance(RelayState.SENT)
