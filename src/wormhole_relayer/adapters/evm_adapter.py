"""
EVM chain adapters for the cross-chain messenger and token bridge app contracts.

Transactions are built with AsyncWeb3, signed by the injected EvmSigner and
sent raw. The Wormhole sequence of a send is read from the core bridge's
LogMessagePublished event in the receipt.
"""

import logging
from typing import Any, ClassVar

from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3Exception

from ..config import EvmChainConfig
from ..errors import (
    AlreadyRedeemedError,
    AlreadyRegisteredError,
    InsufficientAllowanceError,
    InsufficientFundsError,
    RpcFailureError,
)
from ..models import (
    Attestation,
    IntentKind,
    SendResult,
    TransferIntent,
    to_canonical_address,
)
from ..utils.contract_utility import ContractUtility
from ..utils.signer import EvmSigner
from ..utils.vaa_codec import MAX_MESSAGE_LENGTH, AttestationCodec, normalize_amount
from .base import DestinationChainAdapter, SourceChainAdapter

logger = logging.getLogger(__name__)

LOG_MESSAGE_PUBLISHED_TOPIC = bytes(
    Web3.keccak(text="LogMessagePublished(address,uint64,uint32,bytes,uint8)")
)

ALREADY_REDEEMED_MARKERS = (
    "already consumed",
    "message already",
    "already redeemed",
    "transfer already completed",
    "already completed",
)
ALREADY_REGISTERED_MARKERS = ("already registered",)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes(Web3.to_bytes(hexstr=value))
    return bytes(value)


def parse_sequence_from_receipt(receipt: Any, core_bridge: str, emitter: str) -> int:
    """
    Extract the Wormhole sequence from a transaction receipt.

    Args:
        receipt: Transaction receipt with raw logs
        core_bridge: Address of the Wormhole core contract
        emitter: Contract expected as the `sender` topic

    Returns:
        The sequence of the first matching LogMessagePublished event

    Raises:
        RpcFailureError: If the receipt contains no matching event
    """
    emitter_topic = to_canonical_address(emitter)
    for log in receipt.get("logs", []):
        if Web3.to_checksum_address(log["address"]) != Web3.to_checksum_address(core_bridge):
            continue
        topics = [_as_bytes(t) for t in log["topics"]]
        if len(topics) < 2 or topics[0] != LOG_MESSAGE_PUBLISHED_TOPIC or topics[1] != emitter_topic:
            continue
        data = _as_bytes(log["data"])
        return int.from_bytes(data[:32], "big")
    raise RpcFailureError(
        f"No LogMessagePublished event from {emitter} in transaction receipt"
    )


class EvmAdapterBase:
    """Shared transaction plumbing for the EVM contract adapters."""

    CONTRACT_NAME: ClassVar[str] = ""

    def __init__(
        self,
        config: EvmChainConfig,
        signer: EvmSigner,
        contract_address: str,
        contracts: ContractUtility | None = None,
    ):
        self.config = config
        self.signer = signer
        self.contracts = contracts or ContractUtility(config.rpc_url)
        self.w3: AsyncWeb3 = self.contracts.w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = self.contracts.get_contract(self.CONTRACT_NAME, self.contract_address)
        self._core_bridge_address = config.wormhole_address

    @property
    def chain_id(self) -> int:
        return self.config.wormhole_chain_id

    async def get_balance(self) -> int:
        """Native balance of the signer in wei."""
        try:
            return await self.w3.eth.get_balance(self.signer.address)
        except (Web3Exception, OSError, TimeoutError) as e:
            raise RpcFailureError(f"Failed to read balance: {e}") from e

    async def core_bridge_address(self) -> str:
        """Configured core bridge, or the one the endpoint contract points at."""
        if self._core_bridge_address is None:
            try:
                address = await self.contract.functions.wormhole().call()
            except (Web3Exception, OSError, TimeoutError) as e:
                raise RpcFailureError(f"Failed to read Wormhole address from {self.contract_address}: {e}") from e
            self._core_bridge_address = Web3.to_checksum_address(address)
        return self._core_bridge_address

    async def message_fee(self) -> int:
        wormhole = self.contracts.get_contract("Wormhole", await self.core_bridge_address())
        try:
            return await wormhole.functions.messageFee().call()
        except (Web3Exception, OSError, TimeoutError) as e:
            raise RpcFailureError(f"Failed to read Wormhole message fee: {e}") from e

    def _map_error(self, error: Exception, action: str) -> Exception:
        text = str(error).lower()
        if any(marker in text for marker in ALREADY_REDEEMED_MARKERS):
            return AlreadyRedeemedError(f"{action}: {error}")
        if any(marker in text for marker in ALREADY_REGISTERED_MARKERS):
            return AlreadyRegisteredError(f"{action}: {error}")
        if "insufficient funds" in text:
            return InsufficientFundsError(f"{action}: {error}")
        return RpcFailureError(f"{action} failed: {error}")

    async def _transact(self, fn: Any, action: str, value: int = 0) -> tuple[str, Any]:
        """
        Estimate, check funds for, sign, send and await a contract call.

        Returns:
            Tuple of (transaction hash, receipt)

        Raises:
            InsufficientFundsError: If balance < value + gas * gasPrice
            AlreadyRedeemedError: If the revert says the VAA was consumed
            AlreadyRegisteredError: If the revert says the endpoint is registered
            RpcFailureError: On any other failure
        """
        sender = self.signer.address
        try:
            estimate = await fn.estimate_gas({"from": sender, "value": value})
            gas = int(estimate * self.config.gas_multiplier)
            gas_price = await self.w3.eth.gas_price
            balance = await self.w3.eth.get_balance(sender)
        except (ContractLogicError, Web3Exception, OSError, TimeoutError) as e:
            raise self._map_error(e, action) from e

        required = value + gas * gas_price
        if balance < required:
            raise InsufficientFundsError(
                f"{action}: balance {balance} wei < required {required} wei "
                f"(value {value} + gas {gas} x {gas_price})"
            )

        try:
            tx = await fn.build_transaction({
                "from": sender,
                "value": value,
                "gas": gas,
                "gasPrice": gas_price,
                "nonce": await self.w3.eth.get_transaction_count(sender, "pending"),
                "chainId": await self.w3.eth.chain_id,
            })
            tx_hash = await self.w3.eth.send_raw_transaction(self.signer.sign(tx))
            logger.info(f"{action}: submitted {Web3.to_hex(tx_hash)}")
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash)
        except (ContractLogicError, Web3Exception, OSError, TimeoutError) as e:
            raise self._map_error(e, action) from e

        tx_ref = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            raise RpcFailureError(f"{action}: transaction {tx_ref} reverted")
        logger.info(f"{action}: confirmed {tx_ref} in block {receipt['blockNumber']}")
        return tx_ref, receipt

    async def get_registered_endpoint(self, chain_id: int) -> bytes | None:
        try:
            value = await self.contract.functions.getRegisteredEmitter(chain_id).call()
        except (Web3Exception, OSError, TimeoutError) as e:
            raise RpcFailureError(f"Failed to read registered emitter for chain {chain_id}: {e}") from e
        value = bytes(value)
        return None if not any(value) else value

    async def register_foreign_endpoint(self, chain_id: int, address: bytes) -> str | None:
        """Register (chain_id, address); a no-op if the same address is already set."""
        if len(address) != 32 or not any(address):
            raise ValueError(f"Foreign endpoint must be a non-zero 32-byte address, got 0x{address.hex()}")
        if chain_id == self.chain_id:
            raise ValueError(f"Cannot register an endpoint for the local chain {chain_id}")

        if await self.get_registered_endpoint(chain_id) == address:
            logger.info(f"Chain {chain_id} already registered as 0x{address.hex()}, skipping")
            return None

        fn = self.contract.functions.registerEmitter(chain_id, address)
        try:
            tx_ref, _ = await self._transact(fn, f"registerEmitter({chain_id})")
        except AlreadyRegisteredError:
            logger.info(f"Chain {chain_id} reported as already registered")
            return None
        return tx_ref


class EvmMessengerAdapter(EvmAdapterBase, SourceChainAdapter, DestinationChainAdapter):
    """Adapter for the CrossChainMessenger contract."""

    CONTRACT_NAME = "CrossChainMessenger"

    def __init__(self, config: EvmChainConfig, signer: EvmSigner, contracts: ContractUtility | None = None):
        if not config.messenger_address:
            raise ValueError("Messenger address is required (EVM_MESSENGER_ADDRESS)")
        super().__init__(config, signer, config.messenger_address, contracts)

    @property
    def emitter_address(self) -> bytes:
        return to_canonical_address(self.contract_address)

    async def send(self, intent: TransferIntent) -> SendResult:
        if intent.kind is not IntentKind.MESSAGE:
            raise ValueError("Messenger adapter only sends MESSAGE intents")
        if len(intent.payload) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message exceeds {MAX_MESSAGE_LENGTH} bytes")

        fee = await self.message_fee()
        tx_ref, receipt = await self._transact(
            self.contract.functions.sendMessage(intent.payload), "sendMessage", value=fee
        )
        sequence = parse_sequence_from_receipt(
            receipt, await self.core_bridge_address(), self.contract_address
        )
        logger.info(f"Message sent from chain {self.chain_id} with sequence {sequence}")
        return SendResult(sequence, tx_ref, self.chain_id, self.emitter_address)

    async def is_redeemed(self, attestation: Attestation) -> bool:
        digest = AttestationCodec.digest(attestation)
        try:
            return bool(await self.contract.functions.isMessageConsumed(digest).call())
        except (ContractLogicError, BadFunctionCallOutput) as e:
            # contract without a consumed-hash getter; rely on the redeem revert
            logger.debug(f"Consumed probe unavailable: {e}")
            return False
        except (Web3Exception, OSError, TimeoutError) as e:
            raise RpcFailureError(f"Failed to probe consumed messages: {e}") from e

    async def redeem(self, attestation: Attestation) -> str:
        if await self.is_redeemed(attestation):
            raise AlreadyRedeemedError(f"{attestation.unique_key} already consumed on chain {self.chain_id}")
        vaa = AttestationCodec.encode(attestation)
        tx_ref, _ = await self._transact(
            self.contract.functions.receiveMessage(vaa), f"receiveMessage({attestation.unique_key})"
        )
        return tx_ref


class EvmTokenBridgeAdapter(EvmAdapterBase, SourceChainAdapter, DestinationChainAdapter):
    """Adapter for the CrossChainBridge (token bridge app) contract.

    The guardians attest transfers as emitted by the Wormhole token bridge,
    while remote apps register this contract as the endpoint.
    """

    CONTRACT_NAME = "CrossChainBridge"

    def __init__(self, config: EvmChainConfig, signer: EvmSigner, contracts: ContractUtility | None = None):
        if not config.bridge_address:
            raise ValueError("Bridge address is required (EVM_BRIDGE_ADDRESS)")
        if not config.token_bridge_address:
            raise ValueError("Token bridge address is required (EVM_TOKEN_BRIDGE_ADDRESS)")
        super().__init__(config, signer, config.bridge_address, contracts)
        self.token_bridge = self.contracts.get_contract("TokenBridge", config.token_bridge_address)

    @property
    def emitter_address(self) -> bytes:
        return to_canonical_address(self.config.token_bridge_address)

    @property
    def endpoint_address(self) -> bytes:
        return to_canonical_address(self.contract_address)

    async def _check_token(self, token: str, amount: int) -> None:
        erc20 = self.contracts.get_contract("ERC20", token)
        owner = self.signer.address
        try:
            decimals = await erc20.functions.decimals().call()
            balance = await erc20.functions.balanceOf(owner).call()
            allowance = await erc20.functions.allowance(owner, self.contract_address).call()
        except (Web3Exception, OSError, TimeoutError) as e:
            raise RpcFailureError(f"Failed to read token {token}: {e}") from e

        if normalize_amount(amount, decimals) == 0:
            raise ValueError(
                f"Amount {amount} is below the bridge's 8-decimal precision for {decimals}-decimal token"
            )
        if balance < amount:
            raise InsufficientFundsError(f"Token balance {balance} < amount {amount}")
        if allowance < amount:
            raise InsufficientAllowanceError(
                f"Allowance {allowance} for {self.contract_address} < amount {amount}"
            )

    async def send(self, intent: TransferIntent) -> SendResult:
        if intent.kind is not IntentKind.TOKEN_TRANSFER or not intent.token:
            raise ValueError("Token bridge adapter only sends TOKEN_TRANSFER intents")
        token = Web3.to_checksum_address(intent.token)
        await self._check_token(token, intent.amount)

        fee = await self.message_fee()
        fn = self.contract.functions.sendTokensWithPayload(
            token, intent.amount, intent.target_chain, intent.recipient, intent.batch_id
        )
        tx_ref, receipt = await self._transact(fn, "sendTokensWithPayload", value=fee)
        sequence = parse_sequence_from_receipt(
            receipt, await self.core_bridge_address(), self.config.token_bridge_address
        )
        logger.info(f"Tokens sent from chain {self.chain_id} with sequence {sequence}")
        return SendResult(sequence, tx_ref, self.chain_id, self.emitter_address)

    async def is_redeemed(self, attestation: Attestation) -> bool:
        digest = AttestationCodec.digest(attestation)
        try:
            return bool(await self.token_bridge.functions.isTransferCompleted(digest).call())
        except (Web3Exception, OSError, TimeoutError) as e:
            raise RpcFailureError(f"Failed to probe completed transfers: {e}") from e

    async def redeem(self, attestation: Attestation) -> str:
        if await self.is_redeemed(attestation):
            raise AlreadyRedeemedError(f"{attestation.unique_key} already completed on chain {self.chain_id}")
        vaa = AttestationCodec.encode(attestation)
        tx_ref, _ = await self._transact(
            self.contract.functions.redeemTokensWithPayload(vaa),
            f"redeemTokensWithPayload({attestation.unique_key})",
        )
        return tx_ref
