"""
Solana chain adapters for the cross-chain messenger and token bridge app programs.

Instructions are Anchor calls (8-byte sighash + Borsh arguments) compiled into
single-signer legacy transactions and submitted over JSON-RPC. Every account
is derived locally from its program seeds.
"""

import logging
from typing import ClassVar

from ..config import SolanaChainConfig
from ..errors import (
    AlreadyRedeemedError,
    AttestationParseError,
    InsufficientFundsError,
    RpcFailureError,
)
from ..models import (
    Attestation,
    ChainId,
    IntentKind,
    ReceivedMessage,
    SendResult,
    TransferIntent,
    to_canonical_address,
)
from ..utils.address_deriver import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    SYSVAR_CLOCK_ID,
    SYSVAR_RENT_ID,
    TOKEN_PROGRAM_ID,
    BridgeAppAddresses,
    CoreBridgeAddresses,
    MessengerAddresses,
    TokenBridgeAddresses,
    associated_token_address,
    decode_pubkey,
    encode_pubkey,
    u16_le,
    u64_le,
)
from ..utils.signer import SolanaKeypairSigner
from ..utils.solana_rpc import SolanaRpcClient
from ..utils.solana_transaction import (
    Instruction,
    SolanaTransaction,
    anchor_instruction,
    borsh_bytes,
    readonly,
    writable,
)
from ..utils.vaa_codec import (
    MAX_MESSAGE_LENGTH,
    TRANSFER_WITH_PAYLOAD,
    AttestationCodec,
    truncate_amount,
)
from .base import DestinationChainAdapter, SourceChainAdapter, VaaPoster

logger = logging.getLogger(__name__)

ANCHOR_DISCRIMINATOR_LENGTH = 8
MINT_DECIMALS_OFFSET = 44
MAX_U64 = 2**64 - 1

# Core bridge PostedMessage: "msg"|"msu" magic, version, consistency, vaa_time,
# signature account, submission_time, nonce, sequence, emitter_chain, emitter
POSTED_MESSAGE_MAGIC = (b"msg", b"msu")
POSTED_MESSAGE_SEQUENCE_OFFSET = 49
POSTED_MESSAGE_EMITTER_OFFSET = 59


def parse_posted_message(data: bytes) -> tuple[int, bytes]:
    """
    Read the sequence and emitter out of a core bridge message account.

    Returns:
        Tuple of (sequence, emitter address)

    Raises:
        RpcFailureError: If the account does not hold a posted message
    """
    if data[:3] not in POSTED_MESSAGE_MAGIC or len(data) < POSTED_MESSAGE_EMITTER_OFFSET + 32:
        raise RpcFailureError("Account does not contain a posted Wormhole message")
    sequence = int.from_bytes(
        data[POSTED_MESSAGE_SEQUENCE_OFFSET:POSTED_MESSAGE_SEQUENCE_OFFSET + 8], "little"
    )
    emitter = data[POSTED_MESSAGE_EMITTER_OFFSET:POSTED_MESSAGE_EMITTER_OFFSET + 32]
    return sequence, emitter


def _registered_address(data: bytes | None) -> bytes | None:
    """Address field of ForeignEmitter / ForeignContract (after discriminator and chain)."""
    if data is None:
        return None
    start = ANCHOR_DISCRIMINATOR_LENGTH + 2
    if len(data) < start + 32:
        raise RpcFailureError(f"Registration account too short ({len(data)} bytes)")
    return data[start:start + 32]


class SolanaAdapterBase:
    """Transaction plumbing shared by the Solana program adapters."""

    PROGRAM_FIELD: ClassVar[str] = ""

    def __init__(
        self,
        config: SolanaChainConfig,
        rpc: SolanaRpcClient,
        signer: SolanaKeypairSigner,
        vaa_poster: VaaPoster | None = None,
    ):
        program_id = getattr(config, self.PROGRAM_FIELD)
        if not program_id:
            raise ValueError(f"Solana {self.PROGRAM_FIELD} is required")
        self.config = config
        self.rpc = rpc
        self.signer = signer
        self.vaa_poster = vaa_poster
        self.program_id = decode_pubkey(program_id)
        self.core = CoreBridgeAddresses(config.wormhole_program_id)

    @property
    def chain_id(self) -> int:
        return ChainId.SOLANA

    @property
    def payer(self) -> bytes:
        return self.signer.public_key

    async def get_balance(self) -> int:
        """Lamports held by the signer."""
        return await self.rpc.get_balance(self.payer)

    async def _ensure_sol_balance(self, action: str) -> None:
        balance = await self.get_balance()
        if balance < self.config.min_balance_lamports:
            raise InsufficientFundsError(
                f"{action}: balance {balance} lamports < required "
                f"{self.config.min_balance_lamports} lamports"
            )

    async def _submit(self, instructions: list[Instruction], action: str, redeeming: bool = False) -> str:
        """
        Sign, send and confirm a transaction.

        Raises:
            AlreadyRedeemedError: If redeeming and the replay record already exists
            InsufficientFundsError: If the runtime reports missing lamports
            RpcFailureError: On any other failure
        """
        blockhash = await self.rpc.get_latest_blockhash()
        tx = SolanaTransaction(self.payer, instructions, blockhash)
        message = tx.compile_message()
        raw = SolanaTransaction.serialize(message, self.signer.sign(message))
        try:
            signature = await self.rpc.send_transaction(raw)
            logger.info(f"{action}: submitted {signature}")
            await self.rpc.confirm_transaction(signature)
        except RpcFailureError as e:
            text = str(e).lower()
            if redeeming and "already in use" in text:
                raise AlreadyRedeemedError(f"{action}: {e}") from e
            if "insufficient lamports" in text or "insufficient funds" in text:
                raise InsufficientFundsError(f"{action}: {e}") from e
            raise
        logger.info(f"{action}: confirmed {signature}")
        return signature

    async def _read_sequence(self, message_account: bytes, emitter: bytes) -> int:
        """Sequence the core bridge actually assigned to the message we posted."""
        data = await self.rpc.get_account_data(message_account)
        if data is None:
            raise RpcFailureError(
                f"Message account {encode_pubkey(message_account)} missing after confirmation"
            )
        sequence, posted_emitter = parse_posted_message(data)
        if posted_emitter != emitter:
            raise RpcFailureError(
                f"Message account {encode_pubkey(message_account)} was written by another emitter"
            )
        return sequence

    async def _tracker_value(self, emitter: bytes) -> int:
        tracker = self.core.sequence_tracker(emitter)
        data = await self.rpc.get_account_data(tracker)
        # the tracker is created by the first message
        return 0 if data is None else int.from_bytes(data[:8], "little")

    async def _ensure_posted(self, attestation: Attestation) -> bytes:
        """Return the PostedVAA account, posting it first if a poster is available."""
        posted = self.core.posted_vaa(AttestationCodec.body_hash(attestation))
        if await self.rpc.account_exists(posted):
            return posted
        if self.vaa_poster is None:
            raise RpcFailureError(
                f"{attestation.unique_key} is not posted to the Solana core bridge "
                f"({encode_pubkey(posted)}) and no VAA poster is configured"
            )
        logger.info(f"Posting {attestation.unique_key} to the core bridge")
        await self.vaa_poster.post_vaa(attestation)
        if not await self.rpc.account_exists(posted):
            raise RpcFailureError(f"VAA poster did not create {encode_pubkey(posted)}")
        return posted


class SolanaMessengerAdapter(SolanaAdapterBase, SourceChainAdapter, DestinationChainAdapter):
    """Adapter for the cross-chain messenger program."""

    PROGRAM_FIELD = "messenger_program_id"

    def __init__(self, config: SolanaChainConfig, rpc: SolanaRpcClient, signer: SolanaKeypairSigner,
                 vaa_poster: VaaPoster | None = None):
        super().__init__(config, rpc, signer, vaa_poster)
        self.addresses = MessengerAddresses(self.program_id)

    @property
    def emitter_address(self) -> bytes:
        return self.addresses.emitter()

    async def send(self, intent: TransferIntent) -> SendResult:
        if intent.kind is not IntentKind.MESSAGE:
            raise ValueError("Messenger adapter only sends MESSAGE intents")
        if len(intent.payload) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message exceeds {MAX_MESSAGE_LENGTH} bytes")

        await self._ensure_sol_balance("send_message")
        emitter = self.emitter_address
        sequence_tracker = self.core.sequence_tracker(emitter)
        provisional = await self._tracker_value(emitter)
        message_account = self.addresses.sent(provisional + 1)

        ix = anchor_instruction(
            self.program_id,
            "send_message",
            borsh_bytes(intent.payload),
            [
                writable(self.payer, signer=True),
                readonly(self.addresses.config()),
                readonly(self.core.program_id),
                writable(self.core.bridge()),
                writable(self.core.fee_collector()),
                readonly(emitter),
                writable(sequence_tracker),
                writable(message_account),
                readonly(SYSTEM_PROGRAM_ID),
                readonly(SYSVAR_CLOCK_ID),
                readonly(SYSVAR_RENT_ID),
            ],
        )
        signature = await self._submit([ix], "send_message")
        sequence = await self._read_sequence(message_account, emitter)
        if sequence != provisional:
            logger.warning(f"Sequence moved from provisional {provisional} to {sequence}")
        logger.info(f"Message sent from Solana with sequence {sequence}")
        return SendResult(sequence, signature, self.chain_id, emitter)

    async def is_redeemed(self, attestation: Attestation) -> bool:
        received = self.addresses.received(attestation.emitter_chain, attestation.sequence)
        return await self.rpc.account_exists(received)

    async def redeem(self, attestation: Attestation) -> str:
        if await self.is_redeemed(attestation):
            raise AlreadyRedeemedError(f"{attestation.unique_key} already received on Solana")

        posted = await self._ensure_posted(attestation)
        vaa_hash = AttestationCodec.body_hash(attestation)
        ix = anchor_instruction(
            self.program_id,
            "receive_message",
            vaa_hash,
            [
                writable(self.payer, signer=True),
                readonly(self.addresses.config()),
                readonly(self.core.program_id),
                readonly(posted),
                readonly(self.addresses.foreign_emitter(attestation.emitter_chain)),
                writable(self.addresses.received(attestation.emitter_chain, attestation.sequence)),
                readonly(SYSTEM_PROGRAM_ID),
            ],
        )
        return await self._submit([ix], f"receive_message({attestation.unique_key})", redeeming=True)

    async def get_registered_endpoint(self, chain_id: int) -> bytes | None:
        data = await self.rpc.get_account_data(self.addresses.foreign_emitter(chain_id))
        return _registered_address(data)

    async def register_foreign_endpoint(self, chain_id: int, address: bytes) -> str | None:
        if len(address) != 32 or not any(address):
            raise ValueError(f"Foreign emitter must be a non-zero 32-byte address, got 0x{address.hex()}")
        if chain_id == self.chain_id:
            raise ValueError("Cannot register an emitter for Solana itself")
        if await self.get_registered_endpoint(chain_id) == address:
            logger.info(f"Chain {chain_id} already registered as 0x{address.hex()}, skipping")
            return None

        await self._ensure_sol_balance("register_emitter")
        ix = anchor_instruction(
            self.program_id,
            "register_emitter",
            u16_le(chain_id) + address,
            [
                writable(self.payer, signer=True),
                readonly(self.addresses.config()),
                writable(self.addresses.foreign_emitter(chain_id)),
                readonly(SYSTEM_PROGRAM_ID),
            ],
        )
        return await self._submit([ix], f"register_emitter({chain_id})")

    async def read_received_message(self, emitter_chain: int, sequence: int) -> ReceivedMessage | None:
        """Decode the Received record stored when a message was redeemed."""
        data = await self.rpc.get_account_data(self.addresses.received(emitter_chain, sequence))
        if data is None:
            return None
        if len(data) < 48:
            raise RpcFailureError(f"Received account too short ({len(data)} bytes)")
        batch_id = int.from_bytes(data[8:12], "little")
        message_hash = data[12:44]
        length = int.from_bytes(data[44:48], "little")
        if len(data) < 48 + length:
            raise RpcFailureError("Received account payload is truncated")
        return ReceivedMessage(batch_id, message_hash, data[48:48 + length])

    async def close_received(self, emitter_chain: int, sequence: int) -> str | None:
        """
        Close a Received record and return its rent to the payer.

        Only the program owner may close records. Once closed, the replay
        record for (emitter_chain, sequence) is gone.

        Returns:
            The transaction reference, or None if the record does not exist
        """
        received = self.addresses.received(emitter_chain, sequence)
        if not await self.rpc.account_exists(received):
            logger.info(f"No Received record for chain {emitter_chain} sequence {sequence}")
            return None

        ix = anchor_instruction(
            self.program_id,
            "close_received",
            u16_le(emitter_chain) + u64_le(sequence),
            [
                writable(self.payer, signer=True),
                readonly(self.addresses.config()),
                readonly(self.payer, signer=True),
                writable(received),
            ],
        )
        return await self._submit([ix], f"close_received({emitter_chain}/{sequence})")


class SolanaTokenBridgeAdapter(SolanaAdapterBase, SourceChainAdapter, DestinationChainAdapter):
    """Adapter for the token bridge application program.

    Transfers are emitted by the Wormhole token bridge; remote apps register
    this program id, which the token bridge records as the sender.
    """

    PROGRAM_FIELD = "bridge_program_id"

    def __init__(self, config: SolanaChainConfig, rpc: SolanaRpcClient, signer: SolanaKeypairSigner,
                 vaa_poster: VaaPoster | None = None):
        super().__init__(config, rpc, signer, vaa_poster)
        self.addresses = BridgeAppAddresses(self.program_id)
        self.token_bridge = TokenBridgeAddresses(config.token_bridge_program_id)

    @property
    def emitter_address(self) -> bytes:
        return self.token_bridge.emitter()

    @property
    def endpoint_address(self) -> bytes:
        return self.program_id

    async def _mint_decimals(self, mint: bytes) -> int:
        data = await self.rpc.get_account_data(mint)
        if data is None or len(data) <= MINT_DECIMALS_OFFSET:
            raise RpcFailureError(f"Mint {encode_pubkey(mint)} not found")
        return data[MINT_DECIMALS_OFFSET]

    async def send(self, intent: TransferIntent) -> SendResult:
        if intent.kind is not IntentKind.TOKEN_TRANSFER or not intent.token:
            raise ValueError("Token bridge adapter only sends TOKEN_TRANSFER intents")
        if intent.amount > MAX_U64:
            raise ValueError(f"Amount {intent.amount} does not fit in u64")

        mint = decode_pubkey(intent.token)
        decimals = await self._mint_decimals(mint)
        if truncate_amount(intent.amount, decimals) == 0:
            raise ValueError(
                f"Amount {intent.amount} is below the bridge's 8-decimal precision for {decimals}-decimal mint"
            )
        from_token_account = associated_token_address(self.payer, mint)
        balance = await self.rpc.get_token_balance(from_token_account)
        if balance < intent.amount:
            raise InsufficientFundsError(f"Token balance {balance} < amount {intent.amount}")

        # mints created by the token bridge carry a WrappedMeta record
        wrapped_meta = self.token_bridge.wrapped_meta(mint)
        wrapped = await self.rpc.account_exists(wrapped_meta)
        name = "send_wrapped_tokens_with_payload" if wrapped else "send_native_tokens_with_payload"
        await self._ensure_sol_balance(name)

        emitter = self.emitter_address
        provisional = await self._tracker_value(emitter)
        message_account = self.addresses.bridged_message(provisional + 1)

        args = b"".join([
            intent.batch_id.to_bytes(4, "little"),
            u64_le(intent.amount),
            intent.recipient,
            u16_le(intent.target_chain),
        ])
        accounts = [
            writable(self.payer, signer=True),
            readonly(self.addresses.sender_config()),
            readonly(self.addresses.foreign_contract(intent.target_chain)),
            writable(mint),
            writable(from_token_account),
            writable(self.addresses.tmp_token_account(mint)),
            readonly(self.core.program_id),
            readonly(self.token_bridge.program_id),
        ]
        if wrapped:
            accounts += [
                readonly(wrapped_meta),
                writable(self.token_bridge.config()),
                readonly(self.token_bridge.authority_signer()),
            ]
        else:
            accounts += [
                readonly(self.token_bridge.config()),
                writable(self.token_bridge.custody(mint)),
                readonly(self.token_bridge.authority_signer()),
                readonly(self.token_bridge.custody_signer()),
            ]
        accounts += [
            writable(self.core.bridge()),
            writable(message_account),
            writable(emitter),
            writable(self.core.sequence_tracker(emitter)),
            writable(self.core.fee_collector()),
            readonly(SYSTEM_PROGRAM_ID),
            readonly(TOKEN_PROGRAM_ID),
            readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
            readonly(SYSVAR_CLOCK_ID),
            readonly(SYSVAR_RENT_ID),
        ]

        ix = anchor_instruction(self.program_id, name, args, accounts)
        signature = await self._submit([ix], name)
        sequence = await self._read_sequence(message_account, emitter)
        logger.info(f"Tokens sent from Solana with sequence {sequence} ({name})")
        return SendResult(sequence, signature, self.chain_id, emitter)

    def _claim(self, attestation: Attestation) -> bytes:
        return self.token_bridge.claim(
            attestation.emitter_address, attestation.emitter_chain, attestation.sequence
        )

    async def is_redeemed(self, attestation: Attestation) -> bool:
        return await self.rpc.account_exists(self._claim(attestation))

    async def redeem(self, attestation: Attestation) -> str:
        transfer = AttestationCodec.decode_token_transfer_payload(attestation.payload)
        if transfer.payload_type != TRANSFER_WITH_PAYLOAD:
            raise AttestationParseError("unsupported transfer", "expected a transfer with payload")
        if transfer.recipient_chain != self.chain_id:
            raise ValueError(f"{attestation.unique_key} is addressed to chain {transfer.recipient_chain}")
        recipient = AttestationCodec.decode_bridge_recipient(transfer.sender_payload)

        if await self.is_redeemed(attestation):
            raise AlreadyRedeemedError(f"{attestation.unique_key} already claimed on Solana")
        posted = await self._ensure_posted(attestation)
        vaa_hash = AttestationCodec.body_hash(attestation)
        claim = self._claim(attestation)
        endpoint = self.token_bridge.endpoint(attestation.emitter_chain, attestation.emitter_address)
        foreign_contract = self.addresses.foreign_contract(attestation.emitter_chain)

        if transfer.token_chain == self.chain_id:
            mint = transfer.token_address
            name = "redeem_native_transfer_with_payload"
            accounts = [
                writable(self.payer, signer=True),
                writable(associated_token_address(self.payer, mint)),
                readonly(self.addresses.redeemer_config()),
                readonly(foreign_contract),
                readonly(mint),
                writable(associated_token_address(recipient, mint)),
                writable(recipient),
                writable(self.addresses.tmp_token_account(mint)),
                readonly(self.core.program_id),
                readonly(self.token_bridge.program_id),
                readonly(self.token_bridge.config()),
                readonly(posted),
                writable(claim),
                readonly(endpoint),
                writable(self.token_bridge.custody(mint)),
                readonly(self.token_bridge.custody_signer()),
                readonly(SYSTEM_PROGRAM_ID),
                readonly(TOKEN_PROGRAM_ID),
                readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
                readonly(SYSVAR_RENT_ID),
            ]
        else:
            mint = self.token_bridge.wrapped_mint(transfer.token_chain, transfer.token_address)
            name = "redeem_wrapped_transfer_with_payload"
            accounts = [
                writable(self.payer, signer=True),
                writable(associated_token_address(self.payer, mint)),
                readonly(self.addresses.redeemer_config()),
                readonly(foreign_contract),
                writable(mint),
                writable(associated_token_address(recipient, mint)),
                writable(recipient),
                writable(self.addresses.tmp_token_account(mint)),
                readonly(self.core.program_id),
                readonly(self.token_bridge.program_id),
                readonly(self.token_bridge.wrapped_meta(mint)),
                readonly(self.token_bridge.config()),
                readonly(posted),
                writable(claim),
                readonly(endpoint),
                readonly(self.token_bridge.mint_authority()),
                readonly(SYSTEM_PROGRAM_ID),
                readonly(TOKEN_PROGRAM_ID),
                readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
                readonly(SYSVAR_RENT_ID),
            ]

        ix = anchor_instruction(self.program_id, name, vaa_hash, accounts)
        return await self._submit([ix], f"{name}({attestation.unique_key})", redeeming=True)

    async def get_registered_endpoint(self, chain_id: int) -> bytes | None:
        data = await self.rpc.get_account_data(self.addresses.foreign_contract(chain_id))
        return _registered_address(data)

    async def register_foreign_endpoint(self, chain_id: int, address: bytes) -> str | None:
        if len(address) != 32 or not any(address):
            raise ValueError(f"Foreign contract must be a non-zero 32-byte address, got 0x{address.hex()}")
        if chain_id == self.chain_id:
            raise ValueError("Cannot register a foreign contract for Solana itself")
        if (token_bridge := self.config.foreign_token_bridges.get(chain_id)) is None:
            raise ValueError(f"No token bridge address known for chain {chain_id}")
        if await self.get_registered_endpoint(chain_id) == address:
            logger.info(f"Chain {chain_id} already registered as 0x{address.hex()}, skipping")
            return None

        await self._ensure_sol_balance("register_foreign_contract")
        endpoint = self.token_bridge.endpoint(chain_id, to_canonical_address(token_bridge))
        ix = anchor_instruction(
            self.program_id,
            "register_foreign_contract",
            u16_le(chain_id) + address,
            [
                writable(self.payer, signer=True),
                readonly(self.addresses.sender_config()),
                writable(self.addresses.foreign_contract(chain_id)),
                readonly(endpoint),
                readonly(self.token_bridge.program_id),
                readonly(SYSTEM_PROGRAM_ID),
            ],
        )
        return await self._submit([ix], f"register_foreign_contract({chain_id})")
