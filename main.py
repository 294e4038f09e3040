#!/usr/bin/env python3
"""Command line entry point for the Wormhole relay client.

Registers messenger / bridge endpoints between an EVM chain and Solana, and
relays messages and token transfers between them.
"""

import argparse
import asyncio
import logging
import os
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


logger = logging.getLogger(__name__)

from wormhole_relayer.errors import RelayerError
from wormhole_relayer.models import ChainId, IntentKind, TransferIntent
from wormhole_relayer.relay_orchestrator import RelayTransfer
from wormhole_relayer.relayer import App, Direction, WormholeRelayer


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Wormhole relay client - move messages and tokens between EVM chains and Solana",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  EVM_RPC_URL                  - EVM JSON-RPC endpoint
  EVM_PRIVATE_KEY              - EVM signer key
  EVM_CHAIN_ID                 - Wormhole chain id of the EVM chain (default: 2)
  EVM_WORMHOLE_ADDRESS         - Wormhole core contract
  EVM_MESSENGER_ADDRESS        - CrossChainMessenger contract
  EVM_BRIDGE_ADDRESS           - CrossChainBridge contract
  EVM_TOKEN_BRIDGE_ADDRESS     - Wormhole token bridge contract
  SOLANA_RPC_URL               - Solana JSON-RPC endpoint
  SOLANA_PRIVATE_KEY           - Solana keypair (or SOLANA_KEYPAIR_PATH)
  SOLANA_MESSENGER_PROGRAM_ID  - Messenger program
  SOLANA_BRIDGE_PROGRAM_ID     - Token bridge app program
  WORMHOLE_RPC_URL             - Guardian API (default: https://api.wormholescan.io)
  POLL_INTERVAL                - Seconds between attestation polls (default: 5)
  ATTESTATION_TIMEOUT          - Seconds to wait for an attestation (default: 180)
  LOG_LEVEL                    - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Logging level (default: LOG_LEVEL or INFO)"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    register = commands.add_parser("register", help="Register EVM and Solana endpoints with each other")
    register.add_argument("app", choices=[a.value for a in App])

    directions = [d.value for d in Direction]

    send_message = commands.add_parser("send-message", help="Relay a message through the messengers")
    send_message.add_argument("--direction", choices=directions, required=True)
    send_message.add_argument("payload", help="Message text")

    send_tokens = commands.add_parser("send-tokens", help="Relay tokens through the bridge apps")
    send_tokens.add_argument("--direction", choices=directions, required=True)
    send_tokens.add_argument("--token", required=True, help="ERC-20 address or SPL mint")
    send_tokens.add_argument("--amount", type=int, required=True, help="Raw amount in token units")
    send_tokens.add_argument("--recipient", required=True, help="Recipient on the destination chain")
    send_tokens.add_argument("--batch-id", type=int, default=0)

    resume = commands.add_parser("resume", help="Wait for and redeem an already-sent transfer")
    resume.add_argument("app", choices=[a.value for a in App])
    resume.add_argument("--direction", choices=directions, required=True)
    resume.add_argument("--sequence", type=int, required=True)

    read_message = commands.add_parser("read-message", help="Show a message received on Solana")
    read_message.add_argument("emitter_chain", type=int)
    read_message.add_argument("sequence", type=int)

    close_received = commands.add_parser("close-received", help="Close a Received record on Solana and reclaim rent")
    close_received.add_argument("emitter_chain", type=int)
    close_received.add_argument("sequence", type=int)

    return parser


def target_chain(relayer: WormholeRelayer, direction: Direction) -> int:
    if direction is Direction.EVM_TO_SOLANA:
        return ChainId.SOLANA
    if relayer.config.evm is None:
        raise ValueError("EVM chain is not configured (EVM_RPC_URL)")
    return relayer.config.evm.wormhole_chain_id


def report(transfer: RelayTransfer) -> int:
    states = " -> ".join(state.value for state in transfer.history)
    logger.info(f"Transfer sequence={transfer.sequence}: {states}")
    if transfer.succeeded:
        if transfer.already_redeemed:
            logger.info("Attestation had already been redeemed on the destination chain")
        else:
            logger.info(f"Redeemed in {transfer.redeem_tx}")
        return 0
    logger.error(f"Transfer failed: {transfer.error}")
    if transfer.resumable:
        logger.error(f"Resume later with: resume --sequence {transfer.sequence}")
    return 1


async def run(args: argparse.Namespace) -> int:
    relayer = WormholeRelayer.from_env()

    match args.command:
        case "register":
            on_evm, on_solana = await relayer.register(App(args.app))
            logger.info(f"EVM registered {on_evm}; Solana registered {on_solana}")
            return 0
        case "send-message":
            direction = Direction(args.direction)
            intent = TransferIntent.message(args.payload.encode(), target_chain(relayer, direction))
            return report(await relayer.orchestrator(App.MESSENGER, direction).relay(intent))
        case "send-tokens":
            direction = Direction(args.direction)
            intent = TransferIntent.token_transfer(
                args.token, args.amount, target_chain(relayer, direction), args.recipient, args.batch_id
            )
            return report(await relayer.orchestrator(App.BRIDGE, direction).relay(intent))
        case "resume":
            direction, app = Direction(args.direction), App(args.app)
            orchestrator = relayer.orchestrator(app, direction)
            kind = IntentKind.MESSAGE if app is App.MESSENGER else IntentKind.TOKEN_TRANSFER
            intent = TransferIntent(kind=kind, target_chain=target_chain(relayer, direction))
            return report(await orchestrator.resume_sequence(intent, args.sequence))
        case "read-message":
            message = await relayer.read_message(args.emitter_chain, args.sequence)
            if message is None:
                logger.error(f"No message received from chain {args.emitter_chain} with sequence {args.sequence}")
                return 1
            logger.info(f"Batch {message.batch_id}, hash 0x{message.message_hash.hex()}")
            logger.info(f"Payload: {message.payload!r}")
            return 0
        case "close-received":
            tx_ref = await relayer.close_received(args.emitter_chain, args.sequence)
            if tx_ref is None:
                logger.info("Nothing to close")
            else:
                logger.info(f"Closed in {tx_ref}")
            return 0
    return 2


def main() -> None:
    """Parse arguments, configure logging and run the selected command.

    Raises:
        SystemExit: With the command's exit status
    """
    args = build_parser().parse_args()
    setup_logging(args.log_level)

    try:
        status = asyncio.run(run(args))
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Run with --help to see the required environment variables")
        sys.exit(1)
    except RelayerError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
        sys.exit(130)
    sys.exit(status)


if __name__ == "__main__":
    main()
