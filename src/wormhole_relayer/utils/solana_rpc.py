"""
Solana JSON-RPC client.

Wraps the account, balance, blockhash and transaction calls the adapters need
over an httpx.AsyncClient, turning JSON-RPC errors into RpcFailureError.
"""

import asyncio
import base64
import logging
import time
from typing import Any

import httpx

from ..errors import RpcFailureError
from .address_deriver import encode_pubkey

logger = logging.getLogger(__name__)


class SolanaRpcClient:
    """Async JSON-RPC client for the handful of Solana calls the relayer makes."""

    def __init__(
        self,
        url: str,
        commitment: str = "confirmed",
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: HTTP(S) JSON-RPC endpoint
            commitment: Commitment used for reads and confirmation
            request_timeout: Timeout for a single HTTP request
            transport: Optional transport override (used by tests)
        """
        self.url = url
        self.commitment = commitment
        self.request_timeout = request_timeout
        self._transport = transport
        self._request_id = 0

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Send one JSON-RPC request and return its result.

        Raises:
            RpcFailureError: On transport failure or a JSON-RPC error object
        """
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response: httpx.Response = await client.post(
                    self.url, json=payload, timeout=self.request_timeout
                )
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RpcFailureError(f"Solana RPC {method} failed: {e}") from e

        if error := body.get("error"):
            logs = (error.get("data") or {}).get("logs") or []
            detail = "; ".join(logs[-5:])
            raise RpcFailureError(
                f"Solana RPC {method} error {error.get('code')}: {error.get('message')}"
                + (f" [{detail}]" if detail else "")
            )
        return body.get("result")

    async def get_account_data(self, pubkey: bytes) -> bytes | None:
        """Return the raw data of an account, or None if it does not exist."""
        result = await self._rpc(
            "getAccountInfo",
            [encode_pubkey(pubkey), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = result.get("value") if result else None
        if value is None:
            return None
        data, _encoding = value["data"]
        return base64.b64decode(data)

    async def account_exists(self, pubkey: bytes) -> bool:
        return await self.get_account_data(pubkey) is not None

    async def get_balance(self, pubkey: bytes) -> int:
        result = await self._rpc(
            "getBalance", [encode_pubkey(pubkey), {"commitment": self.commitment}]
        )
        return int(result["value"])

    async def get_token_balance(self, token_account: bytes) -> int:
        """Raw balance of an SPL token account; 0 if the account does not exist."""
        try:
            result = await self._rpc(
                "getTokenAccountBalance",
                [encode_pubkey(token_account), {"commitment": self.commitment}],
            )
        except RpcFailureError as e:
            if "could not find account" in str(e).lower():
                return 0
            raise
        return int(result["value"]["amount"])

    async def get_latest_blockhash(self) -> str:
        result = await self._rpc("getLatestBlockhash", [{"commitment": self.commitment}])
        return result["value"]["blockhash"]

    async def send_transaction(self, raw_transaction: bytes) -> str:
        """Submit a signed transaction and return its signature."""
        encoded = base64.b64encode(raw_transaction).decode("ascii")
        return await self._rpc(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self.commitment}],
        )

    async def confirm_transaction(
        self, signature: str, timeout: float = 60.0, poll_interval: float = 1.0
    ) -> None:
        """Wait until a signature reaches the configured commitment.

        Raises:
            RpcFailureError: If the transaction failed or was not confirmed in time
        """
        levels = ["processed", "confirmed", "finalized"]
        wanted = levels[levels.index(self.commitment):]
        start = time.monotonic()
        while True:
            result = await self._rpc(
                "getSignatureStatuses", [[signature], {"searchTransactionHistory": False}]
            )
            status = (result.get("value") or [None])[0]
            if status is not None:
                if status.get("err") is not None:
                    raise RpcFailureError(f"Transaction {signature} failed: {status['err']}")
                if status.get("confirmationStatus") in wanted:
                    logger.debug(f"Transaction {signature} {status['confirmationStatus']}")
                    return

            if time.monotonic() - start >= timeout:
                raise RpcFailureError(f"Transaction {signature} not confirmed after {timeout}s")
            await asyncio.sleep(poll_interval)
