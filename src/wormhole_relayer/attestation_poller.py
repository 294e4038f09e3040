"""
Attestation poller for the Wormhole guardian network.

Polls the guardian REST API until the signed VAA for a given emitter and
sequence is available, or until the deadline passes.
"""

import asyncio
import base64
import binascii
import logging
import time
from typing import Any

import httpx

from .config import GuardianApiConfig
from .errors import AttestationParseError, AttestationTimeoutError
from .models import Attestation
from .utils.vaa_codec import AttestationCodec

logger = logging.getLogger(__name__)


class AttestationPoller:
    """Fetches signed attestations with bounded retry.

    Any failure to get bytes (transport error, non-200, missing field) means
    "not yet available" and is retried. Bytes that arrive but do not decode
    to the requested attestation are fatal.
    """

    def __init__(
        self,
        config: GuardianApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            config: Guardian API settings
            transport: Optional transport override (used by tests)
        """
        self.config = config
        self.base_url = self._normalize_base_url(config.base_url)
        self._transport = transport

    @staticmethod
    def _normalize_base_url(url: str) -> str:
        url = url.rstrip("/")
        return url.removesuffix("/v1")

    def signed_vaa_url(self, emitter_chain: int, emitter_address: bytes, sequence: int) -> str:
        return f"{self.base_url}/v1/signed_vaa/{emitter_chain}/{emitter_address.hex()}/{sequence}"

    async def fetch_signed_vaa(
        self,
        client: httpx.AsyncClient,
        emitter_chain: int,
        emitter_address: bytes,
        sequence: int,
    ) -> bytes | None:
        """Make a single lookup.

        Returns:
            Raw VAA bytes, or None if the attestation is not available yet

        Raises:
            AttestationParseError: If the API returned undecodable base64
        """
        url = self.signed_vaa_url(emitter_chain, emitter_address, sequence)
        try:
            response: httpx.Response = await client.get(url, timeout=self.config.request_timeout)
        except httpx.HTTPError as e:
            logger.debug(f"Guardian API request failed ({type(e).__name__}): {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Attestation not ready (HTTP {response.status_code}) at {url}")
            return None

        try:
            body: Any = response.json()
        except ValueError:
            logger.debug(f"Guardian API returned a non-JSON body for {url}")
            return None

        encoded = body.get("vaaBytes") if isinstance(body, dict) else None
        if not encoded:
            return None

        try:
            return base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise AttestationParseError("invalid encoding", str(e)) from e

    async def wait_for_attestation(
        self,
        emitter_chain: int,
        emitter_address: bytes,
        sequence: int,
        timeout: float | None = None,
    ) -> Attestation:
        """Poll until the attestation is published.

        Args:
            emitter_chain: Wormhole chain id of the emitter
            emitter_address: 32-byte canonical emitter address
            sequence: Sequence number returned by the source chain
            timeout: Deadline in seconds (defaults to the configured timeout)

        Returns:
            The decoded attestation, guaranteed to match the request

        Raises:
            AttestationTimeoutError: If the deadline passes first
            AttestationParseError: If the published bytes are invalid or do
                not match the requested emitter and sequence
        """
        deadline = self.config.timeout if timeout is None else timeout
        interval = self.config.poll_interval
        emitter_hex = emitter_address.hex()
        start = time.monotonic()
        attempts = 0

        logger.info(
            f"Waiting for attestation {emitter_chain}/{emitter_hex}/{sequence} "
            f"(timeout {deadline}s)"
        )

        async with httpx.AsyncClient(transport=self._transport) as client:
            while True:
                attempts += 1
                raw = await self.fetch_signed_vaa(client, emitter_chain, emitter_address, sequence)
                if raw is not None:
                    attestation = AttestationCodec.decode(raw)
                    self._check_match(attestation, emitter_chain, emitter_address, sequence)
                    logger.info(
                        f"Attestation {attestation.unique_key} received after "
                        f"{attempts} attempt(s)"
                    )
                    return attestation

                elapsed = time.monotonic() - start
                if elapsed >= deadline:
                    logger.warning(
                        f"Attestation {emitter_chain}/{emitter_hex}/{sequence} not found "
                        f"after {attempts} attempts"
                    )
                    raise AttestationTimeoutError(emitter_chain, emitter_hex, sequence, deadline)

                logger.debug(f"Attempt {attempts}: attestation not available yet")
                await asyncio.sleep(min(interval, deadline - elapsed))

    @staticmethod
    def _check_match(
        attestation: Attestation, emitter_chain: int, emitter_address: bytes, sequence: int
    ) -> None:
        if (
            attestation.emitter_chain != emitter_chain
            or attestation.emitter_address != emitter_address
            or attestation.sequence != sequence
        ):
            raise AttestationParseError(
                "attestation mismatch",
                f"requested {emitter_chain}/{emitter_address.hex()}/{sequence}, "
                f"got {attestation.unique_key}",
            )
