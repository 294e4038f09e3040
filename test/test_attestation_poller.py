#!/usr/bin/env python3
"""Tests for AttestationPoller.

The guardian API is replaced with httpx.MockTransport so retry and timeout
behaviour can be checked without the network.
"""

import base64
import time

import httpx
import pytest

from wormhole_relayer.attestation_poller import AttestationPoller
from wormhole_relayer.config import GuardianApiConfig
from wormhole_relayer.errors import AttestationParseError, AttestationTimeoutError
from wormhole_relayer.models import Attestation, GuardianSignature
from wormhole_relayer.utils.vaa_codec import AttestationCodec

EMITTER = bytes(31) + b"\x01"


def encoded_vaa(sequence: int = 42, emitter: bytes = EMITTER, chain: int = 1) -> str:
    attestation = Attestation(
        version=1,
        guardian_set_index=0,
        signatures=(GuardianSignature(0, b"\x05" * 65),),
        timestamp=1,
        nonce=0,
        emitter_chain=chain,
        emitter_address=emitter,
        sequence=sequence,
        consistency_level=1,
        payload=b"\x01\x00\x02hi",
    )
    return base64.b64encode(AttestationCodec.encode(attestation)).decode()


def make_poller(handler, poll_interval: float = 0.01, timeout: float = 1.0,
                base_url: str = "https://api.test") -> AttestationPoller:
    config = GuardianApiConfig(base_url=base_url, poll_interval=poll_interval, timeout=timeout)
    return AttestationPoller(config, transport=httpx.MockTransport(handler))


class TestAttestationPoller:
    """Test suite for AttestationPoller."""

    @pytest.mark.asyncio
    async def test_returns_when_available(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if len(requests) < 3:
                return httpx.Response(404, json={"code": 5, "message": "requested VAA not found"})
            return httpx.Response(200, json={"vaaBytes": encoded_vaa()})

        poller = make_poller(handler, poll_interval=0.05)
        start = time.monotonic()

        attestation = await poller.wait_for_attestation(1, EMITTER, 42)

        elapsed = time.monotonic() - start
        assert attestation.sequence == 42
        assert attestation.emitter_address == EMITTER
        assert len(requests) == 3
        # two misses, each followed by one full poll interval
        assert 0.1 <= elapsed < 0.15
        assert requests[0].url.path == f"/v1/signed_vaa/1/{EMITTER.hex()}/42"

    @pytest.mark.asyncio
    async def test_base_url_with_v1_suffix(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={"vaaBytes": encoded_vaa()})

        poller = make_poller(handler, base_url="https://api.test/v1/")

        await poller.wait_for_attestation(1, EMITTER, 42)

        assert paths == [f"/v1/signed_vaa/1/{EMITTER.hex()}/42"]

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ConnectError("connection refused", request=request)
            if calls == 2:
                return httpx.Response(200, json={})
            if calls == 3:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"vaaBytes": encoded_vaa()})

        poller = make_poller(handler)

        attestation = await poller.wait_for_attestation(1, EMITTER, 42)

        assert attestation.sequence == 42
        assert calls == 4

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        poller = make_poller(handler, poll_interval=0.02)
        start = time.monotonic()

        with pytest.raises(AttestationTimeoutError) as exc_info:
            await poller.wait_for_attestation(1, EMITTER, 42, timeout=0.1)

        elapsed = time.monotonic() - start
        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.sequence == 42
        # gives up within one poll interval of the deadline
        assert 0.1 <= elapsed < 0.1 + 0.02

    @pytest.mark.asyncio
    async def test_default_timeout_from_config(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        poller = make_poller(handler, poll_interval=0.01, timeout=0.05)

        with pytest.raises(AttestationTimeoutError) as exc_info:
            await poller.wait_for_attestation(1, EMITTER, 42)

        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_mismatched_sequence_is_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"vaaBytes": encoded_vaa(sequence=43)})

        poller = make_poller(handler)

        with pytest.raises(AttestationParseError) as exc_info:
            await poller.wait_for_attestation(1, EMITTER, 42)

        assert exc_info.value.reason == "attestation mismatch"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_truncated_bytes_raise_parse_error(self):
        truncated = base64.b64encode(base64.b64decode(encoded_vaa())[:40]).decode()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"vaaBytes": truncated})

        poller = make_poller(handler)

        with pytest.raises(AttestationParseError) as exc_info:
            await poller.wait_for_attestation(1, EMITTER, 42)

        assert exc_info.value.reason == "truncated"

    @pytest.mark.asyncio
    async def test_fetch_signed_vaa_single_attempt(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        poller = make_poller(handler)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await poller.fetch_signed_vaa(client, 1, EMITTER, 42) is None
