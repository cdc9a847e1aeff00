"""
Test NEAR RPC response normalization and error mapping.
"""

import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest

from conftest import make_settings

from potlock_indexer.core.exceptions import ConfigurationError, TransientChainError
from potlock_indexer.services.near_client import NearRpcClient, nanos_to_datetime


BLOCK_RESULT = {
    "header": {
        "height": 120000001,
        "hash": "EjvGQ3Yq7h3cT6Rq",
        "timestamp": 1714564800123456789,
    },
    "chunks": [
        {"chunk_hash": "chunk-0", "shard_id": 0},
        {"chunk_hash": "chunk-1", "shard_id": 1},
    ],
}


class FakeResponse:
    def __init__(self, status=200, payload=None, error=None):
        self.status = status
        self.payload = payload
        self.error = error

    async def __aenter__(self):
        if self.error:
            raise self.error
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response: FakeResponse):
        self.response = response
        self.requests = []

    def post(self, url, json=None):
        self.requests.append((url, json))
        return self.response


def client_with(response: FakeResponse):
    client = NearRpcClient(make_settings(near_rpc_url="https://rpc.testnet.near.org"))
    session = FakeSession(response)
    client._get_session = lambda: session
    return client, session


def test_nanos_to_datetime():
    moment = nanos_to_datetime(1714564800123456789)

    assert moment == datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_missing_endpoint_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        NearRpcClient(make_settings(near_rpc_url=""))


@pytest.mark.asyncio
async def test_latest_block_uses_final_finality():
    client, session = client_with(FakeResponse(payload={"result": BLOCK_RESULT}))

    block = await client.latest_block()

    url, request = session.requests[0]
    assert url == "https://rpc.testnet.near.org"
    assert request["method"] == "block"
    assert request["params"] == {"finality": "final"}
    assert block.height == 120000001
    assert block.hash == "EjvGQ3Yq7h3cT6Rq"
    assert block.timestamp == datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert block.chunk_refs == ["chunk-0", "chunk-1"]


@pytest.mark.asyncio
async def test_block_at_requests_height():
    client, session = client_with(FakeResponse(payload={"result": BLOCK_RESULT}))

    await client.block_at(120000001)

    assert session.requests[0][1]["params"] == {"block_id": 120000001}


@pytest.mark.asyncio
async def test_chunk_normalization():
    result = {
        "receipt_execution_outcomes": [{"receipt": {"receipt_id": "r1"}}],
        "transactions": [],
    }
    client, session = client_with(FakeResponse(payload={"result": result}))

    chunk = await client.chunk("chunk-0")

    assert session.requests[0][1]["params"] == {"chunk_id": "chunk-0"}
    assert chunk.chunk_hash == "chunk-0"
    assert chunk.receipt_execution_outcomes == [{"receipt": {"receipt_id": "r1"}}]
    assert chunk.transactions == []


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    FakeResponse(status=503, payload={}),
    FakeResponse(payload={"error": {"name": "HANDLER_ERROR", "cause": {"name": "UNKNOWN_BLOCK"}}}),
    FakeResponse(payload={"jsonrpc": "2.0", "id": "dontcare"}),
    FakeResponse(payload=ValueError("not json")),
    FakeResponse(error=aiohttp.ClientConnectionError("refused")),
    FakeResponse(error=asyncio.TimeoutError()),
])
async def test_failures_are_transient(response):
    """Test every RPC failure surfaces as a retryable chain error."""
    client, _ = client_with(response)

    with pytest.raises(TransientChainError):
        await client.block_at(1)


@pytest.mark.asyncio
async def test_health_reports_failure_without_raising():
    client, _ = client_with(FakeResponse(status=500, payload={}))

    assert await client.health() is False
