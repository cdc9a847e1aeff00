"""
NEAR JSON-RPC client for fetching blocks and chunks.
Pure I/O boundary: responses are normalized, never interpreted.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from potlock_indexer.core.config import NearConfig, Settings
from potlock_indexer.core.exceptions import ConfigurationError, TransientChainError


logger = structlog.get_logger(__name__)


@dataclass
class BlockInfo:
    """Block header data plus its chunk headers."""
    height: int
    hash: str
    timestamp: datetime
    chunks: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def chunk_refs(self) -> List[str]:
        return [chunk["chunk_hash"] for chunk in self.chunks if chunk.get("chunk_hash")]


@dataclass
class ChunkInfo:
    """Chunk contents as consumed by the indexer."""
    chunk_hash: str
    receipt_execution_outcomes: List[Dict[str, Any]] = field(default_factory=list)
    transactions: List[Dict[str, Any]] = field(default_factory=list)


def nanos_to_datetime(nanos: int) -> datetime:
    """Convert a NEAR nanosecond timestamp to an aware UTC datetime."""
    seconds, remainder = divmod(int(nanos), 10 ** 9)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=remainder // 1000)


class NearRpcClient:
    """
    Async NEAR RPC client.

    Every failure (transport, HTTP status, JSON-RPC error, empty result) is
    raised as TransientChainError so the indexer loop can retry the height.
    """

    def __init__(self, config: Optional[Settings] = None):
        """Initialize NEAR client with configuration."""
        self.rpc_config = NearConfig.get_rpc_config(config)
        if not self.rpc_config["endpoint"]:
            raise ConfigurationError("NEAR RPC endpoint is not configured")
        self.endpoint = self.rpc_config["endpoint"]
        self.timeout = aiohttp.ClientTimeout(total=self.rpc_config["timeout"])
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logger.bind(service="near_client")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _call(self, method: str, params: Any) -> Dict[str, Any]:
        request = {
            "jsonrpc": "2.0",
            "id": "dontcare",
            "method": method,
            "params": params,
        }
        details = {"method": method, "params": params}

        try:
            async with self._get_session().post(self.endpoint, json=request) as response:
                if response.status != 200:
                    raise TransientChainError(
                        f"NEAR RPC {method} returned HTTP {response.status}", details
                    )
                payload = await response.json(content_type=None)
        except TransientChainError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning("NEAR RPC call failed", method=method, error=str(e))
            raise TransientChainError(f"NEAR RPC {method} failed: {e}", details) from e

        if payload.get("error"):
            raise TransientChainError(
                f"NEAR RPC {method} error: {payload['error']}",
                {**details, "error": payload["error"]}
            )
        if payload.get("result") is None:
            raise TransientChainError(f"NEAR RPC {method} returned no result", details)

        return payload["result"]

    @staticmethod
    def _to_block_info(result: Dict[str, Any]) -> BlockInfo:
        header = result["header"]
        return BlockInfo(
            height=int(header["height"]),
            hash=header["hash"],
            timestamp=nanos_to_datetime(header["timestamp"]),
            chunks=list(result.get("chunks") or []),
        )

    async def latest_block(self) -> BlockInfo:
        """Get the latest final block."""
        result = await self._call("block", {"finality": self.rpc_config["finality"]})
        return self._to_block_info(result)

    async def block_at(self, height: int) -> BlockInfo:
        """Get the block at a given height."""
        result = await self._call("block", {"block_id": int(height)})
        return self._to_block_info(result)

    async def chunk(self, chunk_hash: str) -> ChunkInfo:
        """Get chunk contents by chunk hash."""
        result = await self._call("chunk", {"chunk_id": chunk_hash})
        return ChunkInfo(
            chunk_hash=chunk_hash,
            receipt_execution_outcomes=list(result.get("receipt_execution_outcomes") or []),
            transactions=list(result.get("transactions") or []),
        )

    async def health(self) -> bool:
        """Check if the RPC endpoint answers."""
        try:
            await self._call("status", [])
            return True
        except TransientChainError as e:
            self.logger.error("Health check failed", error=e.message)
            return False
