"""
Main entry point for the indexer service.
"""

import asyncio
import signal
from typing import Optional

import structlog

from potlock_indexer.core.config import settings
from potlock_indexer.core.database import init_database, close_database, DatabaseManager
from potlock_indexer.core.exceptions import IndexerError
from potlock_indexer.core.logging import setup_logging
from potlock_indexer.services.near_client import NearRpcClient
from potlock_indexer.services.price_service import PriceService
from .core.block_indexer import BlockIndexer


logger = structlog.get_logger(__name__)


class IndexerMain:
    """
    Indexer service coordinator.

    Owns the database connection, the NEAR client and the block indexer, and
    maps process signals onto a graceful stop.
    """

    def __init__(self):
        self.near_client: Optional[NearRpcClient] = None
        self.block_indexer: Optional[BlockIndexer] = None

    async def initialize(self):
        """Initialize database and services."""
        logger.info("Initializing indexer service", version=settings.app_version)

        await init_database()
        if not await DatabaseManager.health_check():
            raise IndexerError("Database is not reachable")

        self.near_client = NearRpcClient()
        if not await self.near_client.health():
            logger.warning("NEAR RPC endpoint did not answer, will keep retrying", endpoint=settings.near_rpc_url)

        self.block_indexer = BlockIndexer(
            chain_client=self.near_client,
            price_service=PriceService(),
        )

        logger.info(
            "Indexer service initialized",
            rpc=settings.near_rpc_url,
            start_block_height=settings.start_block_height,
            chunk_failure_policy=settings.chunk_failure_policy
        )

    async def start(self):
        """Run the block indexer until it is stopped."""
        await self.block_indexer.run()

    def stop(self):
        """Ask the block indexer to stop after the current block."""
        if self.block_indexer:
            self.block_indexer.stop()

    async def shutdown(self):
        """Release connections."""
        if self.near_client:
            await self.near_client.close()
        await close_database()
        logger.info("Indexer service shutdown complete")


async def main():
    """Main function to run the indexer service."""
    setup_logging()

    indexer = IndexerMain()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, indexer.stop)

    try:
        await indexer.initialize()
        await indexer.start()
    except IndexerError as e:
        logger.error("Indexer service failed", error=e.message, details=e.details)
        raise
    finally:
        await indexer.shutdown()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
