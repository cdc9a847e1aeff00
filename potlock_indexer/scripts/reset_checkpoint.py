"""
Delete the indexer checkpoint so the next start uses the configured start height.
"""

import asyncio

import structlog

from potlock_indexer.core.database import init_database, close_database
from potlock_indexer.core.logging import setup_logging
from potlock_indexer.indexer.core.checkpoint import CheckpointRepository


logger = structlog.get_logger(__name__)


async def reset_checkpoint() -> int:
    repository = CheckpointRepository()

    checkpoint = await repository.load()
    if checkpoint is None:
        logger.info("No checkpoint stored, nothing to reset")
        return 0

    logger.info("Deleting checkpoint", **checkpoint.to_dict())
    return await repository.delete()


async def main():
    setup_logging()
    await init_database()
    try:
        deleted = await reset_checkpoint()
        logger.info("Checkpoint reset", deleted=deleted)
    finally:
        await close_database()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
