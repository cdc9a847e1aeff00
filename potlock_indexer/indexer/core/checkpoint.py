"""
Repository for the indexer checkpoint row.
"""

from typing import Optional

import structlog
from sqlalchemy import delete

from potlock_indexer.core.database import get_async_session
from potlock_indexer.models.checkpoint import IndexerCheckpoint, CHECKPOINT_ID
from potlock_indexer.services.near_client import BlockInfo


logger = structlog.get_logger(__name__)


class CheckpointRepository:
    """
    Loads, overwrites and deletes the single checkpoint row.

    The checkpoint is only written after a block has been fully processed.
    """

    def __init__(self):
        self.logger = logger.bind(service="checkpoint_repository")

    async def load(self) -> Optional[IndexerCheckpoint]:
        async with get_async_session() as db:
            return await db.get(IndexerCheckpoint, CHECKPOINT_ID)

    async def save(self, block: BlockInfo) -> None:
        async with get_async_session() as db:
            checkpoint = await db.get(IndexerCheckpoint, CHECKPOINT_ID)
            if checkpoint is None:
                db.add(IndexerCheckpoint(
                    id=CHECKPOINT_ID,
                    last_block_height=block.height,
                    last_block_hash=block.hash,
                    last_block_time=block.timestamp,
                ))
            else:
                checkpoint.last_block_height = block.height
                checkpoint.last_block_hash = block.hash
                checkpoint.last_block_time = block.timestamp

        self.logger.debug("Checkpoint advanced", height=block.height, block_hash=block.hash)

    async def delete(self) -> int:
        async with get_async_session() as db:
            result = await db.execute(delete(IndexerCheckpoint))
            deleted = result.rowcount or 0

        self.logger.warning("Checkpoint deleted", rows=deleted)
        return deleted
