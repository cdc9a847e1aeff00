"""
IndexerCheckpoint model - durable cursor of the last fully ingested block.
"""

from datetime import datetime

from sqlalchemy import String, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


CHECKPOINT_ID = "singleton"


class IndexerCheckpoint(BaseModel, TimestampMixin):
    """Single-row table overwritten after every completed block."""

    __tablename__ = "indexer_checkpoint"

    id: Mapped[str] = mapped_column(String(16), primary_key=True, default=CHECKPOINT_ID)
    last_block_height: Mapped[int] = mapped_column(BigInteger)
    last_block_hash: Mapped[str] = mapped_column(String(64))
    last_block_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<IndexerCheckpoint(height={self.last_block_height}, hash={self.last_block_hash[:8]}...)>"
