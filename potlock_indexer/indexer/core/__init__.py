"""
Core indexer components.
"""

from .types import IndexerState, ChunkFailurePolicy, ProcessingStats
from .checkpoint import CheckpointRepository
from .block_indexer import BlockIndexer

__all__ = [
    "IndexerState",
    "ChunkFailurePolicy",
    "ProcessingStats",
    "CheckpointRepository",
    "BlockIndexer",
]
