"""
Core types for block indexing.
"""

from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IndexerState(Enum):
    """Lifecycle of the block indexer."""
    UNSTARTED = "unstarted"
    CATCHING_UP = "catching_up"
    AWAITING_NEW_BLOCK = "awaiting_new_block"
    PROCESSING_BLOCK = "processing_block"
    STOPPED = "stopped"


class ChunkFailurePolicy(Enum):
    """What a failed chunk does to its block."""
    FAIL_BLOCK = "fail_block"
    SKIP = "skip"


@dataclass
class ProcessingStats:
    """Statistics for block processing."""
    blocks_processed: int = 0
    receipts_processed: int = 0
    donations_saved: int = 0
    payouts_saved: int = 0
    duplicates_skipped: int = 0
    parse_warnings: int = 0
    chunk_errors: int = 0
    errors: int = 0
    last_processed_height: Optional[int] = None
    start_time: Optional[datetime] = None
