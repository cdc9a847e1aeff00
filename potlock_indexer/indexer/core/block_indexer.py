"""
Main BlockIndexer: the polling loop and checkpoint state machine.
"""

import asyncio
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from potlock_indexer.core.config import Settings, settings as default_settings
from potlock_indexer.core.exceptions import (
    CheckpointInconsistencyError,
    ChunkProcessingError,
    DatabaseError,
    IndexerError,
    TransientChainError,
)
from potlock_indexer.models.checkpoint import IndexerCheckpoint
from potlock_indexer.services.event_parser import EventParser
from potlock_indexer.services.near_client import BlockInfo
from potlock_indexer.services.price_service import PriceService

from .checkpoint import CheckpointRepository
from .types import IndexerState, ChunkFailurePolicy, ProcessingStats
from ..handlers.donation_handlers import DonationHandlers
from ..handlers.payout_handlers import PayoutHandlers


logger = structlog.get_logger(__name__)

# Errors after which the loop sleeps and retries the same height
RETRYABLE_ERRORS = (TransientChainError, ChunkProcessingError)


class BlockIndexer:
    """
    Sequential block indexer for Potlock events.

    Features:
    - Strictly one block at a time, in increasing height order
    - Checkpoint written only after a block is fully processed
    - Same height retried after the poll interval on retryable errors
    - Stop requests honoured between blocks or during the idle sleep
    """

    def __init__(
        self,
        chain_client,
        price_service: Optional[PriceService] = None,
        event_parser: Optional[EventParser] = None,
        checkpoints: Optional[CheckpointRepository] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize the block indexer."""
        self.config = config or default_settings
        self.logger = logger.bind(service="block_indexer")
        self.state = IndexerState.UNSTARTED
        self.stats = ProcessingStats()

        # Services
        self.chain_client = chain_client
        self.price_service = price_service or PriceService(self.config)
        self.event_parser = event_parser or EventParser(self.config.event_standard)
        self.checkpoints = checkpoints or CheckpointRepository()

        # Event handlers
        self._donation_handlers = DonationHandlers(self.price_service, self.stats)
        self._payout_handlers = PayoutHandlers(self.price_service, self.stats)

        self.chunk_failure_policy = ChunkFailurePolicy(self.config.chunk_failure_policy)
        self.poll_interval = self.config.poll_interval_seconds
        self.current_height: Optional[int] = None

        # Control flags
        self._running = False
        self._stop_event = asyncio.Event()

    async def resolve_start_height(self) -> int:
        """
        Decide where ingestion starts.

        Resumes after a valid checkpoint. A checkpoint ahead of the chain head is
        deleted and ingestion falls back to the configured start height.
        """
        checkpoint = await self.checkpoints.load()
        head = await self.chain_client.latest_block()

        if checkpoint is None:
            start_height = self._configured_start_height(head)
            self.logger.info("No checkpoint found", start_height=start_height, head=head.height)
            return start_height

        try:
            self._validate_checkpoint(checkpoint, head)
        except CheckpointInconsistencyError as e:
            self.logger.warning("Resetting inconsistent checkpoint", **e.details)
            await self.checkpoints.delete()
            return self._configured_start_height(head)

        self.logger.info(
            "Resuming from checkpoint",
            checkpoint_height=checkpoint.last_block_height,
            head=head.height
        )
        return checkpoint.last_block_height + 1

    @staticmethod
    def _validate_checkpoint(checkpoint: IndexerCheckpoint, head: BlockInfo) -> None:
        if checkpoint.last_block_height > head.height:
            raise CheckpointInconsistencyError(checkpoint.last_block_height, head.height)

    def _configured_start_height(self, head: BlockInfo) -> int:
        if self.config.start_block_height:
            return self.config.start_block_height
        return max(head.height - self.config.indexer_start_offset, 0)

    async def run(self) -> None:
        """Run the ingestion loop until stop() is called or a fatal error occurs."""
        if self._running:
            self.logger.warning("Block indexer already running")
            return

        self._running = True
        self._stop_event.clear()
        self.stats.start_time = datetime.now(timezone.utc)
        self.logger.info("Starting block indexer", poll_interval=self.poll_interval)

        try:
            self.current_height = await self._startup()

            while self._running:
                await self._run_iteration()

        except Exception as e:
            self.stats.errors += 1
            self.logger.error(
                "Fatal error in block indexer",
                height=self.current_height,
                error=str(e),
                error_type=type(e).__name__
            )
            raise IndexerError(
                f"Block indexer stopped at height {self.current_height}: {e}",
                {"height": self.current_height}
            ) from e

        finally:
            self._running = False
            self.state = IndexerState.STOPPED
            self.logger.info("Block indexer stopped", height=self.current_height)

    async def _startup(self) -> Optional[int]:
        while self._running:
            try:
                start_height = await self.resolve_start_height()
                self.logger.info("Beginning indexing", height=start_height)
                return start_height
            except TransientChainError as e:
                self.stats.errors += 1
                self.logger.error("Failed to resolve start height", error=e.message)
                await self._sleep()
        return None

    async def _run_iteration(self) -> None:
        try:
            head = await self.chain_client.latest_block()

            if self.current_height < head.height:
                self.state = IndexerState.CATCHING_UP
                await self.process_block(self.current_height)
                self.current_height += 1
            else:
                self.state = IndexerState.AWAITING_NEW_BLOCK
                self.logger.debug("Caught up, waiting for new blocks", height=self.current_height)
                await self._sleep()

        except RETRYABLE_ERRORS as e:
            self.stats.errors += 1
            self.logger.error(
                "Error processing block, retrying",
                height=self.current_height,
                error=e.message,
                code=e.code
            )
            await self._sleep()

    async def process_block(self, height: int) -> None:
        """
        Process every chunk of one block, then advance the checkpoint.

        Raises:
            TransientChainError: If the block itself cannot be fetched
            ChunkProcessingError: If a chunk fails under the fail_block policy
        """
        previous_state = self.state
        self.state = IndexerState.PROCESSING_BLOCK
        try:
            block = await self.chain_client.block_at(height)
            self.logger.debug("Processing block", height=height, chunks=len(block.chunk_refs))

            for chunk_hash in block.chunk_refs:
                await self._process_chunk(block, chunk_hash)

            await self.checkpoints.save(block)
            self.stats.blocks_processed += 1
            self.stats.last_processed_height = block.height
            self.logger.info("Block processed", height=block.height, block_hash=block.hash)
        finally:
            self.state = previous_state

    async def _process_chunk(self, block: BlockInfo, chunk_hash: str) -> None:
        try:
            chunk = await self.chain_client.chunk(chunk_hash)
            for receipt_outcome in chunk.receipt_execution_outcomes:
                await self.process_receipt(receipt_outcome, block)

        except (DatabaseError, SQLAlchemyError):
            raise

        except Exception as e:
            self.stats.chunk_errors += 1
            error = ChunkProcessingError(block.height, chunk_hash, str(e))

            if self.chunk_failure_policy is ChunkFailurePolicy.FAIL_BLOCK:
                self.logger.error("Chunk failed, block will be retried", **error.details)
                raise error from e

            self.logger.warning("Chunk failed, abandoning its receipts", **error.details)

    async def process_receipt(self, receipt_outcome: Dict[str, Any], block: BlockInfo) -> bool:
        """Parse and store the events of one receipt execution outcome."""
        receipt = receipt_outcome.get("receipt") or {}
        execution = receipt_outcome.get("execution_outcome") or {}
        outcome = execution.get("outcome")

        if not receipt.get("receipt_id") or not outcome:
            return False

        transaction_hash = execution.get("id") or receipt["receipt_id"]
        parsed = self.event_parser.parse_outcome(outcome, block.height, transaction_hash)

        self.stats.receipts_processed += 1
        self.stats.parse_warnings += len(parsed.warnings)

        for donation in parsed.donations:
            await self._donation_handlers.save_donation(donation, block.timestamp)

        if parsed.payout:
            await self._payout_handlers.save_payout(parsed.payout, block.timestamp)

        return bool(parsed.donations or parsed.payout)

    async def _sleep(self) -> None:
        """Sleep for the poll interval, waking early on stop()."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    def stop(self) -> None:
        """Request the loop to stop; an in-flight block is allowed to finish."""
        if not self._running:
            return
        self.logger.info("Stopping block indexer", height=self.current_height)
        self._running = False
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        """Get current indexer state and statistics."""
        return {
            "state": self.state.value,
            "running": self._running,
            "current_height": self.current_height,
            "chunk_failure_policy": self.chunk_failure_policy.value,
            "stats": asdict(self.stats),
        }
