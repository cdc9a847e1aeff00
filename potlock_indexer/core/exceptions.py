"""
Custom exception classes for the indexer.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class PotlockIndexerError(Exception):
    """Base exception class for the Potlock indexer."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(PotlockIndexerError):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(PotlockIndexerError):
    """Raised when the store fails for reasons other than a duplicate event."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class ExternalServiceError(PotlockIndexerError):
    """Raised when an external service (price feed) error occurs."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EXTERNAL_SERVICE_ERROR", details)


class IndexerError(PotlockIndexerError):
    """Raised when the ingestion loop cannot continue."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INDEXER_ERROR", details)


class TransientChainError(PotlockIndexerError):
    """Raised when a NEAR RPC call times out, fails or returns an error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSIENT_CHAIN_ERROR", details)


class ParseError(PotlockIndexerError):
    """Raised when an event log line is malformed or misses a required field."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PARSE_ERROR", details)


class DuplicateEventError(PotlockIndexerError):
    """Raised when an event with the same transaction hash is already stored."""

    def __init__(self, transaction_hash: str, entity: str = "donation"):
        super().__init__(
            f"{entity.capitalize()} already indexed: {transaction_hash}",
            "DUPLICATE_EVENT",
            {"transaction_hash": transaction_hash, "entity": entity}
        )


class ChunkProcessingError(PotlockIndexerError):
    """Raised when a chunk cannot be fetched or one of its receipts fails."""

    def __init__(self, height: int, chunk_hash: str, reason: str):
        super().__init__(
            f"Chunk {chunk_hash} of block {height} failed: {reason}",
            "CHUNK_PROCESSING_ERROR",
            {"height": height, "chunk_hash": chunk_hash, "reason": reason}
        )


class CheckpointInconsistencyError(PotlockIndexerError):
    """Raised when the stored checkpoint is ahead of the chain head."""

    def __init__(self, checkpoint_height: int, head_height: int):
        super().__init__(
            f"Checkpoint height {checkpoint_height} is ahead of chain head {head_height}",
            "CHECKPOINT_INCONSISTENCY",
            {"checkpoint_height": checkpoint_height, "head_height": head_height}
        )
