"""
Core utilities and configuration for the transaction reconciliation batch.

This package provides foundational components used throughout the batch:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory for the key-value store
    exceptions: Custom exception hierarchy for error handling
    gate: Resource gate admitting SEQUENTIAL and PARALLEL tasks per group
    logging: Logging configuration and the persisted batch log sink

Usage:
    from core.config import settings
    from core.gate import ResourceGate, ResourceGroup, sequential, parallel
    from core.exceptions import UpstreamOverloadError, PersistenceError
    from core.logging import setup_logging

Example:
    setup_logging()

    gate = ResourceGate()
    save = sequential(repository.save_processed_ids, gate, ResourceGroup.FILE_WRITE)
    await save(["tx-1"])
"""

__all__ = [
    "settings",
    "setup_logging",
    "ResourceGate",
    "ResourceGroup",
    "sequential",
    "parallel",
    # Exceptions
    "BatchException",
    "ExtractionError",
    "APIExtractionError",
    "UpstreamOverloadError",
    "NetworkError",
    "RetryExhaustedError",
    "AuthenticationError",
    "CSVExtractionError",
    "MarkupExtractionError",
    "InvalidPageError",
    "EndOfDataError",
    "TransformationError",
    "NormalizationError",
    "ReconciliationError",
    "MergeMismatchError",
    "LoadError",
    "PersistenceError",
    "GateTimeoutError",
    "BatchExecutionError",
    "RetryableError",
    "NonRetryableError",
]
