"""
Reconciliation batch components for transaction ingestion.

This package contains everything one batch run needs:

Modules:
    base: TransactionFetcher interface, page validation, FetcherDefinition
    retry: Bounded retry of upstream overload responses
    registry: Ordered list of enabled transaction sources
    collection: Multi-source pagination with per-source failure isolation
    reconciliation: Matching transactions with store transactions
    runner: Batch orchestrator (collect, dedup, reconcile, persist)
    scheduler: APScheduler integration for periodic batch runs

Subpackages:
    extractors: Transaction sources (JSON, XML, posted JSON, CSV) and the
        store-transaction source
    transformers: Wire record normalization
    loaders: Key-value store and batch repository

Architecture:
    One run goes through four phases, each gated by core.gate:

    1. Collect - Page through every source (PARALLEL on DATA_COLLECTION)
    2. Dedup - Drop transactions whose id is already processed
    3. Reconcile - Attach product ids (SEQUENTIAL on DATA_MERGE)
    4. Persist - Append merged records, then their ids (SEQUENTIAL on FILE_WRITE)

    A failing source is skipped; unmatched transactions are reported and
    retried on the next run. Persistence failures end the run.

Usage:
    from ingestion.scheduler import BatchScheduler

Example:
    scheduler = BatchScheduler()
    await scheduler.initialize()

    result = await scheduler.runner.run()
    print(f"Merged {result['processed']} transactions")

    await scheduler.stop()
"""

__all__ = [
    "TransactionFetcher",
    "FetcherDefinition",
    "RetryPolicy",
    "TransactionCollector",
    "ReconciliationEngine",
    "BatchRunner",
    "BatchScheduler",
]
