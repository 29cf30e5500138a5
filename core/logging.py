"""
Logging configuration and the persisted batch log sink
"""

import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from core.config import settings

BATCH_LOG_KEY = "batch_logs"


def setup_logging():
    """Configure application logging"""

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Reduce noise from libraries that log every statement/request
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")


class BatchLogBuffer:
    """
    In-memory buffer of structured log records persisted to the store.

    Records are appended to the ``batch_logs`` key by read-modify-write.
    A flush happens automatically once the buffer holds ``limit`` records
    and explicitly at the end of every batch run.
    """

    def __init__(self, store, key: str = BATCH_LOG_KEY, limit: int = 50):
        self.store = store
        self.key = key
        self.limit = limit
        self._buffer: List[Dict[str, Any]] = []
        self._lock: Optional[asyncio.Lock] = None
        self._pending_flushes: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._buffer)

    def add(self, record: Dict[str, Any]) -> None:
        self._buffer.append(record)

        if len(self._buffer) >= self.limit and not self._pending_flushes:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            task = loop.create_task(self.flush())
            self._pending_flushes.add(task)
            task.add_done_callback(self._pending_flushes.discard)

    async def flush(self) -> int:
        """
        Persist buffered records. Returns the number of records written.

        Flushes run one at a time; a call made while another flush is
        writing waits for it and then writes whatever is left.
        """
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if not self._buffer:
                return 0

            records, self._buffer = self._buffer, []

            try:
                existing = await self.store.get(self.key) or []
                await self.store.put(self.key, existing + records)
                return len(records)
            except Exception as e:
                # Logged to the console handlers only; the records are dropped
                logging.getLogger(__name__).error(
                    f"Failed to flush {len(records)} batch log records: {str(e)}"
                )
                return 0


class BatchLogHandler(logging.Handler):
    """Logging handler that turns records into JSON-friendly dicts for BatchLogBuffer."""

    def __init__(self, buffer: BatchLogBuffer, level: int = logging.INFO):
        super().__init__(level)
        self.buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.add(self.to_entry(record))
        except Exception:
            self.handleError(record)

    @staticmethod
    def to_entry(record: logging.LogRecord) -> Dict[str, Any]:
        stack: Optional[str] = None
        if record.exc_info:
            stack = "".join(traceback.format_exception(*record.exc_info))

        context = getattr(record, "context", None)
        if context is not None:
            # Round-trip so the entry is always JSON serialisable
            context = json.loads(json.dumps(context, default=str))

        return {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stack": stack,
            "context": context,
        }


def attach_batch_log_handler(
    buffer: BatchLogBuffer,
    logger_names: Iterable[str] = ("ingestion", "core.gate"),
) -> BatchLogHandler:
    """Route the batch loggers into ``buffer`` and return the handler."""
    handler = BatchLogHandler(buffer)
    for name in logger_names:
        logging.getLogger(name).addHandler(handler)
    return handler


def detach_batch_log_handler(
    handler: BatchLogHandler,
    logger_names: Iterable[str] = ("ingestion", "core.gate"),
) -> None:
    for name in logger_names:
        logging.getLogger(name).removeHandler(handler)
