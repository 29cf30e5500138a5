"""
Script to run one reconciliation batch for all configured sources
"""

import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.logging import setup_logging
from ingestion.scheduler import BatchScheduler

logger = logging.getLogger(__name__)


async def run_batch() -> int:
    """Run a single batch outside the scheduler"""
    setup_logging()
    scheduler = BatchScheduler(settings)

    try:
        await scheduler.initialize()
        result = await scheduler.runner.run()
        logger.info(f"Batch result: {json.dumps(result, default=str)}")
        return 0
    except Exception as e:
        logger.error(f"Batch error: {str(e)}")
        return 1
    finally:
        await scheduler.stop()


if __name__ == "__main__":
    sys.exit(asyncio.run(run_batch()))
