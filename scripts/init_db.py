import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine, init_models

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to key-value store database...")
    engine = create_engine(settings.DATABASE_URL)

    try:
        await init_models(engine)
        logger.info("Tables created successfully.")
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(init_database())
