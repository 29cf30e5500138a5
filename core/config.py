"""
Application configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Key-value store
    DATABASE_URL: str = "sqlite+aiosqlite:///./batch_store.db"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Upstream sources
    SOURCE_A_URL: str = "http://localhost:4001"
    SOURCE_B_URL: str = "http://localhost:4002"
    SOURCE_C_URL: str = "http://localhost:4003"
    STORE_TRANSACTION_URL: str = "http://localhost:4596"
    CSV_TRANSACTION_PATH: str = "data-source/transaction.csv"
    DISABLED_SOURCES: List[str] = []

    # HTTP behaviour
    API_TIMEOUT: float = 2.0
    RETRY_DELAY: float = 0.2
    SOURCE_A_MAX_RETRIES: int = 1
    SOURCE_B_MAX_RETRIES: int = 2
    SOURCE_C_MAX_RETRIES: int = 3
    STORE_TRANSACTION_MAX_RETRIES: int = 0

    # Batch configuration
    MAX_PAGES: int = 100
    PREFETCH_CONCURRENCY: int = 10
    BATCH_INTERVAL_MINUTES: int = 10
    BATCH_MAX_WAIT_SECONDS: float = 600.0
    RUN_ON_STARTUP: bool = True

    # Resource gate
    GATE_MAX_WAIT_SECONDS: float = 300.0
    GATE_POLL_INTERVAL: float = 1.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
