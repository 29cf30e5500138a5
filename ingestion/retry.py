"""
Bounded retry for upstream calls.

Only transient overload (HTTP 502) is retried, with a fixed delay between
attempts. Every other failure propagates on the first attempt.
"""

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar
from core.exceptions import RetryExhaustedError, UpstreamOverloadError
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retry an async operation up to ``max_retries`` times.

    A policy with ``max_retries=2`` makes at most 3 attempts. When the
    last attempt still fails with a retryable error, RetryExhaustedError
    is raised, chained to that error.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        retry_delay: Fixed delay between attempts in seconds
        retry_on: Exception classes that trigger a retry
    """

    def __init__(
        self,
        max_retries: int,
        retry_delay: float = 0.2,
        retry_on: Tuple[Type[BaseException], ...] = (UpstreamOverloadError,)
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_on = retry_on

    async def __call__(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except self.retry_on as e:
                if attempt == attempts:
                    raise RetryExhaustedError(
                        f"Giving up after {attempts} attempts",
                        context={
                            "attempts": attempts,
                            "max_retries": self.max_retries,
                            "last_error": str(e)
                        },
                        original_exception=e
                    )

                logger.warning(
                    f"Transient upstream failure, retrying in {self.retry_delay}s "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
                await asyncio.sleep(self.retry_delay)

    def __repr__(self) -> str:
        return f"RetryPolicy(max_retries={self.max_retries}, retry_delay={self.retry_delay})"
