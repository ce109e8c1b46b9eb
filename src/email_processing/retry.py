"""
Retry policy with exponential backoff.

One policy object replaces ad hoc try/sleep/retry loops: it runs an async
operation, waits ``base_delay * 2**attempt`` after each retryable failure and
re-raises the last error once ``max_retries`` retries are exhausted.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retry_everything(error: Exception) -> bool:
    return True


class RetryPolicy:
    """Reusable exponential backoff policy."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 60.0,
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.is_retryable = is_retryable or _retry_everything
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the zero-based ``attempt``."""
        return self.base_delay * (2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """
        Run ``operation`` until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Label used in log messages

        Returns:
            The operation's result

        Raises:
            Exception: The last error, or the first non-retryable one
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                if attempt >= self.max_retries:
                    logger.error(f"{description} failed after {attempt + 1} attempts: {e}")
                    raise

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}. "
                    f"Retrying in {delay:.0f}s"
                )
                await self._sleep(delay)
                attempt += 1
