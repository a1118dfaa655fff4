"""
Async retry support

Provides a backoff strategy and an awaitable retry helper used when
opening backend connections, where transient failures are common.
"""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger('dbpool.core.retry')

T = TypeVar('T')


class RetryError(Exception):
    """Raised when every retry attempt failed"""

    def __init__(self, message: str, original_error: Optional[BaseException] = None, attempts: int = 0):
        self.message = message
        self.original_error = original_error
        self.attempts = attempts
        super().__init__(f"{message} (after {attempts} attempts)")


class RetryStrategy:
    """Retry strategy configuration"""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_multiplier: float = 1.0,
        jitter: bool = False,
        jitter_range: float = 0.1
    ):
        """
        Args:
            max_attempts: total number of attempts, including the first one
            base_delay: delay before the first retry (seconds)
            max_delay: upper bound for any delay (seconds)
            backoff_multiplier: growth factor per attempt, 1.0 keeps a fixed gap
            jitter: add random jitter to each delay
            jitter_range: jitter amplitude as a fraction of the delay
        """
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter
        self.jitter_range = jitter_range

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt

        Args:
            attempt: zero-based index of the attempt that just failed
        """
        delay = self.base_delay * (self.backoff_multiplier ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay += delay * self.jitter_range * (random.random() * 2 - 1)

        return max(0.0, delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    strategy: RetryStrategy,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation_name: str = "operation"
) -> T:
    """
    Await ``operation()`` until it succeeds or the strategy is exhausted

    Errors outside ``retry_on`` propagate immediately. When every attempt
    fails a RetryError carrying the last error is raised.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(strategy.max_attempts):
        try:
            result = await operation()
            if attempt > 0:
                logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
            return result

        except retry_on as error:
            last_error = error

            if attempt + 1 >= strategy.max_attempts:
                logger.error(
                    f"{operation_name} failed after {strategy.max_attempts} attempts, "
                    f"last error: {error!r}"
                )
                break

            delay = strategy.calculate_delay(attempt)
            logger.warning(
                f"{operation_name} attempt {attempt + 1} failed: {error!r}, "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise RetryError(
        f"{operation_name} failed",
        original_error=last_error,
        attempts=strategy.max_attempts
    )
