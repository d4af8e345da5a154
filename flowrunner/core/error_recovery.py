"""Retry with exponential backoff for transient step failures."""

import asyncio
import random
from typing import Any, Awaitable, Callable, List, Optional, Type

from .exceptions import WorkflowEngineError
from .logging import RetryLogger, get_logger

logger = get_logger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[List[Type[Exception]]] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or []

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if an exception should be retried."""
        if attempt >= self.max_attempts:
            return False

        # Engine errors declare themselves; anything else must be listed.
        if isinstance(exception, WorkflowEngineError):
            return exception.recoverable

        return any(isinstance(exception, exc_type) for exc_type in self.retryable_exceptions)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before the attempt following ``attempt``."""
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)

        return delay


async def call_with_retry(
    func: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    operation: Optional[str] = None,
) -> Any:
    """
    Await ``func()`` until it succeeds or a non-retryable failure occurs.

    Args:
        func: Zero-argument coroutine factory, invoked once per attempt
        config: Retry policy
        operation: Name used in retry log messages

    Returns:
        The result of the first successful attempt

    Raises:
        The last exception raised by ``func`` once retries are exhausted.
        ``asyncio.CancelledError`` is never retried.
    """
    retry_logger = RetryLogger(operation or getattr(func, "__name__", "operation"))

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not config.should_retry(e, attempt):
                if attempt > 1:
                    retry_logger.log_gave_up(e, attempt)
                raise

            delay = config.get_delay(attempt)
            retry_logger.log_attempt_failed(e, attempt, config.max_attempts, delay)
            await asyncio.sleep(delay)
        else:
            if attempt > 1:
                retry_logger.log_recovered(attempt)
            return result
