# retry_handler.py
# Description: Generic retry-with-backoff wrapper used around every remote store call
#
# Imports
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .sync_errors import RateLimitError
from ..Metrics.metrics_logger import log_counter
#
########################################################################################################################
#
# Classes and Functions:

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Retry settings for remote calls.

    Only ``RateLimitError`` is retried. ``max_attempts`` counts the first try,
    so the default of 3 allows two backoff sleeps of ``base_delay`` and
    ``2 * base_delay``.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the zero-based ``attempt`` failed."""
        return self.base_delay * (2 ** attempt)


async def with_retry(operation: Callable[[], Awaitable[T]],
                     policy: Optional[RetryPolicy] = None,
                     operation_name: str = "operation") -> T:
    """
    Run an async operation, retrying rate-limit failures with exponential backoff.

    Args:
        operation: Zero-argument callable returning an awaitable
        policy: Retry settings (defaults to ``RetryPolicy()``)
        operation_name: Name for logging

    Returns:
        Whatever the operation returns

    Raises:
        RateLimitError: If every attempt was rate limited
        Exception: Any non rate-limit error, immediately
    """
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)

    for attempt in range(attempts):
        try:
            result = await operation()
        except RateLimitError as e:
            if attempt >= attempts - 1:
                logger.error(f"Operation '{operation_name}' still rate limited after {attempts} attempts")
                log_counter("sync_retry_exhausted", labels={"operation": operation_name})
                raise

            delay = policy.delay_for(attempt)
            logger.warning(f"Operation '{operation_name}' rate limited (attempt {attempt + 1}/{attempts}), "
                           f"retrying in {delay}s: {e}")
            log_counter("sync_retry_backoff", labels={"operation": operation_name})
            await policy.sleep(delay)
            continue

        if attempt > 0:
            logger.info(f"Operation '{operation_name}' succeeded after {attempt} retries")
        return result

    # Unreachable: the loop either returns or raises.
    raise RuntimeError(f"Retry loop for '{operation_name}' exited without a result")

#
# End of retry_handler.py
########################################################################################################################
