"""
Retry utilities for resilient API calls.

Implements exponential backoff with jitter; the caller decides
which failures are transient.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from banksync.sync.config import RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Backoff delay in seconds before retrying after ``attempt`` (0-based)."""
    delay = min(
        config.initial_delay * (config.exponential_base**attempt),
        config.max_delay,
    )
    if config.jitter:
        delay = delay * (0.5 + random.random() * 0.5)
    return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str = "operation",
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """
    Execute a function with exponential backoff retry.

    Args:
        func: Async function to execute
        config: Retry configuration
        operation_name: Name for logging
        should_retry: Predicate selecting retryable exceptions (default: all)

    Returns:
        Function result

    Raises:
        Exception: The first non-retryable exception, or the last one
            once attempts are exhausted
    """
    for attempt in range(config.max_attempts):
        try:
            return await func()
        except Exception as e:
            attempt_num = attempt + 1

            if should_retry is not None and not should_retry(e):
                logger.debug(
                    "retry.not_retryable",
                    operation=operation_name,
                    attempt=attempt_num,
                    error=str(e),
                )
                raise

            if attempt_num >= config.max_attempts:
                logger.error(
                    "retry.exhausted",
                    operation=operation_name,
                    attempts=attempt_num,
                    error=str(e),
                )
                raise

            delay = compute_delay(config, attempt)
            logger.warning(
                "retry.attempt",
                operation=operation_name,
                attempt=attempt_num,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 3),
                error=str(e),
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry failed without exception")
