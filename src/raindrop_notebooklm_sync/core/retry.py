"""Bounded retry with exponential backoff for adapter calls."""

import logging
import random
import time
from typing import Callable, TypeVar

from ..errors import AdapterError, RateLimited

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter


def calculate_delay(
    attempt: int, base_delay: float, max_delay: float, jitter: float
) -> float:
    """Exponential backoff with jitter for the 0-indexed *attempt*."""
    delay = min(base_delay * (2**attempt), max_delay)
    return delay + delay * jitter * random.random()


def call_with_retry(
    func: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *func*, retrying retryable ``AdapterError`` failures.

    ``NetworkError`` and ``RateLimited`` are retried up to *max_retries*
    times; a ``RateLimited.retry_after`` hint replaces the computed delay
    (capped at *max_delay*).  Anything else, ``AuthError`` included,
    propagates immediately.

    Args:
        func: Zero-argument callable to execute.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay between retries in seconds.
        max_delay: Maximum delay between retries.
        jitter: Random jitter factor added to the delay.
        operation_name: Name of the operation for logging.
        sleep: Sleep function (injectable for tests).

    Returns:
        Result of *func*.

    Raises:
        AdapterError: The last error once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return func()
        except AdapterError as exc:
            if not exc.retryable:
                raise
            if attempt >= max_retries:
                logger.error(
                    "%s failed after %d attempts: %s",
                    operation_name,
                    attempt + 1,
                    exc,
                )
                raise

            if isinstance(exc, RateLimited) and exc.retry_after is not None:
                delay = min(exc.retry_after, max_delay)
            else:
                delay = calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                operation_name,
                attempt + 1,
                max_retries + 1,
                delay,
                exc,
            )
            sleep(delay)
            attempt += 1
