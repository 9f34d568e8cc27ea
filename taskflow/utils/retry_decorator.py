"""
Retry decorator with exponential backoff for store reads.

Writes are never wrapped: a conditional status write that timed out may
already have landed, and replaying it could turn a success into a conflict.
"""

import logging
import random
import time
from functools import wraps
from typing import Callable, Tuple, Type

from ..core.exceptions import RetryableError

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    non_retryable_exceptions: Tuple[Type[Exception], ...] = (),
):
    """
    Retry the wrapped call with exponential backoff.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for a single delay
        exponential_base: Growth factor between retries
        jitter: Add up to 25% random extra delay
        retryable_exceptions: Exception types that trigger a retry
        non_retryable_exceptions: Exception types that are raised at once
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    if not _should_retry(e, attempt, max_retries, retryable_exceptions, non_retryable_exceptions):
                        logger.error(f"❌ {func.__name__} failed on attempt {attempt + 1}, giving up: {e}")
                        raise

                    delay = _calculate_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                    logger.warning(f"⚠️ {func.__name__} failed on attempt {attempt + 1}/{max_retries + 1}: {e}")
                    logger.info(f"⏳ Retrying {func.__name__} in {delay:.2f}s")
                    time.sleep(delay)
                    attempt += 1
                    continue

                if attempt > 0:
                    logger.info(f"✅ {func.__name__} succeeded on attempt {attempt + 1}")
                return result

        return wrapper

    return decorator


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, exponential_base: float, jitter: bool) -> float:
    """Delay before retry number ``attempt + 1``."""
    delay = min(base_delay * (exponential_base**attempt), max_delay)

    if jitter:
        delay += delay * 0.25 * random.random()

    return delay


def _should_retry(
    exception: Exception,
    attempt: int,
    max_retries: int,
    retryable_exceptions: Tuple[Type[Exception], ...],
    non_retryable_exceptions: Tuple[Type[Exception], ...],
) -> bool:
    if attempt >= max_retries:
        return False

    if isinstance(exception, non_retryable_exceptions):
        return False

    # A RetryableError carries its own budget
    if isinstance(exception, RetryableError):
        return exception.can_retry

    return isinstance(exception, retryable_exceptions)
