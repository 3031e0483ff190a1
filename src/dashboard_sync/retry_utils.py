# SPDX-License-Identifier: MIT
"""Retry utilities for API calls."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from .constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_EXPONENTIAL_BASE,
    DEFAULT_RETRY_INITIAL_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
)
from .exceptions import TransientFetchError
from .logging_config import get_detail_logger


detail_logger = get_detail_logger()

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY,
    max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    exponential_base: float = DEFAULT_RETRY_EXPONENTIAL_BASE,
) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``.

    Example:
        >>> [backoff_delay(n) for n in range(6)]
        [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
    """
    return float(min(initial_delay * exponential_base**attempt, max_delay))


def async_retry_with_backoff(
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY,
    max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    exponential_base: float = DEFAULT_RETRY_EXPONENTIAL_BASE,
    exceptions: tuple[type[Exception], ...] = (TransientFetchError,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff calculation
        exceptions: Tuple of exception types to catch and retry

    Returns:
        Decorated async function

    Example:
        >>> @async_retry_with_backoff(max_retries=3)
        ... async def fetch_feed():
        ...     return await client.fetch_feed()
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0

            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        detail_logger.debug(
                            f"{func.__name__} failed after {max_retries} retries: {e}"
                        )
                        raise

                    delay = backoff_delay(
                        attempt, initial_delay, max_delay, exponential_base
                    )
                    detail_logger.debug(
                        f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
