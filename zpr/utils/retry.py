"""Retry helpers for calls to the model backend."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from zpr.errors import ModelBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRIABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


def is_retriable(error: Exception) -> bool:
    """Return True for rate limiting and transient backend failures."""
    if isinstance(error, ModelBackendError) and error.status_code is not None:
        return error.status_code in RETRIABLE_STATUS_CODES

    error_str = str(error).lower()
    return (
        "429" in error_str
        or "rate limit" in error_str
        or "connection" in error_str
        or "503" in error_str
        or "502" in error_str
    )


async def with_exponential_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 5,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    **kwargs: Any,
) -> T:
    """
    Execute a function with exponential backoff retry logic.

    Args:
        func: The async function to execute
        *args: Positional arguments to pass to func
        max_retries: Maximum number of attempts
        initial_delay: Initial delay in seconds before first retry
        max_delay: Maximum delay in seconds between retries
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of the function call

    Raises:
        The last exception if all retries are exhausted, or the first
        non-retriable exception
    """
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retriable(e):
                logger.error(f"Non-retriable error: {e}")
                raise

            if attempt == attempts - 1:
                logger.error(f"All {attempts} retry attempts exhausted. Last error: {e}")
                raise

            delay = min(initial_delay * (2**attempt), max_delay)
            logger.warning(
                f"Attempt {attempt + 1}/{attempts} failed with {type(e).__name__}: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
