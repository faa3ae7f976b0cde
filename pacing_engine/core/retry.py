"""Retry utilities for warehouse calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_linear_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 0.5,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "operation",
    request_id: Optional[str] = None,
) -> T:
    """
    Run an async operation, retrying transient failures with linear backoff.

    The wait before attempt n+1 is delay * n. Exceptions outside retry_on
    propagate immediately; asyncio cancellation is never retried.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Maximum number of attempts (at least 1).
        delay: Backoff step in seconds.
        retry_on: Exception types treated as transient.
        label: Name used in log lines.
        request_id: Correlation id included in log lines.

    Returns:
        The operation's result.

    Raises:
        The last exception once all attempts failed.
    """
    attempts = max(1, max_attempts)
    prefix = f"[{request_id}] " if request_id else ""
    last_exception: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_exception = e
            if attempt < attempts:
                wait = delay * attempt
                logger.warning(
                    f"{prefix}Attempt {attempt}/{attempts} failed for {label}: {e}. "
                    f"Retrying in {wait}s..."
                )
                await asyncio.sleep(wait)
            else:
                logger.error(f"{prefix}All {attempts} attempts failed for {label}")

    assert last_exception is not None, "last_exception should be set if all attempts failed"
    raise last_exception
