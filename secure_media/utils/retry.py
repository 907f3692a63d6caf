"""Retry utility with exponential backoff.

Implements the retry_with_backoff decorator used by the transcription
pipeline. Transient vs permanent classification comes from the ``retryable``
tag carried by every MediaAccessError subclass.
"""

import asyncio
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Return True if the exception is tagged as transient."""
    return bool(getattr(exc, "retryable", False))


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    on_exhausted: Callable[[Exception, int], Exception] | None = None,
) -> Callable:
    """Decorator for retrying async functions with exponential backoff.

    Attempts are numbered 1..max_attempts. After a retryable failure on
    attempt ``n`` the wrapper sleeps ``base_delay * 2^n`` seconds (2s, 4s,
    8s... for the default base delay). No sleep follows the final attempt.

    Each retry is logged at INFO without the error text; the caller owns
    the warning that describes what failed.

    Args:
        max_attempts: Total number of calls allowed (default 3, minimum 1).
        base_delay: Multiplier for the exponential delay.
        on_exhausted: Optional factory building the exception raised once
            every attempt failed. Receives the last error and the attempt
            count; the last error is chained as ``__cause__``. If None the
            last error itself is re-raised.

    Returns:
        Decorator that wraps an async function with retry logic. Exceptions
        not tagged as retryable are re-raised immediately with
        ``_retry_count`` attached.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error: Exception | None = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    last_error = exc
                    if not is_retryable(exc):
                        exc._retry_count = attempt - 1  # type: ignore[attr-defined]
                        raise
                    if attempt < max_attempts:
                        delay = base_delay * (2**attempt)
                        logger.info(
                            "Attempt %d/%d for %s failed, retrying in %.1fs",
                            attempt,
                            max_attempts,
                            func.__name__,
                            delay,
                            extra={
                                "attempt": attempt,
                                "error_kind": type(exc).__name__,
                            },
                        )
                        await asyncio.sleep(delay)
            # Exhausted all attempts
            last_error._retry_count = max_attempts - 1  # type: ignore[union-attr]
            logger.error(
                "All %d attempts for %s failed: %s",
                max_attempts,
                func.__name__,
                last_error,
                extra={
                    "attempt": max_attempts,
                    "error_kind": type(last_error).__name__,
                },
            )
            if on_exhausted is not None:
                raise on_exhausted(last_error, max_attempts) from last_error  # type: ignore[arg-type]
            raise last_error  # type: ignore[misc]

        return wrapper

    return decorator
