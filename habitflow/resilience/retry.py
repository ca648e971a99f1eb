"""Retry logic with exponential backoff and jitter

Reward writes run inside one user-scoped transaction and are idempotent, so
the whole operation can be re-run when the database reports a transient
failure:
1. Only retries transient errors (serialization failures, deadlocks, lost connections)
2. Uses exponential backoff with jitter to prevent thundering herd
3. Gives up after max retries to avoid infinite loops
"""

import asyncio
import random
import logging
from typing import Callable, Any, TypeVar
from functools import wraps
import psycopg
from psycopg import errors as pg_errors

from habitflow.exceptions import ConnectionError as StoreConnectionError
from habitflow.observability.metrics import record_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.05  # seconds
MAX_DELAY = 2.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is transient and should be retried.

    Retryable errors:
    - Serialization failures and deadlocks
    - Lost or refused database connections

    Non-retryable errors:
    - Any HabitFlowError raised by domain logic (validation, duplicates, ...)
    - Constraint violations and malformed queries

    Args:
        exc: The exception to check

    Returns:
        True if error should be retried, False otherwise
    """
    if isinstance(exc, (pg_errors.SerializationFailure, pg_errors.DeadlockDetected)):
        return True

    if isinstance(exc, psycopg.OperationalError):
        return True

    if isinstance(exc, StoreConnectionError):
        return True

    return False


def calculate_backoff(attempt: int) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY) + jitter
    Jitter is random value between -10% and +10% of delay

    Args:
        attempt: The retry attempt number (0-indexed)

    Returns:
        Delay in seconds
    """
    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)

    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Only retries transient errors. Gives up after max_retries attempts.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts (default: 3)
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        result = await retry_with_backoff(self._record, habit_id, user_id, day)
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {func.__name__}"
                )
                raise

            backoff = calculate_backoff(attempt)
            record_retry(func.__name__.lstrip('_'))

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {func.__name__} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")


def with_retry(max_retries: int = MAX_RETRIES) -> Callable:
    """
    Decorator to add retry logic to async functions.

    Example:
        @with_retry(max_retries=3)
        async def purchase(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(func, *args, max_retries=max_retries, **kwargs)
        return wrapper
    return decorator
