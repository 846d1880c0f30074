"""Transaction helpers.

Serializable transactions abort with SQLSTATE 40001 (or 40P01 on deadlock)
when a concurrent writer wins. :func:`run_serializable` re-runs the whole
unit of work a bounded number of times with exponential backoff and jitter.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

import asyncpg
from chaptertrack_common import get_logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from chaptertrack_storage.connection import get_connection_pool

logger = get_logger(__name__)

T = TypeVar("T")

SERIALIZATION_MAX_ATTEMPTS = 3
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_serialization_failure(exc: BaseException) -> bool:
    """Whether ``exc`` is a serialization conflict worth retrying."""
    if isinstance(
        exc,
        (asyncpg.exceptions.SerializationError, asyncpg.exceptions.DeadlockDetectedError),
    ):
        return True
    if getattr(exc, "sqlstate", None) in _RETRYABLE_SQLSTATES:
        return True
    return "could not serialize" in str(exc).lower()


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "serialization_conflict_retry",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


async def run_serializable(
    operation: Callable[[asyncpg.Connection], Awaitable[T]],
    *,
    pool: Optional[asyncpg.Pool] = None,
    max_attempts: int = SERIALIZATION_MAX_ATTEMPTS,
    isolation: str = "serializable",
) -> T:
    """Run ``operation(conn)`` inside a transaction, retrying conflicts.

    Each attempt acquires a fresh connection and transaction. Non-conflict
    errors propagate immediately; conflicts propagate once ``max_attempts``
    is exhausted.

    Args:
        operation: Coroutine function receiving the transaction's connection
        pool: Connection pool (default: global pool)
        max_attempts: Total attempts including the first
        isolation: Transaction isolation level

    Returns:
        Whatever ``operation`` returns
    """
    if pool is None:
        pool = await get_connection_pool()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=0.1, max=2.0, exp_base=2, jitter=0.05),
        retry=retry_if_exception(is_serialization_failure),
        before_sleep=_log_retry,
        reraise=True,
    )

    result: T
    async for attempt in retrying:
        with attempt:
            async with pool.acquire() as conn:
                async with conn.transaction(isolation=isolation):
                    result = await operation(conn)
    return result
