"""
Retry logic with exponential backoff for backend lock contention.

Only the SQLite backend uses this, around single statements that can hit
"database is locked". The repository itself never retries: conflicts and
storage failures go straight back to the caller.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from event_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_lock_contention(error: BaseException) -> bool:
    """True for SQLite 'database is locked' / 'database table is locked' errors"""
    return isinstance(error, sqlite3.OperationalError) and "locked" in str(error).lower()


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention.

    SQLite uses file-based locking and can report "database is locked"
    under concurrent access. Other OperationalErrors (missing table, disk
    I/O) are not retried.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds (default: 100)
        max_wait_ms: Maximum wait time in milliseconds (default: 1000)

    Returns:
        Decorated function; the last error is re-raised when attempts run out
    """
    return retry(
        retry=retry_if_exception(is_lock_contention),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
