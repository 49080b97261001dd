"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Error fragments worth another attempt: SQLite lock contention and
# PostgreSQL connection churn under load
TRANSIENT_ERRORS = (
    "database is locked",
    "database table is locked",
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient(error: Exception) -> bool:
    """True when a driver error is likely to succeed on retry."""
    message = str(error).lower()
    return any(fragment in message for fragment in TRANSIENT_ERRORS)


async def retry_on_lock(coro_func: Callable[[], Awaitable[T]], max_retries: int = 3, base_delay: float = 0.1) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Args:
        coro_func: Async callable, usually ``session.commit``
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds (doubles with each retry)

    Raises:
        OperationalError/InterfaceError: when the error is not transient or every attempt failed
    """
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"Database transient error, retrying in {delay}s (attempt {attempt + 1}/{max_retries})")
            await asyncio.sleep(delay)
