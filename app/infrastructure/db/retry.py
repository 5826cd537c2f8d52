"""
Database retry utilities for handling transient failures.

Retries units of work that fail on deadlocks, lock wait timeouts or a busy
SQLite file, through the same RetryPolicy used for supplier calls.
"""

from functools import wraps
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from app.application.interfaces.scheduler import AsyncioScheduler, Scheduler
from app.application.services.retry_policy import RetryPolicy, retry_async

T = TypeVar('T')

# MySQL error codes
MYSQL_DEADLOCK_ERROR = "1213"
MYSQL_LOCK_WAIT_TIMEOUT = "1205"
SQLITE_LOCKED = "database is locked"

DEFAULT_DB_RETRY_POLICY = RetryPolicy(max_attempts=3, interval_seconds=0.1, backoff_multiplier=2.0)


class DeadlockError(Exception):
    """Wraps a retryable database error so retry_async can select it by type."""

    def __init__(self, original: Exception):
        self.original = original
        super().__init__(str(original))


def is_deadlock_error(error: Exception) -> bool:
    """
    Check if an exception is a deadlock error.

    Args:
        error: The exception to check

    Returns:
        True if the error is a deadlock that should be retried
    """
    if isinstance(error, (OperationalError, DBAPIError)):
        error_str = str(error)
        return (
            MYSQL_DEADLOCK_ERROR in error_str
            or MYSQL_LOCK_WAIT_TIMEOUT in error_str
            or SQLITE_LOCKED in error_str
        )
    return False


async def retry_on_deadlock(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_DB_RETRY_POLICY,
    scheduler: Scheduler | None = None,
) -> T:
    """
    Retry a unit of work if it fails due to a database deadlock.

    Non-deadlock errors are re-raised immediately; once the policy is
    exhausted the original database error is raised.

    Example:
        async def update_reservation():
            async with session_scope(session_maker) as session:
                ...

        result = await retry_on_deadlock(update_reservation)
    """

    async def attempt() -> T:
        try:
            return await func()
        except (OperationalError, DBAPIError) as e:
            if is_deadlock_error(e):
                raise DeadlockError(e) from e
            raise

    try:
        return await retry_async(
            attempt,
            policy,
            scheduler or AsyncioScheduler(),
            retry_on=(DeadlockError,),
            operation="database_unit_of_work",
        )
    except DeadlockError as e:
        raise e.original from None


def with_deadlock_retry(policy: RetryPolicy = DEFAULT_DB_RETRY_POLICY):
    """
    Decorator to automatically retry async functions on database deadlocks.

    Example:
        @with_deadlock_retry()
        async def record_transition(self, ...):
            async with session_scope(self._session_maker) as session:
                ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            async def execute():
                return await func(*args, **kwargs)

            return await retry_on_deadlock(execute, policy)

        return wrapper
    return decorator
