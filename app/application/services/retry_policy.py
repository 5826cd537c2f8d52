"""
Bounded retry policy executed through a Scheduler.

Used for transport retries against the supplier, for the booking status
poll loop and for SQL deadlock retries.
"""

import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from app.application.interfaces.scheduler import Scheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts: total calls, including the first one.
    interval_seconds: wait after the first failed attempt.
    backoff_multiplier: wait grows as interval * multiplier ** (attempt - 1).
    jitter_seconds: random amount subtracted from each wait, so the total
        never exceeds the un-jittered schedule.
    """

    max_attempts: int = 3
    interval_seconds: float = 1.0
    jitter_seconds: float = 0.0
    backoff_multiplier: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_seconds < 0 or self.jitter_seconds < 0:
            raise ValueError("interval_seconds and jitter_seconds must be >= 0")

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay to wait after `attempt` (1-based) failed."""
        delay = self.interval_seconds * (self.backoff_multiplier ** (attempt - 1))
        if self.jitter_seconds:
            delay -= (rng or random).uniform(0, self.jitter_seconds)
        return max(delay, 0.0)

    @property
    def max_total_delay(self) -> float:
        """Upper bound of the time spent waiting across all attempts."""
        return sum(
            self.interval_seconds * (self.backoff_multiplier ** (n - 1))
            for n in range(1, self.max_attempts)
        )


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    scheduler: Scheduler,
    retry_on: tuple[type[BaseException], ...],
    operation: str = "operation",
    context: dict | None = None,
) -> T:
    """
    Run `func` until it succeeds, raises a non-retryable error, or the policy
    is exhausted. The last retryable error is re-raised on exhaustion.

    Example:
        lock = await retry_async(
            lambda: gateway.prebook(match_hash),
            policy, scheduler, retry_on=(SupplierTransientError,),
        )
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    "Retries exhausted",
                    extra={
                        "operation": operation,
                        "attempts": policy.max_attempts,
                        "error": str(e),
                        **(context or {}),
                    },
                )
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                "Retryable failure, retrying",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "retry_delay": delay,
                    "error": str(e),
                    **(context or {}),
                },
            )
            await scheduler.sleep(delay)

    raise RuntimeError("Unexpected state in retry_async")
