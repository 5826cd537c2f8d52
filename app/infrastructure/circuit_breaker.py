"""
Circuit Breaker for supplier calls.

Pattern:
- CLOSED: Normal operation, requests pass through
- OPEN: Too many failures, requests fail immediately
- HALF_OPEN: Testing if service recovered, limited requests allowed

The breaker is built once at startup and handed to the gateway that uses it.
Definitive supplier rejections do not count as failures.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import pybreaker
from pybreaker import CircuitBreaker, CircuitBreakerError

from app.config import Settings
from app.domain.errors import SupplierRejectedError, SupplierTransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitStateListener(pybreaker.CircuitBreakerListener):
    """Logs circuit breaker state changes for monitoring and alerting."""

    def __init__(self, name: str):
        self.name = name

    def state_change(self, cb, old_state, new_state):
        logger.warning(
            "Circuit breaker state changed",
            extra={
                "breaker_name": self.name,
                "old_state": getattr(old_state, "name", str(old_state)),
                "new_state": getattr(new_state, "name", str(new_state)),
            },
        )


def build_supplier_breaker(settings: Settings) -> CircuitBreaker:
    return CircuitBreaker(
        fail_max=settings.breaker_fail_max,
        reset_timeout=settings.breaker_reset_timeout_seconds,
        name="supplier_circuit_breaker",
        exclude=[SupplierRejectedError],
        listeners=[CircuitStateListener("supplier")],
    )


def _noop() -> None:
    return None


async def call_with_breaker(
    breaker: CircuitBreaker,
    operation: str,
    func: Callable[[], Awaitable[T]],
) -> T:
    """
    Runs an async call under a pybreaker breaker.

    pybreaker only tracks synchronous callables, so the coroutine is awaited
    here and its outcome is replayed through `breaker.call`. An open circuit
    fails fast with SupplierTransientError("circuit_open").
    """
    if breaker.current_state == pybreaker.STATE_OPEN:
        try:
            # Raises while the reset timeout has not elapsed.
            breaker.call(_noop)
        except CircuitBreakerError as exc:
            raise SupplierTransientError(operation, "circuit_open", "Supplier circuit breaker is open") from exc
        # The no-op closed the circuit; the real call below is the trial.
        breaker.half_open()

    error: BaseException | None = None
    result = None
    try:
        result = await func()
    except Exception as exc:
        error = exc

    def replay():
        if error is not None:
            raise error
        return result

    try:
        return breaker.call(replay)
    except CircuitBreakerError as exc:
        # The failure that tripped the breaker; only transient errors are counted.
        raise SupplierTransientError(operation, "circuit_open", str(error or exc)) from (error or exc)


__all__ = [
    "CircuitBreakerError",
    "build_supplier_breaker",
    "call_with_breaker",
]
