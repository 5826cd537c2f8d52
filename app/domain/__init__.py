"""
Capa de Dominio - Motor de cotización y reservación de hoteles.

Esta capa contiene la lógica de negocio pura, sin dependencias de frameworks.

Estructura:
- entities/: MarginRule, BookingAttempt, ReservationRecord
- value_objects/: Money, QuoteContext, ReservationCode
- services/: predicados de condiciones de reglas
- errors.py: taxonomía de errores del dominio
"""

from app.domain.errors import (
    BookingNotFoundError,
    BookingTimeoutError,
    DomainError,
    IdempotencyConflictError,
    InsufficientBalanceError,
    InvariantViolationError,
    MarginRuleNotFoundError,
    PriceChangedError,
    RateUnavailableError,
    SandboxRestrictionError,
    SupplierRejectedError,
    SupplierTransientError,
    ValidationError,
)

__all__ = [
    "BookingNotFoundError",
    "BookingTimeoutError",
    "DomainError",
    "IdempotencyConflictError",
    "InsufficientBalanceError",
    "InvariantViolationError",
    "MarginRuleNotFoundError",
    "PriceChangedError",
    "RateUnavailableError",
    "SandboxRestrictionError",
    "SupplierRejectedError",
    "SupplierTransientError",
    "ValidationError",
]
