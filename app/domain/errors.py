"""Excepciones de dominio para el motor de cotización y reservación de hoteles."""


class DomainError(Exception):
    """Clase base para todos los errores de dominio."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


# === Errores de Validación ===


class ValidationError(DomainError):
    """Error de validación de datos de entrada. Nunca se envía al proveedor."""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=f"Validación fallida en '{field}': {message}",
            code="VALIDATION_ERROR",
        )
        self.field = field


# === Errores del Proveedor ===


class SupplierRejectedError(DomainError):
    """
    Rechazo definitivo del proveedor.

    No se reintenta: el cliente debe elegir otra tarifa.
    """

    reason = "supplier_error"

    def __init__(self, operation: str, error_code: str, message: str | None = None):
        super().__init__(
            message=message or f"El proveedor rechazó '{operation}': {error_code}",
            code="SUPPLIER_REJECTED",
        )
        self.operation = operation
        self.supplier_error_code = error_code


class SandboxRestrictionError(SupplierRejectedError):
    """El proveedor restringe la operación (entorno sandbox o contrato)."""

    reason = "sandbox_restriction"


class PriceChangedError(SupplierRejectedError):
    """El precio bloqueado supera el cotizado más allá de la tolerancia."""

    reason = "price_changed"


class InsufficientBalanceError(SupplierRejectedError):
    """Saldo B2B insuficiente en la cuenta del proveedor."""

    reason = "insufficient_balance"


class RateUnavailableError(SupplierRejectedError):
    """La tarifa ya no está disponible."""

    reason = "rate_unavailable"


class SupplierTransientError(DomainError):
    """Falla transitoria (timeout, conexión, 429, 5xx). Se reintenta con el mismo correlation id."""

    def __init__(self, operation: str, error_code: str, message: str | None = None):
        super().__init__(
            message=message or f"Falla transitoria del proveedor en '{operation}': {error_code}",
            code="SUPPLIER_TRANSIENT",
        )
        self.operation = operation
        self.supplier_error_code = error_code


# === Errores de Reservación ===


class BookingTimeoutError(DomainError):
    """
    El proveedor aún no da una respuesta terminal.

    Terminal pero ambiguo: la reserva puede completarse fuera de banda, el
    cliente debe volver a consultar y nunca reenviar.
    """

    def __init__(self, correlation_id: str):
        super().__init__(
            message=f"La reservación {correlation_id} sigue en proceso con el proveedor",
            code="BOOKING_TIMEOUT",
        )
        self.correlation_id = correlation_id


class InvariantViolationError(DomainError):
    """Operación inválida para el estado actual. Error de integración, falla inmediatamente."""

    def __init__(self, message: str):
        super().__init__(message=message, code="INVARIANT_VIOLATION")


class BookingNotFoundError(DomainError):
    """No existe un intento de reservación con ese correlation id."""

    def __init__(self, correlation_id: str):
        super().__init__(
            message=f"Reservación no encontrada: {correlation_id}",
            code="BOOKING_NOT_FOUND",
        )
        self.correlation_id = correlation_id


class IdempotencyConflictError(DomainError):
    """Conflicto de idempotencia: mismo correlation id pero diferente solicitud."""

    def __init__(self, correlation_id: str):
        super().__init__(
            message=f"Conflicto de idempotencia: correlation id '{correlation_id}' "
            f"ya existe con una solicitud diferente",
            code="IDEMPOTENCY_CONFLICT",
        )
        self.correlation_id = correlation_id


# === Errores de Reglas de Margen ===


class MarginRuleNotFoundError(DomainError):
    """La regla de margen no existe."""

    def __init__(self, rule_id: str):
        super().__init__(
            message=f"Regla de margen no encontrada: {rule_id}",
            code="MARGIN_RULE_NOT_FOUND",
        )
        self.rule_id = rule_id
