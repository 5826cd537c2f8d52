"""Entidad ReservationRecord - proyección durable de un intento de reservación."""

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from app.domain.entities.booking_attempt import BookingAttempt, BookingState, FailureReason


class ReservationStatus(str, Enum):
    """Estado visible para el cliente."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    INVOICED = "invoiced"
    PAID = "paid"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


_STATE_TO_STATUS: dict[BookingState, ReservationStatus] = {
    BookingState.QUOTED: ReservationStatus.PENDING,
    BookingState.LOCKING: ReservationStatus.PENDING,
    BookingState.LOCKED: ReservationStatus.PENDING,
    BookingState.CREATING: ReservationStatus.PENDING,
    BookingState.AWAITING_GUEST_CONFIRM: ReservationStatus.PENDING,
    BookingState.SUBMITTING: ReservationStatus.PENDING,
    BookingState.POLLING: ReservationStatus.PENDING,
    BookingState.CONFIRMED: ReservationStatus.CONFIRMED,
    # La reserva sigue viva hasta que el proveedor confirme la cancelación.
    BookingState.CANCEL_REQUESTED: ReservationStatus.CONFIRMED,
    BookingState.CANCELLED: ReservationStatus.CANCELLED,
    BookingState.FAILED: ReservationStatus.DENIED,
}


def project_status(state: BookingState, failure_reason: FailureReason | None = None) -> ReservationStatus:
    """
    Proyección total del estado interno al estado del cliente.

    Un timeout no es una denegación: la reserva puede completarse fuera de banda.
    """
    if state == BookingState.FAILED and failure_reason == FailureReason.TIMEOUT:
        return ReservationStatus.PENDING
    return _STATE_TO_STATUS[state]


@dataclass
class ReservationRecord:
    """
    Registro de reservación con metadatos del viaje.

    Se crea junto con el intento y se actualiza en cada transición;
    la cancelación es un estado, nunca se borra la fila.
    """

    reservation_code: str
    hotel_id: str
    check_in: date
    check_out: date
    attempt: BookingAttempt
    hotel_name: str | None = None
    room_name: str | None = None
    meal_type: str | None = None
    guest_count: int = 1
    status: ReservationStatus = ReservationStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def correlation_id(self) -> str:
        return self.attempt.correlation_id

    @property
    def state(self) -> BookingState:
        return self.attempt.state

    @property
    def customer_price(self) -> Decimal:
        return self.attempt.customer_price

    def with_attempt(self, attempt: BookingAttempt, at: datetime | None = None) -> "ReservationRecord":
        """Retorna una copia con el intento actualizado y el estado proyectado."""
        return replace(
            self,
            attempt=attempt,
            status=project_status(attempt.state, attempt.failure_reason),
            updated_at=at or self.updated_at,
        )
