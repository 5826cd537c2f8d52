"""Entidad BookingAttempt - unidad de orquestación de una reservación."""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.domain.errors import InvariantViolationError, ValidationError


class BookingState(str, Enum):
    """Estados de la máquina de reservación."""

    QUOTED = "quoted"
    LOCKING = "locking"
    LOCKED = "locked"
    CREATING = "creating"
    AWAITING_GUEST_CONFIRM = "awaiting_guest_confirm"
    SUBMITTING = "submitting"
    POLLING = "polling"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCEL_REQUESTED = "cancel_requested"
    CANCELLED = "cancelled"


class FailureReason(str, Enum):
    """Motivo terminal de un intento fallido."""

    SANDBOX_RESTRICTION = "sandbox_restriction"
    PRICE_CHANGED = "price_changed"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    RATE_UNAVAILABLE = "rate_unavailable"
    NON_REFUNDABLE_RATE = "non_refundable_rate"
    INVALID_PAYMENT_SELECTION = "invalid_payment_selection"
    SUPPLIER_ERROR = "supplier_error"
    SUPPLIER_UNAVAILABLE = "supplier_unavailable"
    TIMEOUT = "timeout"
    ABANDONED = "abandoned"


# Estados desde los que el abandono todavía se respeta.
PRE_SUBMIT_STATES = frozenset(
    {
        BookingState.QUOTED,
        BookingState.LOCKING,
        BookingState.LOCKED,
        BookingState.CREATING,
        BookingState.AWAITING_GUEST_CONFIRM,
    }
)

# CONFIRMED es terminal para la orquestación salvo el camino de cancelación.
SETTLED_STATES = frozenset(
    {BookingState.CONFIRMED, BookingState.FAILED, BookingState.CANCELLED, BookingState.CANCEL_REQUESTED}
)

ALLOWED_TRANSITIONS: dict[BookingState, frozenset[BookingState]] = {
    BookingState.QUOTED: frozenset({BookingState.LOCKING, BookingState.LOCKED, BookingState.FAILED}),
    BookingState.LOCKING: frozenset({BookingState.LOCKED, BookingState.FAILED}),
    BookingState.LOCKED: frozenset({BookingState.CREATING, BookingState.FAILED}),
    BookingState.CREATING: frozenset({BookingState.AWAITING_GUEST_CONFIRM, BookingState.FAILED}),
    BookingState.AWAITING_GUEST_CONFIRM: frozenset({BookingState.SUBMITTING, BookingState.FAILED}),
    BookingState.SUBMITTING: frozenset({BookingState.POLLING, BookingState.FAILED}),
    BookingState.POLLING: frozenset({BookingState.CONFIRMED, BookingState.FAILED}),
    BookingState.CONFIRMED: frozenset({BookingState.CANCEL_REQUESTED}),
    BookingState.CANCEL_REQUESTED: frozenset({BookingState.CANCELLED, BookingState.CONFIRMED}),
    # Solo un timeout puede reconciliarse con una consulta posterior.
    BookingState.FAILED: frozenset({BookingState.CONFIRMED, BookingState.FAILED}),
    BookingState.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Guest:
    first_name: str
    last_name: str


@dataclass(frozen=True)
class GuestDetails:
    """Contacto principal y huéspedes por habitación."""

    email: str
    phone: str
    rooms: list[list[Guest]] = field(default_factory=list)
    comment: str | None = None

    @property
    def lead_guest(self) -> Guest | None:
        for room in self.rooms:
            if room:
                return room[0]
        return None

    @property
    def guest_count(self) -> int:
        return sum(len(room) for room in self.rooms)


@dataclass(frozen=True)
class PaymentOption:
    """Tipo de pago ofrecido por el proveedor al crear el formulario."""

    type: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class PaymentSelection:
    """Pago elegido por el cliente. `amount` vacío toma el monto ofrecido."""

    type: str
    currency: str
    amount: Decimal | None = None

    def resolve(self, options: list[PaymentOption]) -> "PaymentSelection":
        """
        Valida la selección contra las opciones del proveedor.

        Raises:
            ValidationError: Si el tipo, la moneda o el monto no fueron ofrecidos.
        """
        for option in options:
            if option.type != self.type or option.currency != self.currency:
                continue
            if self.amount is not None and self.amount != option.amount:
                raise ValidationError(
                    "payment_selection.amount",
                    f"monto {self.amount} no coincide con el ofrecido {option.amount}",
                )
            return replace(self, amount=option.amount)
        offered = ", ".join(f"{o.type}/{o.currency}" for o in options) or "ninguno"
        raise ValidationError(
            "payment_selection.type",
            f"'{self.type}/{self.currency}' no fue ofrecido por el proveedor (ofrecidos: {offered})",
        )


@dataclass
class BookingAttempt:
    """
    Intento de reservación. Nunca se borra: es la pista de auditoría.

    Solo el orquestador lo muta, siempre a través del ledger.
    """

    correlation_id: str
    match_hash: str
    supplier_price: Decimal
    currency: str
    guest_details: GuestDetails
    payment_selection: PaymentSelection | None = None
    state: BookingState = BookingState.QUOTED
    book_hash: str | None = None
    order_id: str | None = None
    locked_price: Decimal | None = None
    margin_rule_id: str | None = None
    margin_amount: Decimal = Decimal("0")
    customer_price: Decimal = Decimal("0")
    is_refundable: bool | None = None
    require_refundable: bool = False
    user_ip: str | None = None
    payment_options: list[PaymentOption] = field(default_factory=list)
    cancel_requested: bool = False
    refund_amount: Decimal | None = None
    cancel_refusal_code: str | None = None
    failure_reason: FailureReason | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_settled(self) -> bool:
        return self.state in SETTLED_STATES

    @property
    def abandon_honored(self) -> bool:
        return self.cancel_requested and self.state in PRE_SUBMIT_STATES

    def can_transition_to(self, to_state: BookingState) -> bool:
        if to_state not in ALLOWED_TRANSITIONS[self.state]:
            return False
        if self.state == BookingState.FAILED:
            return self.failure_reason == FailureReason.TIMEOUT
        return True

    def transition(
        self,
        to_state: BookingState,
        changes: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> "BookingAttempt":
        """
        Retorna una copia en el nuevo estado con los cambios aplicados.

        Raises:
            InvariantViolationError: Si la transición no está permitida o
                los cambios tocan campos desconocidos.
        """
        if not self.can_transition_to(to_state):
            raise InvariantViolationError(
                f"Transición no permitida para {self.correlation_id}: "
                f"{self.state.value} -> {to_state.value}"
            )
        changes = dict(changes or {})
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise InvariantViolationError(f"Campos no modificables en transición: {sorted(unknown)}")
        if "failure_reason" in changes and changes["failure_reason"] is not None:
            changes["failure_reason"] = FailureReason(changes["failure_reason"])
        return replace(self, state=to_state, updated_at=at or self.updated_at, **changes)


_MUTABLE_FIELDS = {
    f.name
    for f in fields(BookingAttempt)
    if f.name not in {"correlation_id", "state", "created_at", "updated_at"}
}
