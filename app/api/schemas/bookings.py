from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, conint, constr

from app.api.schemas.pricing import CurrencyCode, CustomerTypeIn, Money
from app.application.dtos.booking_dto import StartBookingCommand
from app.application.interfaces.reservation_ledger import TransitionEntry
from app.domain.entities.booking_attempt import FailureReason, Guest, GuestDetails, PaymentSelection
from app.domain.entities.reservation import ReservationRecord
from app.infrastructure.db.codecs import to_jsonable

# Mensajes para el cliente; el detalle técnico queda en failure_code.
CUSTOMER_MESSAGES: dict[FailureReason | None, str] = {
    None: "",
    FailureReason.SANDBOX_RESTRICTION: "This rate cannot be booked through our channel. Please choose another rate.",
    FailureReason.PRICE_CHANGED: "The price of this room changed. Please review the new price and try again.",
    FailureReason.INSUFFICIENT_BALANCE: "We could not complete the booking right now. Please try again later.",
    FailureReason.RATE_UNAVAILABLE: "This room is no longer available. Please choose another rate.",
    FailureReason.NON_REFUNDABLE_RATE: "Only refundable rates can be booked in this flow.",
    FailureReason.INVALID_PAYMENT_SELECTION: "The selected payment option is not available for this rate.",
    FailureReason.SUPPLIER_ERROR: "The hotel could not confirm the booking. Please choose another rate.",
    FailureReason.SUPPLIER_UNAVAILABLE: "The hotel supplier is temporarily unavailable. Please try again shortly.",
    FailureReason.TIMEOUT: "Your booking is still being confirmed. We will notify you as soon as it is final.",
    FailureReason.ABANDONED: "The booking was abandoned before it was submitted.",
}


class GuestIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: constr(strip_whitespace=True, min_length=1, max_length=150)
    last_name: constr(strip_whitespace=True, min_length=1, max_length=150)


class GuestDetailsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    phone: constr(strip_whitespace=True, min_length=5, max_length=50)
    rooms: list[list[GuestIn]] = Field(min_length=1)
    comment: str | None = None

    def to_domain(self) -> GuestDetails:
        return GuestDetails(
            email=str(self.email),
            phone=self.phone,
            rooms=[[Guest(g.first_name, g.last_name) for g in room] for room in self.rooms],
            comment=self.comment,
        )


class PaymentSelectionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: constr(strip_whitespace=True, min_length=1)
    currency: CurrencyCode
    amount: Money | None = None


class StartBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    correlation_id: constr(strip_whitespace=True, min_length=8, max_length=64)
    hotel_id: constr(strip_whitespace=True, min_length=1)
    check_in: date
    check_out: date
    match_hash: constr(strip_whitespace=True, min_length=1)
    book_hash: str | None = None
    supplier_price: Money
    currency: CurrencyCode = "SAR"
    guest_details: GuestDetailsIn
    payment_selection: PaymentSelectionIn | None = None
    hotel_name: str | None = None
    room_name: str | None = None
    meal_type: str | None = None
    is_refundable: bool | None = None
    require_refundable: bool = False
    country: str | None = None
    city: str | None = None
    star_rating: conint(ge=1, le=5) | None = None
    hotel_brand: str | None = None
    customer_type: CustomerTypeIn = CustomerTypeIn.B2C

    def to_command(self, user_ip: str | None = None) -> StartBookingCommand:
        payment = self.payment_selection
        return StartBookingCommand(
            correlation_id=self.correlation_id,
            hotel_id=self.hotel_id,
            check_in=self.check_in,
            check_out=self.check_out,
            match_hash=self.match_hash,
            book_hash=self.book_hash,
            supplier_price=self.supplier_price,
            currency=self.currency,
            guest_details=self.guest_details.to_domain(),
            payment_selection=PaymentSelection(payment.type, payment.currency, payment.amount) if payment else None,
            hotel_name=self.hotel_name,
            room_name=self.room_name,
            meal_type=self.meal_type,
            is_refundable=self.is_refundable,
            require_refundable=self.require_refundable,
            country=self.country,
            city=self.city,
            star_rating=self.star_rating,
            hotel_brand=self.hotel_brand,
            customer_type=self.customer_type.value,
            user_ip=user_ip,
        )


class BookingPrice(BaseModel):
    supplier_price: Decimal
    margin_amount: Decimal
    customer_price: Decimal
    currency: str
    margin_rule_id: str | None = None


class ReservationResponse(BaseModel):
    reservation_code: str
    correlation_id: str
    status: str
    state: str
    customer_message: str
    hotel_id: str
    hotel_name: str | None = None
    room_name: str | None = None
    meal_type: str | None = None
    check_in: date
    check_out: date
    guest_count: int
    order_id: str | None = None
    is_refundable: bool | None = None
    cancel_requested: bool = False
    refund_amount: Decimal | None = None
    cancel_refusal_code: str | None = None
    failure_reason: str | None = None
    failure_code: str | None = None
    price: BookingPrice
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: ReservationRecord) -> "ReservationResponse":
        attempt = record.attempt
        return cls(
            reservation_code=record.reservation_code,
            correlation_id=record.correlation_id,
            status=record.status.value,
            state=attempt.state.value,
            customer_message=CUSTOMER_MESSAGES.get(attempt.failure_reason, ""),
            hotel_id=record.hotel_id,
            hotel_name=record.hotel_name,
            room_name=record.room_name,
            meal_type=record.meal_type,
            check_in=record.check_in,
            check_out=record.check_out,
            guest_count=record.guest_count,
            order_id=attempt.order_id,
            is_refundable=attempt.is_refundable,
            cancel_requested=attempt.cancel_requested,
            refund_amount=attempt.refund_amount,
            cancel_refusal_code=attempt.cancel_refusal_code,
            failure_reason=attempt.failure_reason.value if attempt.failure_reason else None,
            failure_code=attempt.failure_code,
            price=BookingPrice(
                supplier_price=attempt.supplier_price,
                margin_amount=attempt.margin_amount,
                customer_price=attempt.customer_price,
                currency=attempt.currency,
                margin_rule_id=attempt.margin_rule_id,
            ),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AbandonResponse(BaseModel):
    accepted: bool
    reservation: ReservationResponse


class TransitionResponse(BaseModel):
    from_state: str
    to_state: str
    recorded_at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entry(cls, entry: TransitionEntry) -> "TransitionResponse":
        return cls(
            from_state=entry.from_state.value,
            to_state=entry.to_state.value,
            recorded_at=entry.recorded_at,
            payload=to_jsonable(entry.payload),
        )
