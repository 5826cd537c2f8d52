"""JSON column codecs for rule conditions and booking attempts."""

from dataclasses import asdict, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.domain.entities.booking_attempt import (
    BookingAttempt,
    BookingState,
    FailureReason,
    Guest,
    GuestDetails,
    PaymentOption,
    PaymentSelection,
)
from app.domain.entities.margin_rule import (
    CustomerType,
    DateRange,
    MealType,
    NumericRange,
    RuleConditions,
)


def to_jsonable(value: Any) -> Any:
    """Converts dataclasses, enums, decimals and dates to JSON-safe values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in value]
    return value


def _decimal(value: Any) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


# === Rule conditions ===

def encode_conditions(conditions: RuleConditions) -> dict[str, Any]:
    return to_jsonable(asdict(conditions))


def decode_conditions(data: dict[str, Any] | None) -> RuleConditions:
    data = data or {}
    star = data.get("star_rating")
    value = data.get("booking_value")
    dates = data.get("date_range")
    return RuleConditions(
        countries=list(data.get("countries") or []),
        cities=list(data.get("cities") or []),
        star_rating=NumericRange(_decimal(star.get("min")), _decimal(star.get("max"))) if star else None,
        hotel_brands=list(data.get("hotel_brands") or []),
        date_range=DateRange(_date(dates.get("start")), _date(dates.get("end"))) if dates else None,
        booking_value=NumericRange(_decimal(value.get("min")), _decimal(value.get("max"))) if value else None,
        meal_types=[MealType(m) for m in data.get("meal_types") or []],
        customer_type=CustomerType(data.get("customer_type") or CustomerType.ALL.value),
    )


# === Booking attempt ===

def encode_attempt(attempt: BookingAttempt) -> dict[str, Any]:
    return to_jsonable(attempt)


def _decode_payment_option(data: dict[str, Any]) -> PaymentOption:
    return PaymentOption(type=data["type"], amount=Decimal(data["amount"]), currency=data["currency"])


def _decode_guest_details(data: dict[str, Any]) -> GuestDetails:
    return GuestDetails(
        email=data["email"],
        phone=data["phone"],
        rooms=[[Guest(**guest) for guest in room] for room in data.get("rooms") or []],
        comment=data.get("comment"),
    )


def decode_attempt(data: dict[str, Any]) -> BookingAttempt:
    selection = data.get("payment_selection")
    return BookingAttempt(
        correlation_id=data["correlation_id"],
        match_hash=data["match_hash"],
        supplier_price=Decimal(data["supplier_price"]),
        currency=data["currency"],
        guest_details=_decode_guest_details(data["guest_details"]),
        payment_selection=PaymentSelection(
            type=selection["type"],
            currency=selection["currency"],
            amount=_decimal(selection.get("amount")),
        )
        if selection
        else None,
        state=BookingState(data["state"]),
        book_hash=data.get("book_hash"),
        order_id=data.get("order_id"),
        locked_price=_decimal(data.get("locked_price")),
        margin_rule_id=data.get("margin_rule_id"),
        margin_amount=Decimal(data.get("margin_amount") or "0"),
        customer_price=Decimal(data.get("customer_price") or "0"),
        is_refundable=data.get("is_refundable"),
        require_refundable=bool(data.get("require_refundable")),
        user_ip=data.get("user_ip"),
        payment_options=[_decode_payment_option(o) for o in data.get("payment_options") or []],
        cancel_requested=bool(data.get("cancel_requested")),
        refund_amount=_decimal(data.get("refund_amount")),
        cancel_refusal_code=data.get("cancel_refusal_code"),
        failure_reason=FailureReason(data["failure_reason"]) if data.get("failure_reason") else None,
        failure_code=data.get("failure_code"),
        failure_message=data.get("failure_message"),
        created_at=_datetime(data.get("created_at")),
        updated_at=_datetime(data.get("updated_at")),
    )
