"""Entidades del dominio."""

from app.domain.entities.booking_attempt import (
    ALLOWED_TRANSITIONS,
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
    MarginRule,
    MarginType,
    MealType,
    NumericRange,
    RuleConditions,
    RuleStatus,
)
from app.domain.entities.reservation import ReservationRecord, ReservationStatus, project_status

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BookingAttempt",
    "BookingState",
    "CustomerType",
    "DateRange",
    "FailureReason",
    "Guest",
    "GuestDetails",
    "MarginRule",
    "MarginType",
    "MealType",
    "NumericRange",
    "PaymentOption",
    "PaymentSelection",
    "ReservationRecord",
    "ReservationStatus",
    "RuleConditions",
    "RuleStatus",
    "project_status",
]
