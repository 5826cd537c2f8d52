"""Value Objects del dominio."""

from app.domain.value_objects.money import Money, round_money
from app.domain.value_objects.quote_context import QuoteContext
from app.domain.value_objects.reservation_code import ReservationCode

__all__ = [
    "Money",
    "QuoteContext",
    "ReservationCode",
    "round_money",
]
