"""Value Object QuoteContext - entrada efímera del motor de precios."""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class QuoteContext:
    """
    Contexto de una tarifa a cotizar. No se persiste.

    Attributes:
        booking_value: Precio base del proveedor antes de margen.
        check_in_date: Fecha de entrada; si falta se evalúa como hoy.
        customer_type: "b2c" o "b2b".
    """

    booking_value: Decimal
    country: str | None = None
    city: str | None = None
    star_rating: int | None = None
    hotel_brand: str | None = None
    check_in_date: date | None = None
    meal_type: str | None = None
    customer_type: str = "b2c"

    def with_check_in(self, default: date) -> "QuoteContext":
        """Completa la fecha de entrada si no fue provista."""
        if self.check_in_date is not None:
            return self
        return replace(self, check_in_date=default)
