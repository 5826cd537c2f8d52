"""Entidad MarginRule - política de precios configurable por el operador."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from app.domain.errors import ValidationError


class MarginType(str, Enum):
    """Tipo de cálculo de margen."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"
    HYBRID = "hybrid"


class RuleStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CustomerType(str, Enum):
    ALL = "all"
    B2C = "b2c"
    B2B = "b2b"


class MealType(str, Enum):
    ROOM_ONLY = "room_only"
    BREAKFAST = "breakfast"
    HALF_BOARD = "half_board"
    FULL_BOARD = "full_board"
    ALL_INCLUSIVE = "all_inclusive"


SUPPORTED_CURRENCIES = ("SAR", "USD", "EUR", "GBP", "AED")


@dataclass(frozen=True)
class NumericRange:
    """Rango cerrado; un extremo None queda abierto."""

    min: Decimal | None = None
    max: Decimal | None = None

    def contains(self, value: Decimal) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass(frozen=True)
class DateRange:
    start: date | None = None
    end: date | None = None

    def contains(self, value: date) -> bool:
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True


@dataclass
class RuleConditions:
    """
    Condiciones de una regla. Una dimensión vacía acepta cualquier valor.

    Conjunción entre dimensiones, disyunción dentro de cada conjunto.
    """

    countries: list[str] = field(default_factory=list)
    cities: list[str] = field(default_factory=list)
    star_rating: NumericRange | None = None
    hotel_brands: list[str] = field(default_factory=list)
    date_range: DateRange | None = None
    booking_value: NumericRange | None = None
    meal_types: list[MealType] = field(default_factory=list)
    customer_type: CustomerType = CustomerType.ALL

    def validate(self) -> None:
        """
        Valida las condiciones al momento de autoría.

        Raises:
            ValidationError: Si algún rango está invertido o fuera de límites.
        """
        if self.star_rating is not None:
            low, high = self.star_rating.min, self.star_rating.max
            for bound in (low, high):
                if bound is not None and not Decimal("1") <= bound <= Decimal("5"):
                    raise ValidationError("conditions.star_rating", "debe estar entre 1 y 5")
            if low is not None and high is not None and low > high:
                raise ValidationError("conditions.star_rating", "min no puede ser mayor que max")

        if self.date_range is not None:
            start, end = self.date_range.start, self.date_range.end
            if start is not None and end is not None and start > end:
                raise ValidationError("conditions.date_range", "start no puede ser posterior a end")

        if self.booking_value is not None:
            low, high = self.booking_value.min, self.booking_value.max
            for bound in (low, high):
                if bound is not None and bound < 0:
                    raise ValidationError("conditions.booking_value", "no puede ser negativo")
            if low is not None and high is not None and low > high:
                raise ValidationError("conditions.booking_value", "min no puede ser mayor que max")


@dataclass
class MarginRule:
    """
    Regla de margen.

    `fixed` ignora `value`; `percentage` ignora `fixed_amount`; `hybrid` toma
    el mayor entre el porcentaje y el monto fijo.
    """

    id: str
    name: str
    type: MarginType
    value: Decimal = Decimal("0")
    fixed_amount: Decimal = Decimal("0")
    currency: str = "SAR"
    priority: int = 0
    status: RuleStatus = RuleStatus.ACTIVE
    conditions: RuleConditions = field(default_factory=RuleConditions)
    description: str | None = None
    created_by: str | None = None
    updated_by: str | None = None
    applied_count: int = 0
    total_revenue_generated: Decimal = Decimal("0")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == RuleStatus.ACTIVE

    def validate(self) -> None:
        """
        Rechaza reglas mal formadas antes de guardarlas.

        El motor asume reglas válidas y nunca falla al evaluarlas.
        """
        if not self.name or not self.name.strip():
            raise ValidationError("name", "es requerido")
        if len(self.name) > 100:
            raise ValidationError("name", "no puede exceder 100 caracteres")
        if self.description is not None and len(self.description) > 500:
            raise ValidationError("description", "no puede exceder 500 caracteres")
        if not Decimal("0") <= self.value <= Decimal("100"):
            raise ValidationError("value", "debe estar entre 0 y 100")
        if self.fixed_amount < 0:
            raise ValidationError("fixed_amount", "no puede ser negativo")
        if self.priority < 0:
            raise ValidationError("priority", "no puede ser negativo")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValidationError("currency", f"moneda no soportada: {self.currency}")
        self.conditions.validate()

    def toggle(self) -> None:
        """Alterna entre activa e inactiva."""
        self.status = RuleStatus.INACTIVE if self.is_active else RuleStatus.ACTIVE
