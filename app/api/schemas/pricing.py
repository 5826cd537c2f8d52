from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, condecimal, conint, constr

from app.application.dtos.pricing_dto import PriceBreakdown
from app.domain.value_objects.quote_context import QuoteContext

Money = condecimal(max_digits=12, decimal_places=2, ge=0)
CurrencyCode = constr(strip_whitespace=True, to_upper=True, min_length=3, max_length=3)


class CustomerTypeIn(str, Enum):
    B2C = "b2c"
    B2B = "b2b"


class QuoteContextIn(BaseModel):
    """Atributos del hotel y de la estancia contra los que se evalúan las reglas."""

    model_config = ConfigDict(extra="forbid")

    country: str | None = None
    city: str | None = None
    star_rating: conint(ge=1, le=5) | None = None
    hotel_brand: str | None = None
    check_in_date: date | None = None
    meal_type: str | None = None
    customer_type: CustomerTypeIn = CustomerTypeIn.B2C

    def to_context(self, booking_value: Decimal) -> QuoteContext:
        return QuoteContext(
            booking_value=booking_value,
            country=self.country,
            city=self.city,
            star_rating=self.star_rating,
            hotel_brand=self.hotel_brand,
            check_in_date=self.check_in_date,
            meal_type=self.meal_type,
            customer_type=self.customer_type.value,
        )


class QuoteRequest(QuoteContextIn):
    base_price: Money
    currency: CurrencyCode = "SAR"


class PriceBreakdownResponse(BaseModel):
    base_price: Decimal
    margin_amount: Decimal
    final_price: Decimal
    margin_percentage: Decimal
    currency: str
    rule_id: str | None = None
    rule_name: str | None = None
    rule_type: str | None = None

    @classmethod
    def from_dto(cls, breakdown: PriceBreakdown) -> "PriceBreakdownResponse":
        return cls(**breakdown.__dict__)


class RateSearchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: constr(strip_whitespace=True, min_length=1)
    check_in: date
    check_out: date
    adults: conint(ge=1, le=6) = 2
    children: list[conint(ge=0, le=17)] = Field(default_factory=list)
    currency: CurrencyCode = "SAR"
    residency: constr(strip_whitespace=True, to_lower=True, min_length=2, max_length=2) = "sa"
    country: str | None = None
    city: str | None = None
    star_rating: conint(ge=1, le=5) | None = None
    hotel_brand: str | None = None
    customer_type: CustomerTypeIn = CustomerTypeIn.B2C


class PricedRateResponse(BaseModel):
    match_hash: str
    book_hash: str | None = None
    hotel_id: str
    room_name: str
    meal_type: str
    is_refundable: bool
    free_cancellation_before: datetime | None = None
    price: PriceBreakdownResponse


class RateSearchResponse(BaseModel):
    hotel_id: str
    rates: list[PricedRateResponse]
