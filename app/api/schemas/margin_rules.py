from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, condecimal, conint, constr

from app.api.schemas.pricing import Money, PriceBreakdownResponse, QuoteContextIn
from app.application.use_cases.manage_margin_rules import MarginRuleStats
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

Percentage = condecimal(max_digits=5, decimal_places=2)


class NumericRangeIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: Decimal | None = None
    max: Decimal | None = None


class DateRangeIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start: date | None = None
    end: date | None = None


class RuleConditionsIn(BaseModel):
    """Una lista vacía en una dimensión acepta cualquier valor."""

    model_config = ConfigDict(extra="forbid")

    countries: list[str] = Field(default_factory=list)
    cities: list[str] = Field(default_factory=list)
    star_rating: NumericRangeIn | None = None
    hotel_brands: list[str] = Field(default_factory=list)
    date_range: DateRangeIn | None = None
    booking_value: NumericRangeIn | None = None
    meal_types: list[MealType] = Field(default_factory=list)
    customer_type: CustomerType = CustomerType.ALL

    def to_domain(self) -> RuleConditions:
        return RuleConditions(
            countries=list(self.countries),
            cities=list(self.cities),
            star_rating=NumericRange(self.star_rating.min, self.star_rating.max) if self.star_rating else None,
            hotel_brands=list(self.hotel_brands),
            date_range=DateRange(self.date_range.start, self.date_range.end) if self.date_range else None,
            booking_value=NumericRange(self.booking_value.min, self.booking_value.max)
            if self.booking_value
            else None,
            meal_types=list(self.meal_types),
            customer_type=self.customer_type,
        )

    @classmethod
    def from_domain(cls, conditions: RuleConditions) -> "RuleConditionsIn":
        return cls(
            countries=conditions.countries,
            cities=conditions.cities,
            star_rating=NumericRangeIn(min=conditions.star_rating.min, max=conditions.star_rating.max)
            if conditions.star_rating
            else None,
            hotel_brands=conditions.hotel_brands,
            date_range=DateRangeIn(start=conditions.date_range.start, end=conditions.date_range.end)
            if conditions.date_range
            else None,
            booking_value=NumericRangeIn(min=conditions.booking_value.min, max=conditions.booking_value.max)
            if conditions.booking_value
            else None,
            meal_types=conditions.meal_types,
            customer_type=conditions.customer_type,
        )


class MarginRuleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: constr(strip_whitespace=True, min_length=1, max_length=100)
    description: constr(max_length=500) | None = None
    type: MarginType
    value: Percentage = Decimal("0")
    fixed_amount: Money = Decimal("0")
    currency: constr(strip_whitespace=True, to_upper=True, min_length=3, max_length=3) = "SAR"
    priority: conint(ge=0) = 0
    status: RuleStatus = RuleStatus.ACTIVE
    conditions: RuleConditionsIn = Field(default_factory=RuleConditionsIn)
    created_by: str | None = None


class MarginRuleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: constr(strip_whitespace=True, min_length=1, max_length=100) | None = None
    description: constr(max_length=500) | None = None
    type: MarginType | None = None
    value: Percentage | None = None
    fixed_amount: Money | None = None
    currency: constr(strip_whitespace=True, to_upper=True, min_length=3, max_length=3) | None = None
    priority: conint(ge=0) | None = None
    status: RuleStatus | None = None
    conditions: RuleConditionsIn | None = None
    updated_by: str | None = None

    def changes(self) -> dict[str, Any]:
        """Solo los campos enviados por el cliente."""
        # Only description can be cleared; null on any other field means "unchanged".
        data = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "updated_by" and (name == "description" or getattr(self, name) is not None)
        }
        if "conditions" in data and self.conditions is not None:
            data["conditions"] = self.conditions.to_domain()
        return data


class MarginRuleResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    type: MarginType
    value: Decimal
    fixed_amount: Decimal
    currency: str
    priority: int
    status: RuleStatus
    conditions: RuleConditionsIn
    applied_count: int
    total_revenue_generated: Decimal
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, rule: MarginRule) -> "MarginRuleResponse":
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            type=rule.type,
            value=rule.value,
            fixed_amount=rule.fixed_amount,
            currency=rule.currency,
            priority=rule.priority,
            status=rule.status,
            conditions=RuleConditionsIn.from_domain(rule.conditions),
            applied_count=rule.applied_count,
            total_revenue_generated=rule.total_revenue_generated,
            created_by=rule.created_by,
            updated_by=rule.updated_by,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class ReorderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ordered_ids: list[str] = Field(min_length=1)


class SimulateRequest(QuoteContextIn):
    base_price: Money
    currency: constr(strip_whitespace=True, to_upper=True, min_length=3, max_length=3) = "SAR"


class SimulateResponse(BaseModel):
    rule: MarginRuleResponse | None = None
    price: PriceBreakdownResponse


class TypeStatsResponse(BaseModel):
    count: int
    total_applied: int
    total_revenue: Decimal
    average_value: Decimal


class MarginRuleStatsResponse(BaseModel):
    total_rules: int
    total_applied: int
    total_revenue: Decimal
    average_margin: Decimal
    by_type: dict[str, TypeStatsResponse]

    @classmethod
    def from_stats(cls, stats: MarginRuleStats) -> "MarginRuleStatsResponse":
        return cls(
            total_rules=stats.total_rules,
            total_applied=stats.total_applied,
            total_revenue=stats.total_revenue,
            average_margin=stats.average_margin,
            by_type={name: TypeStatsResponse(**bucket.__dict__) for name, bucket in stats.by_type.items()},
        )
