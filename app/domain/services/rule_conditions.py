"""
Rule condition predicates.

Each condition dimension is an independent predicate over a QuoteContext;
a rule matches when the conjunction of its dimension predicates holds.
An unset dimension yields `always`.
"""

from collections.abc import Callable, Iterable

from app.domain.entities.margin_rule import (
    CustomerType,
    DateRange,
    MarginRule,
    NumericRange,
    RuleConditions,
)
from app.domain.value_objects.quote_context import QuoteContext

Predicate = Callable[[QuoteContext], bool]


def always(ctx: QuoteContext) -> bool:
    return True


def all_of(*predicates: Predicate) -> Predicate:
    """Conjunction combinator."""
    active = [p for p in predicates if p is not always]
    if not active:
        return always

    def predicate(ctx: QuoteContext) -> bool:
        return all(p(ctx) for p in active)

    return predicate


def _normalize(value: str) -> str:
    return value.strip().casefold()


def value_in(getter: Callable[[QuoteContext], str | None], values: Iterable[str]) -> Predicate:
    """Disjunction within a string set, case-insensitive. Empty set matches everything."""
    allowed = {_normalize(v) for v in values if v}
    if not allowed:
        return always

    def predicate(ctx: QuoteContext) -> bool:
        actual = getter(ctx)
        return actual is not None and _normalize(actual) in allowed

    return predicate


def country_in(values: Iterable[str]) -> Predicate:
    return value_in(lambda ctx: ctx.country, values)


def city_in(values: Iterable[str]) -> Predicate:
    return value_in(lambda ctx: ctx.city, values)


def hotel_brand_in(values: Iterable[str]) -> Predicate:
    return value_in(lambda ctx: ctx.hotel_brand, values)


def meal_type_in(values: Iterable[str]) -> Predicate:
    return value_in(lambda ctx: ctx.meal_type, [str(getattr(v, "value", v)) for v in values])


def star_rating_within(bounds: NumericRange | None) -> Predicate:
    if bounds is None or (bounds.min is None and bounds.max is None):
        return always

    def predicate(ctx: QuoteContext) -> bool:
        return ctx.star_rating is not None and bounds.contains(ctx.star_rating)

    return predicate


def booking_value_within(bounds: NumericRange | None) -> Predicate:
    if bounds is None or (bounds.min is None and bounds.max is None):
        return always

    def predicate(ctx: QuoteContext) -> bool:
        return bounds.contains(ctx.booking_value)

    return predicate


def check_in_within(window: DateRange | None) -> Predicate:
    if window is None or (window.start is None and window.end is None):
        return always

    def predicate(ctx: QuoteContext) -> bool:
        return ctx.check_in_date is not None and window.contains(ctx.check_in_date)

    return predicate


def customer_type_is(customer_type: CustomerType) -> Predicate:
    if customer_type == CustomerType.ALL:
        return always

    def predicate(ctx: QuoteContext) -> bool:
        return _normalize(ctx.customer_type) == customer_type.value

    return predicate


def conditions_predicate(conditions: RuleConditions) -> Predicate:
    return all_of(
        country_in(conditions.countries),
        city_in(conditions.cities),
        star_rating_within(conditions.star_rating),
        hotel_brand_in(conditions.hotel_brands),
        check_in_within(conditions.date_range),
        booking_value_within(conditions.booking_value),
        meal_type_in(conditions.meal_types),
        customer_type_is(conditions.customer_type),
    )


def rule_matches(rule: MarginRule, ctx: QuoteContext) -> bool:
    """True when the rule is active and every condition dimension accepts ctx."""
    return rule.is_active and conditions_predicate(rule.conditions)(ctx)
