"""
Pricing policy engine.

Selects the single winning margin rule for a quote context and applies it
to the supplier's base price. Usage counters are only touched at booking
confirmation, through `record_application`.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import Decimal

from app.application.dtos.pricing_dto import PriceBreakdown
from app.application.interfaces.clock import Clock
from app.application.interfaces.margin_rule_repo import MarginRuleRepo
from app.domain.entities.margin_rule import MarginRule, MarginType, RuleStatus
from app.domain.errors import MarginRuleNotFoundError
from app.domain.services.rule_conditions import rule_matches
from app.domain.value_objects.money import Money, round_money
from app.domain.value_objects.quote_context import QuoteContext


_EPOCH = datetime.min


def _rank(rule: MarginRule) -> tuple:
    # Highest priority wins; ties go to the most recently created rule, then id.
    created = rule.created_at.replace(tzinfo=None) if rule.created_at else _EPOCH
    return (rule.priority, created, rule.id)


def select_rule(rules: Iterable[MarginRule], ctx: QuoteContext) -> MarginRule | None:
    """Deterministic single-winner selection among active matching rules."""
    matching = [rule for rule in rules if rule_matches(rule, ctx)]
    if not matching:
        return None
    return max(matching, key=_rank)


def compute_margin(base_price: Decimal, rule: MarginRule | None) -> Decimal:
    """
    percentage -> base * value / 100
    fixed      -> fixed_amount
    hybrid     -> max(base * value / 100, fixed_amount)

    Rounded to 2 decimals, half away from zero. No rule means zero margin.
    """
    if rule is None:
        return Decimal("0.00")
    if rule.type == MarginType.FIXED:
        return round_money(rule.fixed_amount)

    percentage = Money(amount=base_price, currency_code=rule.currency).percentage(rule.value).amount
    if rule.type == MarginType.HYBRID:
        return max(percentage, round_money(rule.fixed_amount))
    return percentage


def apply_margin(base_price: Decimal, rule: MarginRule | None) -> Decimal:
    return round_money(base_price + compute_margin(base_price, rule))


class PricingPolicyEngine:
    def __init__(
        self,
        rule_repo: MarginRuleRepo,
        clock: Clock,
        cache_ttl_seconds: float = 300.0,
    ) -> None:
        self._rule_repo = rule_repo
        self._clock = clock
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._cached_rules: list[MarginRule] | None = None
        self._cached_at: datetime | None = None
        self._logger = logging.getLogger(__name__)

    async def active_rules(self) -> list[MarginRule]:
        now = self._clock.now()
        if (
            self._cached_rules is not None
            and self._cached_at is not None
            and now - self._cached_at < self._cache_ttl
        ):
            return self._cached_rules

        self._cached_rules = await self._rule_repo.list_rules(status=RuleStatus.ACTIVE)
        self._cached_at = now
        return self._cached_rules

    def invalidate_cache(self) -> None:
        self._cached_rules = None
        self._cached_at = None

    async def select_rule(self, ctx: QuoteContext) -> MarginRule | None:
        rules = await self.active_rules()
        return select_rule(rules, ctx.with_check_in(self._clock.today()))

    async def quote(self, ctx: QuoteContext, currency: str) -> PriceBreakdown:
        """Prices ctx.booking_value without touching usage counters."""
        rule = await self.select_rule(ctx)
        return self.breakdown(ctx.booking_value, currency, rule)

    @staticmethod
    def breakdown(base_price: Decimal, currency: str, rule: MarginRule | None) -> PriceBreakdown:
        base = round_money(base_price)
        margin = compute_margin(base_price, rule)
        percentage = round_money(margin / base * Decimal("100")) if base else Decimal("0.00")
        return PriceBreakdown(
            base_price=base,
            margin_amount=margin,
            final_price=round_money(base_price + margin),
            margin_percentage=percentage,
            currency=currency,
            rule_id=rule.id if rule else None,
            rule_name=rule.name if rule else None,
            rule_type=rule.type.value if rule else None,
        )

    async def record_application(
        self, rule_id: str | None, correlation_id: str, margin_amount: Decimal
    ) -> bool:
        """
        Attributes a confirmed booking to its rule, once per correlation id.

        Returns True when counters were incremented. A rule deleted after the
        quote is skipped; attribution never fails a confirmed booking.
        """
        if rule_id is None:
            return False
        try:
            recorded = await self._rule_repo.record_application(rule_id, correlation_id, margin_amount)
        except MarginRuleNotFoundError:
            self._logger.warning(
                "Margin rule no longer exists, application not recorded",
                extra={"rule_id": rule_id, "correlation_id": correlation_id},
            )
            return False
        self._logger.info(
            "Margin rule application recorded" if recorded else "Margin rule application already recorded",
            extra={
                "rule_id": rule_id,
                "correlation_id": correlation_id,
                "margin_amount": str(margin_amount),
            },
        )
        return recorded
