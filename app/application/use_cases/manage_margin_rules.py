import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any
from uuid import uuid4

from app.application.dtos.pricing_dto import PriceBreakdown
from app.application.interfaces.clock import Clock
from app.application.interfaces.margin_rule_repo import MarginRuleRepo
from app.application.services.pricing_engine import PricingPolicyEngine
from app.domain.entities.margin_rule import MarginRule, MarginType, RuleConditions, RuleStatus
from app.domain.errors import MarginRuleNotFoundError, ValidationError
from app.domain.value_objects.money import round_money
from app.domain.value_objects.quote_context import QuoteContext

_UPDATABLE_FIELDS = {
    "name",
    "description",
    "type",
    "value",
    "fixed_amount",
    "currency",
    "priority",
    "status",
    "conditions",
}


@dataclass
class TypeStats:
    count: int = 0
    total_applied: int = 0
    total_revenue: Decimal = Decimal("0")
    average_value: Decimal = Decimal("0")


@dataclass
class MarginRuleStats:
    total_rules: int = 0
    total_applied: int = 0
    total_revenue: Decimal = Decimal("0")
    average_margin: Decimal = Decimal("0")
    by_type: dict[str, TypeStats] = field(default_factory=dict)


class ManageMarginRulesUseCase:
    """
    Administración de reglas de margen.

    Toda mutación valida la regla al momento de autoría e invalida la caché
    de reglas activas del motor de precios.
    """

    def __init__(
        self,
        rule_repo: MarginRuleRepo,
        pricing_engine: PricingPolicyEngine,
        clock: Clock,
    ) -> None:
        self._rule_repo = rule_repo
        self._pricing = pricing_engine
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def create(
        self,
        name: str,
        type: MarginType,
        value: Decimal = Decimal("0"),
        fixed_amount: Decimal = Decimal("0"),
        currency: str = "SAR",
        priority: int = 0,
        status: RuleStatus = RuleStatus.ACTIVE,
        conditions: RuleConditions | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> MarginRule:
        now = self._clock.now()
        rule = MarginRule(
            id=uuid4().hex,
            name=name,
            type=MarginType(type),
            value=Decimal(str(value)),
            fixed_amount=Decimal(str(fixed_amount)),
            currency=currency,
            priority=priority,
            status=RuleStatus(status),
            conditions=conditions or RuleConditions(),
            description=description,
            created_by=created_by,
            updated_by=created_by,
            created_at=now,
            updated_at=now,
        )
        rule.validate()
        await self._rule_repo.add(rule)
        self._pricing.invalidate_cache()
        self._logger.info("Margin rule created", extra={"rule_id": rule.id, "priority": rule.priority})
        return rule

    async def get(self, rule_id: str) -> MarginRule:
        rule = await self._rule_repo.get(rule_id)
        if rule is None:
            raise MarginRuleNotFoundError(rule_id)
        return rule

    async def list_rules(self, status: RuleStatus | None = None) -> list[MarginRule]:
        return await self._rule_repo.list_rules(status=status)

    async def update(self, rule_id: str, changes: dict[str, Any], updated_by: str | None = None) -> MarginRule:
        rule = await self.get(rule_id)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "campo no modificable")

        for name, value in changes.items():
            if name == "type":
                value = MarginType(value)
            elif name == "status":
                value = RuleStatus(value)
            elif name in ("value", "fixed_amount"):
                value = Decimal(str(value))
            setattr(rule, name, value)
        rule.updated_by = updated_by
        rule.updated_at = self._clock.now()
        rule.validate()

        await self._rule_repo.update(rule)
        self._pricing.invalidate_cache()
        self._logger.info("Margin rule updated", extra={"rule_id": rule_id, "fields": sorted(changes)})
        return rule

    async def delete(self, rule_id: str) -> None:
        if not await self._rule_repo.delete(rule_id):
            raise MarginRuleNotFoundError(rule_id)
        self._pricing.invalidate_cache()
        self._logger.info("Margin rule deleted", extra={"rule_id": rule_id})

    async def toggle(self, rule_id: str, updated_by: str | None = None) -> MarginRule:
        rule = await self.get(rule_id)
        rule.toggle()
        rule.updated_by = updated_by
        rule.updated_at = self._clock.now()
        await self._rule_repo.update(rule)
        self._pricing.invalidate_cache()
        return rule

    async def reorder(self, ordered_ids: list[str]) -> list[MarginRule]:
        """
        Renumbers priorities to N, N-1, ..., 1 following ordered_ids.

        The list must name every rule exactly once so no ties remain.
        """
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("ordered_ids", "contiene ids duplicados")
        existing = {rule.id for rule in await self._rule_repo.list_rules()}
        unknown = [rule_id for rule_id in ordered_ids if rule_id not in existing]
        if unknown:
            raise MarginRuleNotFoundError(unknown[0])
        if set(ordered_ids) != existing:
            raise ValidationError("ordered_ids", "debe incluir todas las reglas")

        total = len(ordered_ids)
        await self._rule_repo.set_priorities(
            {rule_id: total - index for index, rule_id in enumerate(ordered_ids)}
        )
        self._pricing.invalidate_cache()
        self._logger.info("Margin rules reordered", extra={"rules": total})
        return await self._rule_repo.list_rules()

    async def simulate(
        self, base_price: Decimal, ctx: QuoteContext, currency: str = "SAR"
    ) -> tuple[MarginRule | None, PriceBreakdown]:
        """Shows which rule would apply, without touching usage counters."""
        ctx = replace(ctx, booking_value=base_price)
        rule = await self._pricing.select_rule(ctx)
        return rule, self._pricing.breakdown(base_price, currency, rule)

    async def stats(self) -> MarginRuleStats:
        rules = await self._rule_repo.list_rules(status=RuleStatus.ACTIVE)
        stats = MarginRuleStats(total_rules=len(rules))
        if not rules:
            return stats

        values_by_type: dict[str, list[Decimal]] = {}
        for rule in rules:
            stats.total_applied += rule.applied_count
            stats.total_revenue += rule.total_revenue_generated
            bucket = stats.by_type.setdefault(rule.type.value, TypeStats())
            bucket.count += 1
            bucket.total_applied += rule.applied_count
            bucket.total_revenue += rule.total_revenue_generated
            values_by_type.setdefault(rule.type.value, []).append(rule.value)

        stats.average_margin = round_money(sum(r.value for r in rules) / len(rules))
        for type_name, values in values_by_type.items():
            stats.by_type[type_name].average_value = round_money(sum(values) / len(values))
        return stats
