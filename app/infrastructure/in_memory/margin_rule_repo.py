import asyncio
import copy
from datetime import datetime
from decimal import Decimal

from app.application.interfaces.margin_rule_repo import MarginRuleRepo
from app.domain.entities.margin_rule import MarginRule, RuleStatus
from app.domain.errors import MarginRuleNotFoundError


def _sort_key(rule: MarginRule) -> tuple:
    created = rule.created_at.replace(tzinfo=None) if rule.created_at else datetime.min
    return (rule.priority, created, rule.id)


class InMemoryMarginRuleRepo(MarginRuleRepo):
    def __init__(self) -> None:
        self.rules: dict[str, MarginRule] = {}
        self.applications: dict[str, str] = {}  # correlation_id -> rule_id
        self._lock = asyncio.Lock()

    async def add(self, rule: MarginRule) -> None:
        self.rules[rule.id] = copy.deepcopy(rule)

    async def update(self, rule: MarginRule) -> None:
        if rule.id not in self.rules:
            raise MarginRuleNotFoundError(rule.id)
        self.rules[rule.id] = copy.deepcopy(rule)

    async def get(self, rule_id: str) -> MarginRule | None:
        rule = self.rules.get(rule_id)
        return copy.deepcopy(rule) if rule else None

    async def list_rules(self, status: RuleStatus | None = None) -> list[MarginRule]:
        rules = [r for r in self.rules.values() if status is None or r.status == status]
        return [copy.deepcopy(r) for r in sorted(rules, key=_sort_key, reverse=True)]

    async def delete(self, rule_id: str) -> bool:
        return self.rules.pop(rule_id, None) is not None

    async def set_priorities(self, priorities: dict[str, int]) -> None:
        missing = [rule_id for rule_id in priorities if rule_id not in self.rules]
        if missing:
            raise MarginRuleNotFoundError(missing[0])
        for rule_id, priority in priorities.items():
            self.rules[rule_id].priority = priority

    async def record_application(
        self, rule_id: str, correlation_id: str, margin_amount: Decimal
    ) -> bool:
        async with self._lock:
            if correlation_id in self.applications:
                return False
            rule = self.rules.get(rule_id)
            if rule is None:
                raise MarginRuleNotFoundError(rule_id)
            self.applications[correlation_id] = rule_id
            rule.applied_count += 1
            rule.total_revenue_generated += margin_amount
            return True
