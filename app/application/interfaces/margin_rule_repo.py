from abc import ABC, abstractmethod
from decimal import Decimal

from app.domain.entities.margin_rule import MarginRule, RuleStatus


class MarginRuleRepo(ABC):
    @abstractmethod
    async def add(self, rule: MarginRule) -> None:
        pass

    @abstractmethod
    async def update(self, rule: MarginRule) -> None:
        pass

    @abstractmethod
    async def get(self, rule_id: str) -> MarginRule | None:
        pass

    @abstractmethod
    async def list_rules(self, status: RuleStatus | None = None) -> list[MarginRule]:
        """Returns rules ordered by priority desc, then created_at desc."""
        pass

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        pass

    @abstractmethod
    async def set_priorities(self, priorities: dict[str, int]) -> None:
        """Updates several priorities in one unit of work."""
        pass

    @abstractmethod
    async def record_application(
        self, rule_id: str, correlation_id: str, margin_amount: Decimal
    ) -> bool:
        """
        Atomically bumps applied_count by one and total_revenue_generated by
        margin_amount, at most once per correlation id.

        Returns False when the correlation id was already attributed.
        """
        pass
