import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.interfaces.margin_rule_repo import MarginRuleRepo
from app.domain.entities.margin_rule import MarginRule, MarginType, RuleStatus
from app.domain.errors import MarginRuleNotFoundError
from app.infrastructure.db.codecs import decode_conditions, encode_conditions
from app.infrastructure.db.engine import session_scope
from app.infrastructure.db.retry import with_deadlock_retry
from app.infrastructure.db.tables import margin_rule_applications, margin_rules

logger = logging.getLogger(__name__)


def _naive(value: datetime | None) -> datetime | None:
    # DateTime columns are stored as naive UTC.
    return value.replace(tzinfo=None) if value and value.tzinfo else value


def _to_row(rule: MarginRule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "type": rule.type.value,
        "value": rule.value,
        "fixed_amount": rule.fixed_amount,
        "currency": rule.currency,
        "priority": rule.priority,
        "status": rule.status.value,
        "conditions": encode_conditions(rule.conditions),
        "applied_count": rule.applied_count,
        "total_revenue_generated": rule.total_revenue_generated,
        "created_by": rule.created_by,
        "updated_by": rule.updated_by,
        "created_at": _naive(rule.created_at),
        "updated_at": _naive(rule.updated_at),
    }


def _from_row(data) -> MarginRule:
    return MarginRule(
        id=data["id"],
        name=data["name"],
        description=data["description"],
        type=MarginType(data["type"]),
        value=Decimal(str(data["value"])),
        fixed_amount=Decimal(str(data["fixed_amount"])),
        currency=data["currency"],
        priority=data["priority"],
        status=RuleStatus(data["status"]),
        conditions=decode_conditions(data["conditions"]),
        applied_count=data["applied_count"],
        total_revenue_generated=Decimal(str(data["total_revenue_generated"])),
        created_by=data["created_by"],
        updated_by=data["updated_by"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


class MarginRuleRepoSQL(MarginRuleRepo):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def add(self, rule: MarginRule) -> None:
        async with session_scope(self._session_maker) as session:
            await session.execute(insert(margin_rules).values(**_to_row(rule)))

    async def update(self, rule: MarginRule) -> None:
        row = _to_row(rule)
        # Counters are only written by record_application.
        for counter in ("applied_count", "total_revenue_generated", "created_at", "created_by"):
            row.pop(counter)
        async with session_scope(self._session_maker) as session:
            result = await session.execute(
                update(margin_rules).where(margin_rules.c.id == rule.id).values(**row)
            )
            if result.rowcount == 0:
                raise MarginRuleNotFoundError(rule.id)

    async def get(self, rule_id: str) -> MarginRule | None:
        async with self._session_maker() as session:
            result = await session.execute(select(margin_rules).where(margin_rules.c.id == rule_id))
            row = result.first()
        return _from_row(row._mapping) if row else None

    async def list_rules(self, status: RuleStatus | None = None) -> list[MarginRule]:
        stmt = select(margin_rules).order_by(
            margin_rules.c.priority.desc(),
            margin_rules.c.created_at.desc(),
            margin_rules.c.id.desc(),
        )
        if status is not None:
            stmt = stmt.where(margin_rules.c.status == status.value)
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [_from_row(row._mapping) for row in rows]

    async def delete(self, rule_id: str) -> bool:
        async with session_scope(self._session_maker) as session:
            result = await session.execute(delete(margin_rules).where(margin_rules.c.id == rule_id))
        return result.rowcount > 0

    @with_deadlock_retry()
    async def set_priorities(self, priorities: dict[str, int]) -> None:
        async with session_scope(self._session_maker) as session:
            for rule_id, priority in priorities.items():
                result = await session.execute(
                    update(margin_rules).where(margin_rules.c.id == rule_id).values(priority=priority)
                )
                if result.rowcount == 0:
                    # Rolls back every priority written so far.
                    raise MarginRuleNotFoundError(rule_id)

    @with_deadlock_retry()
    async def record_application(
        self, rule_id: str, correlation_id: str, margin_amount: Decimal
    ) -> bool:
        try:
            async with session_scope(self._session_maker) as session:
                await session.execute(
                    insert(margin_rule_applications).values(
                        correlation_id=correlation_id,
                        rule_id=rule_id,
                        margin_amount=margin_amount,
                        created_at=datetime.utcnow(),
                    )
                )
                result = await session.execute(
                    update(margin_rules)
                    .where(margin_rules.c.id == rule_id)
                    .values(
                        applied_count=margin_rules.c.applied_count + 1,
                        total_revenue_generated=margin_rules.c.total_revenue_generated + margin_amount,
                    )
                )
                if result.rowcount == 0:
                    raise MarginRuleNotFoundError(rule_id)
        except IntegrityError:
            logger.info(
                "Margin rule application already recorded",
                extra={"rule_id": rule_id, "correlation_id": correlation_id},
            )
            return False
        return True
