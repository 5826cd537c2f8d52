import asyncio
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add project root to sys.path
project_root = Path(__file__).resolve().parent.parent
sys.path.append(str(project_root))

from app.application.interfaces.clock import SystemClock  # noqa: E402
from app.application.services.pricing_engine import PricingPolicyEngine  # noqa: E402
from app.application.use_cases.manage_margin_rules import ManageMarginRulesUseCase  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.domain.entities.margin_rule import (  # noqa: E402
    CustomerType,
    DateRange,
    MarginType,
    NumericRange,
    RuleConditions,
)
from app.infrastructure.db.engine import build_engine, build_sessionmaker  # noqa: E402
from app.infrastructure.db.repositories.margin_rule_repo_sql import MarginRuleRepoSQL  # noqa: E402
from app.infrastructure.db.tables import metadata  # noqa: E402

SEED_RULES = [
    {
        "name": "Default 10%",
        "type": MarginType.PERCENTAGE,
        "value": Decimal("10"),
        "priority": 1,
    },
    {
        "name": "Riyadh luxury",
        "type": MarginType.HYBRID,
        "value": Decimal("12"),
        "fixed_amount": Decimal("150"),
        "priority": 50,
        "conditions": RuleConditions(
            countries=["SA"],
            cities=["Riyadh"],
            star_rating=NumericRange(Decimal("4"), Decimal("5")),
        ),
    },
    {
        "name": "B2B flat fee",
        "type": MarginType.FIXED,
        "fixed_amount": Decimal("75"),
        "priority": 40,
        "conditions": RuleConditions(customer_type=CustomerType.B2B),
    },
    {
        "name": "Hajj season",
        "type": MarginType.PERCENTAGE,
        "value": Decimal("18"),
        "priority": 80,
        "conditions": RuleConditions(
            cities=["Makkah", "Madinah"],
            date_range=DateRange(date(2027, 5, 10), date(2027, 5, 30)),
        ),
    },
]


async def seed():
    engine = build_engine(get_settings())
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        print("Created missing tables.")

    repo = MarginRuleRepoSQL(build_sessionmaker(engine))
    clock = SystemClock()
    manage = ManageMarginRulesUseCase(repo, PricingPolicyEngine(repo, clock), clock)
    for rule in SEED_RULES:
        created = await manage.create(created_by="seed", **rule)
        print(f"Seeded margin rule {created.name} ({created.id})")

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(seed())
