"""DTOs del motor de precios."""

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PriceBreakdown:
    """Desglose del precio final que ve el cliente."""

    base_price: Decimal
    margin_amount: Decimal
    final_price: Decimal
    margin_percentage: Decimal
    currency: str
    rule_id: str | None = None
    rule_name: str | None = None
    rule_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: str(value) if isinstance(value, Decimal) else value for key, value in asdict(self).items()}
