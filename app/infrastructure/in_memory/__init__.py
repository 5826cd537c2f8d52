"""Implementaciones in-memory para desarrollo y testing."""

from app.infrastructure.in_memory.margin_rule_repo import InMemoryMarginRuleRepo
from app.infrastructure.in_memory.reservation_ledger import InMemoryReservationLedger
from app.infrastructure.in_memory.supplier_gateway import StubSupplierGateway

__all__ = [
    "InMemoryMarginRuleRepo",
    "InMemoryReservationLedger",
    "StubSupplierGateway",
]
