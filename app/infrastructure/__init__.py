"""
Capa de Infraestructura - Motor de cotización y reservación hotelera.

Esta capa contiene las implementaciones concretas de los puertos (interfaces).

Estructura:
- db/: Engine, tablas y repositorios SQL (SQLAlchemy Core + aiosqlite)
- gateways/: Cliente HTTP del proveedor (RateHawk)
- in_memory/: Implementaciones in-memory para desarrollo y testing
- messaging/: Runner de orquestaciones y notificadores
- circuit_breaker.py: Circuit breaker de llamadas al proveedor
"""

from app.infrastructure.in_memory import (
    InMemoryMarginRuleRepo,
    InMemoryReservationLedger,
    StubSupplierGateway,
)
from app.infrastructure.messaging.booking_runner import BookingTaskRunner
from app.infrastructure.messaging.notifier import LoggingNotifier, WebhookNotifier

__all__ = [
    # In-Memory Implementations
    "InMemoryMarginRuleRepo",
    "InMemoryReservationLedger",
    "StubSupplierGateway",
    # Messaging
    "BookingTaskRunner",
    "LoggingNotifier",
    "WebhookNotifier",
]
