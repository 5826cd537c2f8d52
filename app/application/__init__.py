"""
Capa de Aplicación - Motor de cotización y reservación hotelera.

Esta capa contiene los casos de uso, DTOs e interfaces (puertos).
Orquesta la lógica de negocio y define los contratos con la infraestructura.

Estructura:
- use_cases/: Casos de uso (reservar, cotizar, administrar reglas)
- services/: Motor de precios y políticas de reintento
- dtos/: Data Transfer Objects
- interfaces/: Puertos (contratos para adaptadores)
"""

from app.application.dtos import PriceBreakdown, StartBookingCommand
from app.application.interfaces import (
    AsyncioScheduler,
    BookingEvent,
    Clock,
    FakeClock,
    FakeScheduler,
    MarginRuleRepo,
    Notifier,
    ReservationLedger,
    Scheduler,
    SupplierGateway,
    SystemClock,
    TransitionEntry,
)

__all__ = [
    # DTOs
    "PriceBreakdown",
    "StartBookingCommand",
    # Interfaces - Repositories
    "MarginRuleRepo",
    "ReservationLedger",
    "TransitionEntry",
    # Interfaces - Gateways
    "SupplierGateway",
    "Notifier",
    "BookingEvent",
    # Interfaces - Utilities
    "Clock",
    "SystemClock",
    "FakeClock",
    "Scheduler",
    "AsyncioScheduler",
    "FakeScheduler",
]
