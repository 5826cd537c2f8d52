"""Interface Notifier - colaborador externo de notificaciones."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

EVENT_CONFIRMED = "booking.confirmed"
EVENT_FAILED = "booking.failed"
EVENT_CANCELLED = "booking.cancelled"


@dataclass
class BookingEvent:
    """Un evento por estado terminal, con contacto y desglose de precio."""

    event_type: str
    reservation_code: str
    correlation_id: str
    status: str
    contact_email: str | None = None
    contact_phone: str | None = None
    price: dict[str, Any] = field(default_factory=dict)
    failure_reason: str | None = None


class Notifier(ABC):
    """
    La entrega (email, WhatsApp, push) es responsabilidad del colaborador.
    Sus fallas nunca revierten una reservación confirmada.
    """

    @abstractmethod
    async def publish(self, event: BookingEvent) -> None:
        raise NotImplementedError
