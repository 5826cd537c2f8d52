"""Puertos de la capa de aplicación."""

from app.application.interfaces.clock import Clock, FakeClock, SystemClock
from app.application.interfaces.margin_rule_repo import MarginRuleRepo
from app.application.interfaces.notifier import BookingEvent, Notifier
from app.application.interfaces.reservation_ledger import ReservationLedger, TransitionEntry
from app.application.interfaces.scheduler import AsyncioScheduler, FakeScheduler, Scheduler
from app.application.interfaces.supplier_gateway import SupplierGateway

__all__ = [
    "AsyncioScheduler",
    "BookingEvent",
    "Clock",
    "FakeClock",
    "FakeScheduler",
    "MarginRuleRepo",
    "Notifier",
    "ReservationLedger",
    "Scheduler",
    "SupplierGateway",
    "SystemClock",
    "TransitionEntry",
]
