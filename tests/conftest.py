"""
Pytest configuration and shared fixtures.

Este módulo provee fixtures reutilizables para:
- Reloj y scheduler falsos (los sondeos nunca duermen de verdad)
- Adaptadores in-memory (ledger, reglas de margen, proveedor stub)
- Orquestador armado con políticas de reintento cortas
- Cliente HTTP de prueba (FastAPI TestClient) con orquestación inline
- Base de datos SQLite temporal para los adaptadores SQL
"""

from datetime import date
from decimal import Decimal
from typing import Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from app.api.dependencies import build_container
from app.application.dtos.booking_dto import StartBookingCommand
from app.application.interfaces.scheduler import FakeScheduler
from app.application.services.pricing_engine import PricingPolicyEngine
from app.application.services.retry_policy import RetryPolicy
from app.application.use_cases.booking_orchestrator import BookingOrchestrator
from app.application.use_cases.manage_margin_rules import ManageMarginRulesUseCase
from app.config import Settings
from app.domain.entities.booking_attempt import Guest, GuestDetails
from app.infrastructure.db.engine import build_engine, build_sessionmaker
from app.infrastructure.db.tables import metadata
from app.infrastructure.in_memory.margin_rule_repo import InMemoryMarginRuleRepo
from app.infrastructure.in_memory.reservation_ledger import InMemoryReservationLedger
from app.infrastructure.in_memory.supplier_gateway import StubSupplierGateway
from app.infrastructure.messaging.notifier import LoggingNotifier

# ============================================================================
# FIXTURES DE INFRAESTRUCTURA FALSA
# ============================================================================


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock(scheduler):
    return scheduler.clock


@pytest.fixture
def rule_repo() -> InMemoryMarginRuleRepo:
    return InMemoryMarginRuleRepo()


@pytest.fixture
def ledger(clock) -> InMemoryReservationLedger:
    return InMemoryReservationLedger(clock)


@pytest.fixture
def supplier() -> StubSupplierGateway:
    return StubSupplierGateway()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def pricing_engine(rule_repo, clock) -> PricingPolicyEngine:
    return PricingPolicyEngine(rule_repo, clock)


@pytest.fixture
def manage_rules(rule_repo, pricing_engine, clock) -> ManageMarginRulesUseCase:
    return ManageMarginRulesUseCase(rule_repo, pricing_engine, clock)


@pytest.fixture
def orchestrator(ledger, supplier, pricing_engine, notifier, scheduler) -> BookingOrchestrator:
    return BookingOrchestrator(
        ledger=ledger,
        supplier_gateway=supplier,
        pricing_engine=pricing_engine,
        notifier=notifier,
        scheduler=scheduler,
        transport_policy=RetryPolicy(max_attempts=3, interval_seconds=1.0),
        poll_policy=RetryPolicy(max_attempts=4, interval_seconds=2.0),
    )


# ============================================================================
# FIXTURES DE DATOS DE PRUEBA
# ============================================================================


@pytest.fixture
def guest_details() -> GuestDetails:
    return GuestDetails(
        email="guest@example.com",
        phone="+966500000000",
        rooms=[[Guest("Sara", "Alharbi"), Guest("Omar", "Alharbi")]],
    )


@pytest.fixture
def make_command(guest_details):
    """Fabrica comandos de reservación con valores por defecto razonables."""

    def _make(correlation_id: str = "cid-00000001", **overrides) -> StartBookingCommand:
        values = dict(
            correlation_id=correlation_id,
            hotel_id="hotel-riyadh-1",
            check_in=date(2026, 3, 10),
            check_out=date(2026, 3, 12),
            match_hash="m-deluxe",
            supplier_price=Decimal("1000.00"),
            currency="SAR",
            guest_details=guest_details,
            hotel_name="Riyadh Grand",
            room_name="Deluxe King",
            meal_type="breakfast",
            country="SA",
            city="Riyadh",
            star_rating=5,
        )
        values.update(overrides)
        return StartBookingCommand(**values)

    return _make


@pytest.fixture
def booking_payload() -> dict:
    """Payload de ejemplo para POST /api/v1/bookings."""
    return {
        "correlation_id": "cid-http-0001",
        "hotel_id": "hotel-riyadh-1",
        "check_in": "2026-03-10",
        "check_out": "2026-03-12",
        "match_hash": "m-deluxe",
        "supplier_price": "1000.00",
        "currency": "SAR",
        "guest_details": {
            "email": "guest@example.com",
            "phone": "+966500000000",
            "rooms": [[{"first_name": "Sara", "last_name": "Alharbi"}]],
        },
        "hotel_name": "Riyadh Grand",
        "room_name": "Deluxe King",
        "meal_type": "breakfast",
        "country": "SA",
        "city": "Riyadh",
        "star_rating": 5,
    }


# ============================================================================
# FIXTURES DE CLIENTE HTTP
# ============================================================================


@pytest.fixture
def container(supplier, scheduler, notifier):
    """Contenedor in-memory; cada reservación se orquesta dentro del request."""
    return build_container(
        Settings(use_in_memory=True, poll_max_attempts=3, supplier_retry_attempts=2),
        scheduler=scheduler,
        supplier_gateway=supplier,
        notifier=notifier,
        run_inline=True,
    )


@pytest.fixture
def client(container) -> Generator[TestClient, None, None]:
    from app.main import create_app

    with TestClient(create_app(container=container)) as test_client:
        yield test_client


# ============================================================================
# FIXTURES DE BASE DE DATOS
# ============================================================================


@pytest_asyncio.fixture
async def sql_engine(tmp_path):
    """
    Base SQLite en un archivo temporal.

    Un archivo (y no :memory:) permite que varias conexiones vean las mismas tablas.
    """
    engine = build_engine(Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(sql_engine):
    return build_sessionmaker(sql_engine)


# ============================================================================
# MARKERS DE PYTEST
# ============================================================================


def pytest_configure(config):
    """
    Configurar markers personalizados de pytest.
    """
    config.addinivalue_line(
        "markers",
        "integration: Tests de integración contra una base de datos real (aiosqlite)"
    )
    config.addinivalue_line(
        "markers",
        "deadlock: Tests del reintento ante deadlocks"
    )
    config.addinivalue_line(
        "markers",
        "circuit_breaker: Tests del circuit breaker del proveedor"
    )
