import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from app.application.interfaces.clock import Clock, SystemClock
from app.application.interfaces.margin_rule_repo import MarginRuleRepo
from app.application.interfaces.notifier import Notifier
from app.application.interfaces.reservation_ledger import ReservationLedger
from app.application.interfaces.scheduler import AsyncioScheduler, Scheduler
from app.application.interfaces.supplier_gateway import SupplierGateway
from app.application.services.pricing_engine import PricingPolicyEngine
from app.application.services.retry_policy import RetryPolicy
from app.application.use_cases.booking_orchestrator import BookingOrchestrator
from app.application.use_cases.get_reservation import GetReservationUseCase
from app.application.use_cases.manage_margin_rules import ManageMarginRulesUseCase
from app.application.use_cases.search_rates import QuoteRateUseCase, SearchRatesUseCase
from app.application.use_cases.start_booking import StartBookingUseCase
from app.config import Settings
from app.infrastructure.circuit_breaker import build_supplier_breaker
from app.infrastructure.db.engine import build_engine, build_sessionmaker
from app.infrastructure.db.repositories.margin_rule_repo_sql import MarginRuleRepoSQL
from app.infrastructure.db.repositories.reservation_ledger_sql import ReservationLedgerSQL
from app.infrastructure.gateways.ratehawk_gateway import RateHawkGateway
from app.infrastructure.in_memory.margin_rule_repo import InMemoryMarginRuleRepo
from app.infrastructure.in_memory.reservation_ledger import InMemoryReservationLedger
from app.infrastructure.in_memory.supplier_gateway import StubSupplierGateway
from app.infrastructure.messaging.booking_runner import BookingTaskRunner
from app.infrastructure.messaging.notifier import LoggingNotifier, WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Objetos de larga vida construidos una vez por aplicación."""

    settings: Settings
    clock: Clock
    scheduler: Scheduler
    rule_repo: MarginRuleRepo
    ledger: ReservationLedger
    supplier_gateway: SupplierGateway
    notifier: Notifier
    pricing_engine: PricingPolicyEngine
    orchestrator: BookingOrchestrator
    runner: BookingTaskRunner
    use_cases: dict[str, Any]
    engine: AsyncEngine | None = None
    http_clients: list[httpx.AsyncClient] = field(default_factory=list)

    async def close(self) -> None:
        await self.runner.stop()
        for client in self.http_clients:
            await client.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def _build_supplier_gateway(
    settings: Settings, clients: list[httpx.AsyncClient], clock: Clock
) -> SupplierGateway:
    if not (settings.supplier_key_id and settings.supplier_api_key):
        logger.warning("Supplier credentials not configured, using stub supplier")
        return StubSupplierGateway()
    client = httpx.AsyncClient(
        base_url=settings.supplier_base_url,
        auth=(settings.supplier_key_id, settings.supplier_api_key),
        timeout=settings.supplier_timeout_seconds,
    )
    clients.append(client)
    return RateHawkGateway(
        client, build_supplier_breaker(settings), language=settings.supplier_language, clock=clock
    )


def _build_notifier(settings: Settings, clients: list[httpx.AsyncClient]) -> Notifier:
    if not settings.notification_webhook_url:
        return LoggingNotifier()
    client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
    clients.append(client)
    return WebhookNotifier(client, settings.notification_webhook_url)


def build_container(
    settings: Settings,
    clock: Clock | None = None,
    scheduler: Scheduler | None = None,
    supplier_gateway: SupplierGateway | None = None,
    notifier: Notifier | None = None,
    rule_repo: MarginRuleRepo | None = None,
    ledger: ReservationLedger | None = None,
    run_inline: bool = False,
) -> Container:
    """
    Arma el grafo de dependencias.

    Los argumentos opcionales reemplazan el adaptador por defecto; las
    pruebas pasan fakes (reloj, scheduler, proveedor) por aquí.
    """
    clock = clock or (scheduler.clock if scheduler else SystemClock())
    scheduler = scheduler or AsyncioScheduler(clock)
    clients: list[httpx.AsyncClient] = []

    engine = None
    if rule_repo is None or ledger is None:
        if settings.use_in_memory:
            rule_repo = rule_repo or InMemoryMarginRuleRepo()
            ledger = ledger or InMemoryReservationLedger(clock)
        else:
            engine = build_engine(settings)
            session_maker = build_sessionmaker(engine)
            rule_repo = rule_repo or MarginRuleRepoSQL(session_maker)
            ledger = ledger or ReservationLedgerSQL(session_maker, clock)

    supplier_gateway = supplier_gateway or _build_supplier_gateway(settings, clients, clock)
    notifier = notifier or _build_notifier(settings, clients)

    pricing_engine = PricingPolicyEngine(
        rule_repo, clock, cache_ttl_seconds=settings.margin_rules_cache_ttl_seconds
    )
    orchestrator = BookingOrchestrator(
        ledger=ledger,
        supplier_gateway=supplier_gateway,
        pricing_engine=pricing_engine,
        notifier=notifier,
        scheduler=scheduler,
        transport_policy=RetryPolicy(
            max_attempts=settings.supplier_retry_attempts,
            interval_seconds=settings.supplier_retry_interval_seconds,
            backoff_multiplier=settings.supplier_retry_backoff,
        ),
        poll_policy=RetryPolicy(
            max_attempts=settings.poll_max_attempts,
            interval_seconds=settings.poll_interval_seconds,
            jitter_seconds=settings.poll_jitter_seconds,
        ),
        price_change_tolerance_percent=settings.price_change_tolerance_percent,
    )
    runner = BookingTaskRunner(orchestrator, ledger, run_inline=run_inline)

    use_cases = {
        "start_booking": StartBookingUseCase(ledger, pricing_engine, runner),
        "get_reservation": GetReservationUseCase(ledger),
        "search_rates": SearchRatesUseCase(supplier_gateway, pricing_engine),
        "quote_rate": QuoteRateUseCase(pricing_engine),
        "manage_margin_rules": ManageMarginRulesUseCase(rule_repo, pricing_engine, clock),
        "orchestrator": orchestrator,
    }
    return Container(
        settings=settings,
        clock=clock,
        scheduler=scheduler,
        rule_repo=rule_repo,
        ledger=ledger,
        supplier_gateway=supplier_gateway,
        notifier=notifier,
        pricing_engine=pricing_engine,
        orchestrator=orchestrator,
        runner=runner,
        use_cases=use_cases,
        engine=engine,
        http_clients=clients,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_use_cases(request: Request) -> dict[str, Any]:
    return get_container(request).use_cases
