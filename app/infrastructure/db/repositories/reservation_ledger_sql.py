import logging
from datetime import datetime
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.interfaces.clock import Clock, SystemClock
from app.application.interfaces.reservation_ledger import ReservationLedger, TransitionEntry
from app.domain.entities.booking_attempt import SETTLED_STATES, BookingState
from app.domain.entities.reservation import ReservationRecord, ReservationStatus
from app.domain.errors import BookingNotFoundError, InvariantViolationError
from app.infrastructure.db.codecs import decode_attempt, encode_attempt, to_jsonable
from app.infrastructure.db.engine import session_scope
from app.infrastructure.db.retry import with_deadlock_retry
from app.infrastructure.db.tables import reservation_transitions, reservations

logger = logging.getLogger(__name__)

_CAS_ATTEMPTS = 3


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo else value


def _row_values(record: ReservationRecord) -> dict[str, Any]:
    attempt = record.attempt
    return {
        "reservation_code": record.reservation_code,
        "correlation_id": attempt.correlation_id,
        "hotel_id": record.hotel_id,
        "hotel_name": record.hotel_name,
        "room_name": record.room_name,
        "meal_type": record.meal_type,
        "check_in": record.check_in,
        "check_out": record.check_out,
        "guest_count": record.guest_count,
        "state": attempt.state.value,
        "status": record.status.value,
        "customer_price": attempt.customer_price,
        "currency_code": attempt.currency,
        "supplier_order_id": attempt.order_id,
        "attempt": encode_attempt(attempt),
    }


def _from_row(data) -> ReservationRecord:
    return ReservationRecord(
        reservation_code=data["reservation_code"],
        hotel_id=data["hotel_id"],
        hotel_name=data["hotel_name"],
        room_name=data["room_name"],
        meal_type=data["meal_type"],
        check_in=data["check_in"],
        check_out=data["check_out"],
        guest_count=data["guest_count"],
        attempt=decode_attempt(data["attempt"]),
        status=ReservationStatus(data["status"]),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


class ReservationLedgerSQL(ReservationLedger):
    """
    Ledger sobre SQLAlchemy Core.

    Cada transición es su propia unidad de trabajo: el UPDATE condicionado
    al estado anterior (compare-and-set) y la fila de auditoría se confirman
    juntos antes de que el orquestador continúe.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._clock = clock or SystemClock()

    async def create(self, record: ReservationRecord) -> ReservationRecord:
        now = _naive(self._clock.now())
        record.attempt.created_at = record.attempt.created_at or now
        record.attempt.updated_at = now
        record = record.with_attempt(record.attempt, at=now)
        record.created_at = record.created_at or now
        try:
            async with session_scope(self._session_maker) as session:
                await session.execute(
                    insert(reservations).values(
                        **_row_values(record), created_at=record.created_at, updated_at=now
                    )
                )
        except IntegrityError:
            existing = await self.get_current(record.correlation_id)
            if existing is None:
                raise
            logger.info("Reservation already exists", extra={"correlation_id": record.correlation_id})
            return existing
        return await self.get_current(record.correlation_id)

    async def get_current(self, correlation_id: str) -> ReservationRecord | None:
        async with self._session_maker() as session:
            result = await session.execute(
                select(reservations).where(reservations.c.correlation_id == correlation_id)
            )
            row = result.first()
        return _from_row(row._mapping) if row else None

    async def _load(self, session: AsyncSession, correlation_id: str) -> tuple[ReservationRecord, int]:
        result = await session.execute(
            select(reservations).where(reservations.c.correlation_id == correlation_id)
        )
        row = result.first()
        if row is None:
            raise BookingNotFoundError(correlation_id)
        return _from_row(row._mapping), row._mapping["lock_version"]

    @with_deadlock_retry()
    async def record_transition(
        self,
        correlation_id: str,
        from_state: BookingState,
        to_state: BookingState,
        payload: dict[str, Any] | None = None,
    ) -> ReservationRecord:
        # A version bump that leaves the state alone (the abandon flag) is
        # merged by re-reading; a state change by another writer is a conflict.
        for _ in range(_CAS_ATTEMPTS):
            now = _naive(self._clock.now())
            async with session_scope(self._session_maker) as session:
                record, version = await self._load(session, correlation_id)
                if record.attempt.state != from_state:
                    raise InvariantViolationError(
                        f"Estado actual de {correlation_id} es {record.attempt.state.value}, "
                        f"se esperaba {from_state.value}"
                    )

                attempt = record.attempt.transition(to_state, payload, at=now)
                updated = record.with_attempt(attempt, at=now)
                values = _row_values(updated)
                cas = await session.execute(
                    update(reservations)
                    .where(
                        reservations.c.correlation_id == correlation_id,
                        reservations.c.state == from_state.value,
                        reservations.c.lock_version == version,
                    )
                    .values(
                        state=values["state"],
                        status=values["status"],
                        supplier_order_id=values["supplier_order_id"],
                        customer_price=values["customer_price"],
                        attempt=values["attempt"],
                        lock_version=version + 1,
                        updated_at=now,
                    )
                )
                if cas.rowcount == 0:
                    logger.warning(
                        "Reservation changed during transition, re-reading",
                        extra={"correlation_id": correlation_id, "from_state": from_state.value},
                    )
                    continue
                await session.execute(
                    insert(reservation_transitions).values(
                        correlation_id=correlation_id,
                        from_state=from_state.value,
                        to_state=to_state.value,
                        payload=to_jsonable(payload or {}),
                        recorded_at=now,
                    )
                )
            return updated
        raise InvariantViolationError(
            f"Transición concurrente detectada para {correlation_id} desde {from_state.value}"
        )

    async def list_transitions(self, correlation_id: str) -> list[TransitionEntry]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(reservation_transitions)
                .where(reservation_transitions.c.correlation_id == correlation_id)
                .order_by(reservation_transitions.c.id)
            )
            rows = result.all()
        return [
            TransitionEntry(
                correlation_id=row.correlation_id,
                from_state=BookingState(row.from_state),
                to_state=BookingState(row.to_state),
                payload=row.payload or {},
                recorded_at=row.recorded_at,
            )
            for row in rows
        ]

    async def list_unfinished(self) -> list[ReservationRecord]:
        settled = [state.value for state in SETTLED_STATES]
        async with self._session_maker() as session:
            result = await session.execute(
                select(reservations)
                .where(reservations.c.state.not_in(settled))
                .order_by(reservations.c.created_at)
            )
            rows = result.all()
        return [_from_row(row._mapping) for row in rows]

    async def set_cancel_requested(self, correlation_id: str) -> ReservationRecord:
        # Concurrent transitions bump lock_version; re-read and try again.
        for _ in range(_CAS_ATTEMPTS):
            now = _naive(self._clock.now())
            async with session_scope(self._session_maker) as session:
                record, version = await self._load(session, correlation_id)
                record.attempt.cancel_requested = True
                record.attempt.updated_at = now
                written = await session.execute(
                    update(reservations)
                    .where(
                        reservations.c.correlation_id == correlation_id,
                        reservations.c.lock_version == version,
                    )
                    .values(
                        attempt=encode_attempt(record.attempt),
                        lock_version=version + 1,
                        updated_at=now,
                    )
                )
            if written.rowcount == 1:
                record.updated_at = now
                return record
        raise InvariantViolationError(f"No se pudo marcar el abandono de {correlation_id}")
