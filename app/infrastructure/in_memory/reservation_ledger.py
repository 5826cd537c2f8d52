import asyncio
import copy
from typing import Any

from app.application.interfaces.clock import Clock, SystemClock
from app.application.interfaces.reservation_ledger import ReservationLedger, TransitionEntry
from app.domain.entities.booking_attempt import BookingState
from app.domain.entities.reservation import ReservationRecord, project_status
from app.domain.errors import BookingNotFoundError, InvariantViolationError


class InMemoryReservationLedger(ReservationLedger):
    """Copies on the way in and out so callers never share a mutable record."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self.records: dict[str, ReservationRecord] = {}
        self.transitions: dict[str, list[TransitionEntry]] = {}
        self._lock = asyncio.Lock()

    async def create(self, record: ReservationRecord) -> ReservationRecord:
        async with self._lock:
            existing = self.records.get(record.correlation_id)
            if existing is not None:
                return copy.deepcopy(existing)
            now = self._clock.now()
            stored = copy.deepcopy(record)
            stored.created_at = stored.created_at or now
            stored.updated_at = now
            stored.attempt.created_at = stored.attempt.created_at or now
            stored.attempt.updated_at = now
            stored.status = project_status(stored.attempt.state, stored.attempt.failure_reason)
            self.records[record.correlation_id] = stored
            self.transitions[record.correlation_id] = []
            return copy.deepcopy(stored)

    async def get_current(self, correlation_id: str) -> ReservationRecord | None:
        record = self.records.get(correlation_id)
        return copy.deepcopy(record) if record else None

    async def record_transition(
        self,
        correlation_id: str,
        from_state: BookingState,
        to_state: BookingState,
        payload: dict[str, Any] | None = None,
    ) -> ReservationRecord:
        async with self._lock:
            record = self.records.get(correlation_id)
            if record is None:
                raise BookingNotFoundError(correlation_id)
            if record.attempt.state != from_state:
                raise InvariantViolationError(
                    f"Estado actual de {correlation_id} es {record.attempt.state.value}, "
                    f"se esperaba {from_state.value}"
                )
            now = self._clock.now()
            attempt = record.attempt.transition(to_state, copy.deepcopy(payload), at=now)
            updated = record.with_attempt(attempt, at=now)
            self.records[correlation_id] = updated
            self.transitions[correlation_id].append(
                TransitionEntry(
                    correlation_id=correlation_id,
                    from_state=from_state,
                    to_state=to_state,
                    payload=copy.deepcopy(payload or {}),
                    recorded_at=now,
                )
            )
            return copy.deepcopy(updated)

    async def list_transitions(self, correlation_id: str) -> list[TransitionEntry]:
        return copy.deepcopy(self.transitions.get(correlation_id, []))

    async def list_unfinished(self) -> list[ReservationRecord]:
        return [copy.deepcopy(r) for r in self.records.values() if not r.attempt.is_settled]

    async def set_cancel_requested(self, correlation_id: str) -> ReservationRecord:
        async with self._lock:
            record = self.records.get(correlation_id)
            if record is None:
                raise BookingNotFoundError(correlation_id)
            record.attempt.cancel_requested = True
            record.attempt.updated_at = self._clock.now()
            return copy.deepcopy(record)
