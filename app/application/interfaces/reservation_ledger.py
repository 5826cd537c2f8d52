from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.entities.booking_attempt import BookingState
from app.domain.entities.reservation import ReservationRecord


@dataclass
class TransitionEntry:
    correlation_id: str
    from_state: BookingState
    to_state: BookingState
    payload: dict[str, Any] = field(default_factory=dict)
    recorded_at: datetime | None = None


class ReservationLedger(ABC):
    """
    Registro durable de reservaciones y de sus transiciones.

    Cada transición se persiste antes de que el orquestador haga la
    siguiente llamada remota (write-ahead).
    """

    @abstractmethod
    async def create(self, record: ReservationRecord) -> ReservationRecord:
        """Idempotent on correlation id: returns the existing record if present."""
        pass

    @abstractmethod
    async def get_current(self, correlation_id: str) -> ReservationRecord | None:
        pass

    @abstractmethod
    async def record_transition(
        self,
        correlation_id: str,
        from_state: BookingState,
        to_state: BookingState,
        payload: dict[str, Any] | None = None,
    ) -> ReservationRecord:
        """
        Compare-and-set on from_state; payload fields are merged into the attempt.

        Raises:
            BookingNotFoundError: unknown correlation id.
            InvariantViolationError: current state differs from from_state or
                the transition is not allowed.
        """
        pass

    @abstractmethod
    async def list_transitions(self, correlation_id: str) -> list[TransitionEntry]:
        pass

    @abstractmethod
    async def list_unfinished(self) -> list[ReservationRecord]:
        """Records whose attempt has not settled (restart recovery)."""
        pass

    @abstractmethod
    async def set_cancel_requested(self, correlation_id: str) -> ReservationRecord:
        pass
