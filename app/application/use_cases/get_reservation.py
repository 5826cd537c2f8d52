from app.application.interfaces.reservation_ledger import ReservationLedger, TransitionEntry
from app.domain.entities.reservation import ReservationRecord
from app.domain.errors import BookingNotFoundError


class GetReservationUseCase:
    def __init__(self, ledger: ReservationLedger) -> None:
        self._ledger = ledger

    async def execute(self, correlation_id: str) -> ReservationRecord:
        record = await self._ledger.get_current(correlation_id)
        if record is None:
            raise BookingNotFoundError(correlation_id)
        return record

    async def transitions(self, correlation_id: str) -> list[TransitionEntry]:
        await self.execute(correlation_id)
        return await self._ledger.list_transitions(correlation_id)
