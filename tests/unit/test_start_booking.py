from datetime import date
from decimal import Decimal

import pytest

from app.application.interfaces.booking_dispatcher import BookingDispatcher
from app.application.use_cases.get_reservation import GetReservationUseCase
from app.application.use_cases.start_booking import StartBookingUseCase
from app.domain.entities.booking_attempt import BookingState, GuestDetails
from app.domain.entities.margin_rule import CustomerType, MarginType, RuleConditions
from app.domain.entities.reservation import ReservationStatus
from app.domain.errors import BookingNotFoundError, IdempotencyConflictError, ValidationError


class RecordingDispatcher(BookingDispatcher):
    def __init__(self) -> None:
        self.dispatched: list[str] = []

    async def dispatch(self, correlation_id: str) -> bool:
        self.dispatched.append(correlation_id)
        return True


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def use_case(ledger, pricing_engine, dispatcher) -> StartBookingUseCase:
    return StartBookingUseCase(ledger, pricing_engine, dispatcher)


class TestStartBooking:
    @pytest.mark.asyncio
    async def test_creates_quoted_attempt_and_dispatches(self, use_case, dispatcher, make_command):
        record = await use_case.execute(make_command())

        assert record.state == BookingState.QUOTED
        assert record.status == ReservationStatus.PENDING
        assert record.reservation_code.startswith("HB-")
        assert record.guest_count == 2
        assert dispatcher.dispatched == ["cid-00000001"]

    @pytest.mark.asyncio
    async def test_prices_with_matching_rule(self, use_case, manage_rules, make_command):
        await manage_rules.create(name="Default", type=MarginType.PERCENTAGE, value=Decimal("10"), priority=1)
        b2b = await manage_rules.create(
            name="B2B",
            type=MarginType.FIXED,
            fixed_amount=Decimal("75"),
            priority=5,
            conditions=RuleConditions(customer_type=CustomerType.B2B),
        )

        b2c_record = await use_case.execute(make_command("cid-b2c-0001"))
        b2b_record = await use_case.execute(make_command("cid-b2b-0001", customer_type="b2b"))

        assert b2c_record.customer_price == Decimal("1100.00")
        assert b2b_record.customer_price == Decimal("1075.00")
        assert b2b_record.attempt.margin_rule_id == b2b.id

    @pytest.mark.asyncio
    async def test_replay_returns_same_reservation(self, use_case, dispatcher, make_command):
        first = await use_case.execute(make_command())
        second = await use_case.execute(make_command())

        assert second.reservation_code == first.reservation_code
        # Not settled yet, so the replay resumes the orchestration.
        assert dispatcher.dispatched == ["cid-00000001", "cid-00000001"]

    @pytest.mark.asyncio
    async def test_settled_replay_is_not_dispatched(self, use_case, dispatcher, ledger, make_command):
        await use_case.execute(make_command())
        await ledger.record_transition(
            "cid-00000001", BookingState.QUOTED, BookingState.FAILED, {"failure_reason": "abandoned"}
        )

        record = await use_case.execute(make_command())

        assert record.state == BookingState.FAILED
        assert dispatcher.dispatched == ["cid-00000001"]

    @pytest.mark.asyncio
    async def test_same_correlation_id_different_rate_conflicts(self, use_case, make_command):
        await use_case.execute(make_command())

        with pytest.raises(IdempotencyConflictError):
            await use_case.execute(make_command(match_hash="m-other"))

    @pytest.mark.asyncio
    async def test_invalid_dates(self, use_case, dispatcher, make_command):
        with pytest.raises(ValidationError) as exc:
            await use_case.execute(make_command(check_out=date(2026, 3, 10)))

        assert exc.value.field == "check_out"
        assert dispatcher.dispatched == []

    @pytest.mark.asyncio
    async def test_requires_guests(self, use_case, make_command):
        empty = GuestDetails(email="a@example.com", phone="+966500000000", rooms=[[]])

        with pytest.raises(ValidationError):
            await use_case.execute(make_command(guest_details=empty))


class TestGetReservation:
    @pytest.mark.asyncio
    async def test_get_and_transitions(self, use_case, ledger, make_command):
        await use_case.execute(make_command())
        await ledger.record_transition("cid-00000001", BookingState.QUOTED, BookingState.LOCKING)
        get_reservation = GetReservationUseCase(ledger)

        record = await get_reservation.execute("cid-00000001")
        transitions = await get_reservation.transitions("cid-00000001")

        assert record.state == BookingState.LOCKING
        assert [t.to_state for t in transitions] == [BookingState.LOCKING]

    @pytest.mark.asyncio
    async def test_not_found(self, ledger):
        with pytest.raises(BookingNotFoundError):
            await GetReservationUseCase(ledger).execute("missing")
