"""
Tests del orquestador de reservaciones.

Escenarios con proveedor stub, ledger in-memory y scheduler falso:
confirmación, cambio de precio, restricción sandbox, fallas transitorias,
timeout de sondeo y reconsulta, abandono, reanudación y cancelación.
"""

from decimal import Decimal

import pytest

from app.application.interfaces.booking_dispatcher import BookingDispatcher
from app.application.interfaces.notifier import (
    EVENT_CANCELLED,
    EVENT_CONFIRMED,
    EVENT_FAILED,
    BookingEvent,
    Notifier,
)
from app.application.services.retry_policy import RetryPolicy
from app.application.use_cases.booking_orchestrator import BookingOrchestrator
from app.application.use_cases.start_booking import StartBookingUseCase
from app.domain.entities.booking_attempt import BookingState, FailureReason, PaymentSelection
from app.domain.entities.margin_rule import MarginType
from app.domain.entities.reservation import ReservationStatus
from app.domain.errors import (
    BookingNotFoundError,
    InvariantViolationError,
    SupplierRejectedError,
    SupplierTransientError,
)


class RecordingDispatcher(BookingDispatcher):
    def __init__(self) -> None:
        self.dispatched: list[str] = []

    async def dispatch(self, correlation_id: str) -> bool:
        self.dispatched.append(correlation_id)
        return True


class BrokenNotifier(Notifier):
    async def publish(self, event: BookingEvent) -> None:
        raise ConnectionError("notification service down")


@pytest.fixture
def start_booking(ledger, pricing_engine):
    return StartBookingUseCase(ledger, pricing_engine, RecordingDispatcher())


@pytest.fixture
def create_attempt(start_booking, make_command):
    async def _create(correlation_id: str = "cid-00000001", **overrides):
        return await start_booking.execute(make_command(correlation_id, **overrides))

    return _create


def _event_types(notifier) -> list[str]:
    return [event.event_type for event in notifier.events]


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_confirms_booking(self, orchestrator, create_attempt, supplier, ledger, notifier):
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.status == ReservationStatus.CONFIRMED
        assert record.attempt.order_id == supplier.orders["cid-00000001"]
        assert supplier.call_count("start_booking") == 1
        assert _event_types(notifier) == [EVENT_CONFIRMED]

        transitions = await ledger.list_transitions("cid-00000001")
        assert [(t.from_state, t.to_state) for t in transitions] == [
            (BookingState.QUOTED, BookingState.LOCKING),
            (BookingState.LOCKING, BookingState.LOCKED),
            (BookingState.LOCKED, BookingState.CREATING),
            (BookingState.CREATING, BookingState.AWAITING_GUEST_CONFIRM),
            (BookingState.AWAITING_GUEST_CONFIRM, BookingState.SUBMITTING),
            (BookingState.SUBMITTING, BookingState.POLLING),
            (BookingState.POLLING, BookingState.CONFIRMED),
        ]

    @pytest.mark.asyncio
    async def test_margin_applied_and_attributed_once(
        self, orchestrator, create_attempt, manage_rules, rule_repo, supplier
    ):
        rule = await manage_rules.create(name="Riyadh 10%", type=MarginType.PERCENTAGE, value=Decimal("10"))
        created = await create_attempt()
        assert created.customer_price == Decimal("1100.00")

        await orchestrator.run("cid-00000001")
        replay = await orchestrator.run("cid-00000001")

        stored = await rule_repo.get(rule.id)
        assert replay.state == BookingState.CONFIRMED
        assert stored.applied_count == 1
        assert stored.total_revenue_generated == Decimal("100.00")
        start_calls = [kwargs for name, kwargs in supplier.calls if name == "start_booking"]
        assert len(start_calls) == 1
        assert start_calls[0]["amount"] == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_deleted_rule_does_not_break_confirmation(
        self, orchestrator, create_attempt, manage_rules, notifier
    ):
        rule = await manage_rules.create(name="Riyadh 10%", type=MarginType.PERCENTAGE, value=Decimal("10"))
        await create_attempt()
        await manage_rules.delete(rule.id)

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.customer_price == Decimal("1100.00")
        assert _event_types(notifier) == [EVENT_CONFIRMED]

    @pytest.mark.asyncio
    async def test_search_book_hash_skips_prebook(self, orchestrator, create_attempt, supplier):
        await create_attempt(book_hash="h-from-search")

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert supplier.call_count("prebook") == 0
        form_call = next(kwargs for name, kwargs in supplier.calls if name == "create_booking_form")
        assert form_call["book_hash"] == "h-from-search"

    @pytest.mark.asyncio
    async def test_lower_locked_price_keeps_quoted_customer_price(self, orchestrator, create_attempt, supplier):
        supplier.lock_price = Decimal("900.00")
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.attempt.locked_price == Decimal("900.00")
        assert record.customer_price == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_affect_outcome(
        self, ledger, supplier, pricing_engine, scheduler, create_attempt
    ):
        orchestrator = BookingOrchestrator(ledger, supplier, pricing_engine, BrokenNotifier(), scheduler)
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED

    @pytest.mark.asyncio
    async def test_unknown_correlation_id(self, orchestrator):
        with pytest.raises(BookingNotFoundError):
            await orchestrator.run("missing")


class TestLockFailures:
    @pytest.mark.asyncio
    async def test_price_increase_fails_with_price_changed(self, orchestrator, create_attempt, supplier, notifier):
        supplier.lock_price = Decimal("1050.00")
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.FAILED
        assert record.attempt.failure_reason == FailureReason.PRICE_CHANGED
        assert record.status == ReservationStatus.DENIED
        assert supplier.call_count("create_booking_form") == 0
        assert _event_types(notifier) == [EVENT_FAILED]

    @pytest.mark.asyncio
    async def test_price_increase_within_tolerance(
        self, ledger, supplier, pricing_engine, notifier, scheduler, create_attempt
    ):
        orchestrator = BookingOrchestrator(
            ledger, supplier, pricing_engine, notifier, scheduler, price_change_tolerance_percent=Decimal("5")
        )
        supplier.lock_price = Decimal("1050.00")
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED

    @pytest.mark.asyncio
    async def test_transient_prebook_is_retried(self, orchestrator, create_attempt, supplier, scheduler):
        supplier.fail("prebook", SupplierTransientError("prebook", "timeout"))
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert supplier.call_count("prebook") == 2
        assert scheduler.sleeps[0] == 1.0

    @pytest.mark.asyncio
    async def test_transient_prebook_exhausted(self, orchestrator, create_attempt, supplier):
        supplier.fail("prebook", *[SupplierTransientError("prebook", "http_503")] * 3)
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.FAILED
        assert record.attempt.failure_reason == FailureReason.SUPPLIER_UNAVAILABLE
        assert record.attempt.failure_code == "http_503"
        assert supplier.call_count("prebook") == 3

    @pytest.mark.asyncio
    async def test_non_refundable_rate_rejected_when_required(self, orchestrator, create_attempt, supplier):
        supplier.lock_refundable = False
        await create_attempt(require_refundable=True)

        record = await orchestrator.run("cid-00000001")

        assert record.attempt.failure_reason == FailureReason.NON_REFUNDABLE_RATE
        assert supplier.call_count("create_booking_form") == 0


class TestBookingFormAndSubmit:
    @pytest.mark.asyncio
    async def test_sandbox_restriction_is_not_retried(self, orchestrator, create_attempt, supplier):
        supplier.form_error = "sandbox_restriction"
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.FAILED
        assert record.attempt.failure_reason == FailureReason.SANDBOX_RESTRICTION
        assert supplier.call_count("create_booking_form") == 1
        assert supplier.call_count("start_booking") == 0

    @pytest.mark.asyncio
    async def test_payment_type_not_offered(self, orchestrator, create_attempt, supplier):
        await create_attempt(payment_selection=PaymentSelection(type="now", currency="SAR"))

        record = await orchestrator.run("cid-00000001")

        assert record.attempt.failure_reason == FailureReason.INVALID_PAYMENT_SELECTION
        assert supplier.call_count("start_booking") == 0

    @pytest.mark.asyncio
    async def test_transient_submit_is_never_resent(self, orchestrator, create_attempt, supplier):
        supplier.fail("start_booking", SupplierTransientError("start_booking", "timeout"))
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert supplier.call_count("start_booking") == 1
        assert supplier.call_count("check_booking_status") == 1

    @pytest.mark.asyncio
    async def test_rejected_submit_fails(self, orchestrator, create_attempt, supplier):
        supplier.fail("start_booking", SupplierRejectedError("start_booking", "booking_form_expired"))
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.attempt.failure_reason == FailureReason.SUPPLIER_ERROR
        assert record.attempt.failure_code == "booking_form_expired"
        assert supplier.call_count("check_booking_status") == 0


class TestPolling:
    @pytest.mark.asyncio
    async def test_processing_then_ok(self, orchestrator, create_attempt, supplier, scheduler):
        supplier.status_sequence = ["processing", "processing", "ok"]
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert supplier.call_count("check_booking_status") == 3
        assert scheduler.sleeps[-2:] == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_failed_status_read_counts_as_processing(self, orchestrator, create_attempt, supplier):
        supplier.fail("check_booking_status", SupplierTransientError("check_booking_status", "timeout"))
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert supplier.call_count("check_booking_status") == 2

    @pytest.mark.asyncio
    async def test_status_error_maps_failure_reason(self, orchestrator, create_attempt, supplier):
        supplier.status_sequence = ["processing", "error"]
        supplier.status_error_code = "sandbox_restriction"
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.attempt.failure_reason == FailureReason.SANDBOX_RESTRICTION
        assert record.status == ReservationStatus.DENIED

    @pytest.mark.asyncio
    async def test_poll_exhaustion_times_out_as_pending(
        self, orchestrator, create_attempt, supplier, scheduler, notifier, rule_repo, manage_rules
    ):
        rule = await manage_rules.create(name="Flat", type=MarginType.FIXED, fixed_amount=Decimal("50"))
        supplier.status_sequence = ["processing"]
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.FAILED
        assert record.attempt.failure_reason == FailureReason.TIMEOUT
        assert record.status == ReservationStatus.PENDING
        assert supplier.call_count("check_booking_status") == 4
        assert scheduler.sleeps[-3:] == [2.0, 2.0, 2.0]
        assert _event_types(notifier) == [EVENT_FAILED]
        assert (await rule_repo.get(rule.id)).applied_count == 0


    @pytest.mark.asyncio
    async def test_reference_poll_budget(
        self, ledger, supplier, pricing_engine, notifier, scheduler, create_attempt
    ):
        """Presupuesto por defecto: 10 lecturas de estado cada 2 s."""
        orchestrator = BookingOrchestrator(ledger, supplier, pricing_engine, notifier, scheduler)
        supplier.status_sequence = ["processing"]
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert record.attempt.failure_reason == FailureReason.TIMEOUT
        assert record.status == ReservationStatus.PENDING
        assert supplier.call_count("check_booking_status") == 10
        assert scheduler.sleeps == [2.0] * 9
        assert scheduler.total_slept <= 20.0


class TestRecheck:
    @pytest.mark.asyncio
    async def test_recheck_confirms_timed_out_booking(
        self, orchestrator, create_attempt, supplier, notifier, manage_rules, rule_repo
    ):
        rule = await manage_rules.create(name="Flat", type=MarginType.FIXED, fixed_amount=Decimal("50"))
        supplier.status_sequence = ["processing"]
        await create_attempt()
        await orchestrator.run("cid-00000001")

        supplier.status_sequence = ["ok"]
        record = await orchestrator.recheck("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.attempt.failure_reason is None
        assert (await rule_repo.get(rule.id)).applied_count == 1
        assert _event_types(notifier) == [EVENT_FAILED, EVENT_CONFIRMED]

    @pytest.mark.asyncio
    async def test_recheck_confirms_even_if_rule_was_deleted(
        self, orchestrator, create_attempt, supplier, notifier, manage_rules
    ):
        """Borrar la regla ganadora no impide confirmar ni notificar."""
        rule = await manage_rules.create(name="Flat", type=MarginType.FIXED, fixed_amount=Decimal("50"))
        supplier.status_sequence = ["processing"]
        await create_attempt()
        await orchestrator.run("cid-00000001")
        await manage_rules.delete(rule.id)

        supplier.status_sequence = ["ok"]
        record = await orchestrator.recheck("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.attempt.margin_rule_id == rule.id
        assert _event_types(notifier) == [EVENT_FAILED, EVENT_CONFIRMED]

    @pytest.mark.asyncio
    async def test_recheck_still_processing_leaves_record(self, orchestrator, create_attempt, supplier):
        supplier.status_sequence = ["processing"]
        await create_attempt()
        await orchestrator.run("cid-00000001")

        record = await orchestrator.recheck("cid-00000001")

        assert record.state == BookingState.FAILED
        assert record.attempt.failure_reason == FailureReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_recheck_only_for_timeouts(self, orchestrator, create_attempt):
        await create_attempt()
        await orchestrator.run("cid-00000001")

        with pytest.raises(InvariantViolationError):
            await orchestrator.recheck("cid-00000001")


class TestAbandon:
    @pytest.mark.asyncio
    async def test_abandon_before_lock(self, orchestrator, create_attempt, supplier):
        await create_attempt()

        _, accepted = await orchestrator.request_abandon("cid-00000001")
        record = await orchestrator.run("cid-00000001")

        assert accepted
        assert record.attempt.failure_reason == FailureReason.ABANDONED
        assert supplier.call_count("prebook") == 0

    @pytest.mark.asyncio
    async def test_abandon_at_booking_form_checkpoint(self, orchestrator, create_attempt, ledger, supplier):
        await create_attempt()
        await ledger.record_transition("cid-00000001", BookingState.QUOTED, BookingState.LOCKING)
        await ledger.record_transition(
            "cid-00000001", BookingState.LOCKING, BookingState.LOCKED, {"book_hash": "h-1", "is_refundable": True}
        )

        await orchestrator.request_abandon("cid-00000001")
        record = await orchestrator.run("cid-00000001")

        assert record.attempt.failure_reason == FailureReason.ABANDONED
        assert supplier.call_count("create_booking_form") == 0

    @pytest.mark.asyncio
    async def test_abandon_ignored_after_submit(self, orchestrator, create_attempt):
        await create_attempt()
        await orchestrator.run("cid-00000001")

        record, accepted = await orchestrator.request_abandon("cid-00000001")

        assert not accepted
        assert not record.attempt.cancel_requested
        assert record.state == BookingState.CONFIRMED


class TestResume:
    @pytest.mark.asyncio
    async def test_resume_from_submitting_polls_instead_of_resubmitting(
        self, orchestrator, create_attempt, ledger, supplier
    ):
        await create_attempt()
        for from_state, to_state, payload in [
            (BookingState.QUOTED, BookingState.LOCKING, None),
            (BookingState.LOCKING, BookingState.LOCKED, {"book_hash": "h-1"}),
            (BookingState.LOCKED, BookingState.CREATING, None),
            (BookingState.CREATING, BookingState.AWAITING_GUEST_CONFIRM, {"order_id": "ORD-1"}),
            (BookingState.AWAITING_GUEST_CONFIRM, BookingState.SUBMITTING, None),
        ]:
            await ledger.record_transition("cid-00000001", from_state, to_state, payload)

        record = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.attempt.order_id == "ORD-1"
        assert supplier.call_count("start_booking") == 0


    @pytest.mark.asyncio
    async def test_replay_from_creating_keeps_one_order(self, orchestrator, create_attempt, ledger, supplier):
        """El formulario ya se envió antes de la caída; el replay reutiliza la misma orden."""
        await create_attempt()
        for from_state, to_state, payload in [
            (BookingState.QUOTED, BookingState.LOCKING, None),
            (BookingState.LOCKING, BookingState.LOCKED, {"book_hash": "h-1"}),
            (BookingState.LOCKED, BookingState.CREATING, None),
        ]:
            await ledger.record_transition("cid-00000001", from_state, to_state, payload)
        sent_before_crash = await supplier.create_booking_form("cid-00000001", "h-1")

        record = await orchestrator.run("cid-00000001")
        replay = await orchestrator.run("cid-00000001")

        assert record.state == BookingState.CONFIRMED
        assert record.attempt.order_id == sent_before_crash.order_id
        assert replay.attempt.order_id == sent_before_crash.order_id
        assert supplier.call_count("start_booking") == 1

    @pytest.mark.asyncio
    async def test_retried_booking_form_keeps_one_order(self, orchestrator, create_attempt, supplier):
        supplier.fail("create_booking_form", SupplierTransientError("create_booking_form", "timeout"))
        await create_attempt()

        record = await orchestrator.run("cid-00000001")

        assert supplier.call_count("create_booking_form") == 2
        assert list(supplier.orders.values()) == [record.attempt.order_id]


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_confirmed_booking(self, orchestrator, create_attempt, supplier, notifier):
        await create_attempt()
        await orchestrator.run("cid-00000001")

        record = await orchestrator.cancel("cid-00000001")

        assert record.state == BookingState.CANCELLED
        assert record.status == ReservationStatus.CANCELLED
        assert record.attempt.refund_amount == Decimal("1000.00")
        assert "cid-00000001" in supplier.cancelled
        assert _event_types(notifier) == [EVENT_CONFIRMED, EVENT_CANCELLED]

    @pytest.mark.asyncio
    async def test_refused_cancellation_returns_to_confirmed(self, orchestrator, create_attempt, supplier):
        supplier.cancel_error = "order_not_cancellable"
        await create_attempt()
        await orchestrator.run("cid-00000001")

        with pytest.raises(SupplierRejectedError):
            await orchestrator.cancel("cid-00000001")

        record = await orchestrator.run("cid-00000001")
        assert record.state == BookingState.CONFIRMED
        assert record.attempt.cancel_refusal_code == "order_not_cancellable"
        assert record.attempt.failure_code is None
        assert record.attempt.failure_message is None

    @pytest.mark.asyncio
    async def test_later_cancellation_clears_refusal(self, orchestrator, create_attempt, supplier):
        supplier.cancel_error = "order_not_cancellable"
        await create_attempt()
        await orchestrator.run("cid-00000001")
        with pytest.raises(SupplierRejectedError):
            await orchestrator.cancel("cid-00000001")

        supplier.cancel_error = None
        record = await orchestrator.cancel("cid-00000001")

        assert record.state == BookingState.CANCELLED
        assert record.attempt.cancel_refusal_code is None

    @pytest.mark.asyncio
    async def test_transient_cancel_can_be_repeated(self, orchestrator, create_attempt, supplier, ledger):
        await create_attempt()
        await orchestrator.run("cid-00000001")
        supplier.fail("cancel_booking", *[SupplierTransientError("cancel_booking", "timeout")] * 3)

        with pytest.raises(SupplierTransientError):
            await orchestrator.cancel("cid-00000001")
        assert (await ledger.get_current("cid-00000001")).state == BookingState.CANCEL_REQUESTED

        record = await orchestrator.cancel("cid-00000001")
        assert record.state == BookingState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_requires_confirmed(self, orchestrator, create_attempt, ledger):
        await create_attempt()

        with pytest.raises(InvariantViolationError):
            await orchestrator.cancel("cid-00000001")

        assert (await ledger.get_current("cid-00000001")).state == BookingState.QUOTED
