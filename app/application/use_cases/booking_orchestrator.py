"""
Booking orchestrator.

Drives one BookingAttempt through lock -> create form -> submit -> poll,
recording every transition in the ledger before the next remote call, and
owns the compensating cancellation path.
"""

import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any, TypeVar

from app.application.interfaces.notifier import (
    EVENT_CANCELLED,
    EVENT_CONFIRMED,
    EVENT_FAILED,
    BookingEvent,
    Notifier,
)
from app.application.interfaces.reservation_ledger import ReservationLedger
from app.application.interfaces.scheduler import Scheduler
from app.application.interfaces.supplier_gateway import (
    STATUS_ERROR,
    STATUS_OK,
    StatusResult,
    SupplierGateway,
)
from app.application.services.pricing_engine import PricingPolicyEngine
from app.application.services.retry_policy import RetryPolicy, retry_async
from app.domain.entities.booking_attempt import (
    PRE_SUBMIT_STATES,
    BookingState,
    FailureReason,
    PaymentSelection,
)
from app.domain.entities.reservation import ReservationRecord
from app.domain.errors import (
    BookingNotFoundError,
    InvariantViolationError,
    PriceChangedError,
    SupplierRejectedError,
    SupplierTransientError,
    ValidationError,
)

T = TypeVar("T")

# Supplier status error codes with a dedicated failure reason.
_STATUS_ERROR_REASONS = {
    "sandbox_restriction": FailureReason.SANDBOX_RESTRICTION,
    "insufficient_b2b_balance": FailureReason.INSUFFICIENT_BALANCE,
    "no_available_rates": FailureReason.RATE_UNAVAILABLE,
    "rate_not_found": FailureReason.RATE_UNAVAILABLE,
}


class BookingOrchestrator:
    """
    State machine driver for a single correlation id.

    `run` resumes from whatever state the ledger holds, so replaying it
    after a crash or a transient failure converges on the same terminal
    state instead of creating a second supplier booking.
    """

    def __init__(
        self,
        ledger: ReservationLedger,
        supplier_gateway: SupplierGateway,
        pricing_engine: PricingPolicyEngine,
        notifier: Notifier,
        scheduler: Scheduler,
        transport_policy: RetryPolicy | None = None,
        poll_policy: RetryPolicy | None = None,
        price_change_tolerance_percent: Decimal = Decimal("0"),
    ) -> None:
        self._ledger = ledger
        self._gateway = supplier_gateway
        self._pricing = pricing_engine
        self._notifier = notifier
        self._scheduler = scheduler
        self._transport_policy = transport_policy or RetryPolicy(max_attempts=3, interval_seconds=1.0)
        self._poll_policy = poll_policy or RetryPolicy(max_attempts=10, interval_seconds=2.0)
        self._price_tolerance = Decimal(str(price_change_tolerance_percent))
        self._logger = logging.getLogger(__name__)
        self._steps: dict[BookingState, Callable[[ReservationRecord], Awaitable[ReservationRecord]]] = {
            BookingState.QUOTED: self._begin_lock,
            BookingState.LOCKING: self._lock_rate,
            BookingState.LOCKED: self._begin_booking_form,
            BookingState.CREATING: self._create_booking_form,
            BookingState.AWAITING_GUEST_CONFIRM: self._submit,
            BookingState.SUBMITTING: self._resume_submitting,
            BookingState.POLLING: self._poll,
        }

    # === Entry points ===

    async def run(self, correlation_id: str) -> ReservationRecord:
        record = await self._get(correlation_id)
        while not record.attempt.is_settled:
            record = await self._steps[record.state](record)

        if record.state == BookingState.CONFIRMED:
            # Idempotent per correlation id; a replayed run never double-counts.
            await self._pricing.record_application(
                record.attempt.margin_rule_id, correlation_id, record.attempt.margin_amount
            )
        return record

    async def request_abandon(self, correlation_id: str) -> tuple[ReservationRecord, bool]:
        """
        Flags the attempt for abandonment at the next safe checkpoint.

        Returns (record, accepted). Once the submit call may have been sent
        the flag is not set and the attempt runs to a terminal state.
        """
        record = await self._get(correlation_id)
        if record.state not in PRE_SUBMIT_STATES:
            self._logger.info(
                "Abandon request ignored past submit boundary",
                extra={"correlation_id": correlation_id, "state": record.state.value},
            )
            return record, False
        return await self._ledger.set_cancel_requested(correlation_id), True

    async def recheck(self, correlation_id: str) -> ReservationRecord:
        """
        One out-of-band status read for an attempt that timed out while polling.
        Still processing leaves the record unchanged.
        """
        record = await self._get(correlation_id)
        attempt = record.attempt
        if not (attempt.state == BookingState.FAILED and attempt.failure_reason == FailureReason.TIMEOUT):
            raise InvariantViolationError(
                f"Solo se puede reconsultar un intento con timeout; estado actual "
                f"'{attempt.state.value}' ({attempt.failure_reason.value if attempt.failure_reason else '-'})"
            )

        result = await self._with_transport_retry(
            lambda: self._gateway.check_booking_status(correlation_id),
            "check_booking_status",
            correlation_id,
        )
        if result.status == STATUS_OK:
            record = await self._transition(
                record,
                BookingState.CONFIRMED,
                {
                    "order_id": result.order_id or attempt.order_id,
                    "failure_reason": None,
                    "failure_code": None,
                    "failure_message": None,
                },
            )
            await self._notify(record, EVENT_CONFIRMED)
            await self._pricing.record_application(attempt.margin_rule_id, correlation_id, attempt.margin_amount)
        elif result.status == STATUS_ERROR:
            record = await self._fail_with_status(record, result)
        return record

    async def cancel(self, correlation_id: str) -> ReservationRecord:
        """
        Cancels a confirmed booking with the supplier.

        Raises:
            InvariantViolationError: attempt is not Confirmed (nor resuming a
                previous cancellation). State is left unchanged.
            SupplierRejectedError: supplier refused; the attempt returns to Confirmed.
            SupplierTransientError: retries exhausted; the attempt stays in
                CancelRequested and the call can be repeated.
        """
        record = await self._get(correlation_id)
        if record.state == BookingState.CONFIRMED:
            record = await self._transition(record, BookingState.CANCEL_REQUESTED)
        elif record.state != BookingState.CANCEL_REQUESTED:
            raise InvariantViolationError(
                f"Cancelación solo permitida desde 'confirmed'; estado actual '{record.state.value}'"
            )

        try:
            result = await self._with_transport_retry(
                lambda: self._gateway.cancel_booking(correlation_id),
                "cancel_booking",
                correlation_id,
            )
        except SupplierRejectedError as exc:
            await self._transition(
                record,
                BookingState.CONFIRMED,
                {"cancel_refusal_code": exc.supplier_error_code},
            )
            self._logger.error(
                "Supplier refused cancellation",
                extra={"correlation_id": correlation_id, "error_code": exc.supplier_error_code},
            )
            raise

        record = await self._transition(
            record,
            BookingState.CANCELLED,
            {"refund_amount": result.refund_amount, "cancel_refusal_code": None},
        )
        await self._notify(record, EVENT_CANCELLED)
        return record

    # === Steps ===

    async def _begin_lock(self, record: ReservationRecord) -> ReservationRecord:
        if await self._abandon_requested(record):
            return await self._abandon(record)
        attempt = record.attempt
        if attempt.book_hash:
            # Search already returned a usable lock token; do not re-lock.
            return await self._transition(record, BookingState.LOCKED, {"locked_price": attempt.supplier_price})
        return await self._transition(record, BookingState.LOCKING)

    async def _lock_rate(self, record: ReservationRecord) -> ReservationRecord:
        attempt = record.attempt
        try:
            lock = await self._with_transport_retry(
                lambda: self._gateway.prebook(attempt.match_hash),
                "prebook",
                attempt.correlation_id,
            )
        except SupplierRejectedError as exc:
            return await self._fail_with_error(record, exc)
        except SupplierTransientError as exc:
            return await self._fail(record, FailureReason.SUPPLIER_UNAVAILABLE, exc.supplier_error_code, exc.message)

        if self._price_changed(attempt.supplier_price, lock.price):
            return await self._fail_with_error(
                record,
                PriceChangedError(
                    "prebook",
                    "price_changed",
                    f"Locked price {lock.price} exceeds quoted price {attempt.supplier_price}",
                ),
            )
        return await self._transition(
            record,
            BookingState.LOCKED,
            {"book_hash": lock.book_hash, "locked_price": lock.price, "is_refundable": lock.is_refundable},
        )

    async def _begin_booking_form(self, record: ReservationRecord) -> ReservationRecord:
        if await self._abandon_requested(record):
            return await self._abandon(record)
        attempt = record.attempt
        if attempt.require_refundable and not attempt.is_refundable:
            return await self._fail(
                record,
                FailureReason.NON_REFUNDABLE_RATE,
                "non_refundable_rate",
                "Automated bookings may only use refundable rates",
            )
        return await self._transition(record, BookingState.CREATING)

    async def _create_booking_form(self, record: ReservationRecord) -> ReservationRecord:
        attempt = record.attempt
        try:
            form = await self._with_transport_retry(
                lambda: self._gateway.create_booking_form(attempt.correlation_id, attempt.book_hash, attempt.user_ip),
                "create_booking_form",
                attempt.correlation_id,
            )
        except SupplierRejectedError as exc:
            return await self._fail_with_error(record, exc)
        except SupplierTransientError as exc:
            return await self._fail(record, FailureReason.SUPPLIER_UNAVAILABLE, exc.supplier_error_code, exc.message)

        return await self._transition(
            record,
            BookingState.AWAITING_GUEST_CONFIRM,
            {"order_id": form.order_id, "payment_options": form.payment_options},
        )

    async def _submit(self, record: ReservationRecord) -> ReservationRecord:
        if await self._abandon_requested(record):
            return await self._abandon(record)
        attempt = record.attempt
        try:
            selection = self._payment_selection(attempt.payment_selection, attempt.payment_options)
        except ValidationError as exc:
            return await self._fail(record, FailureReason.INVALID_PAYMENT_SELECTION, exc.code, exc.message)

        record = await self._transition(record, BookingState.SUBMITTING, {"payment_selection": selection})
        try:
            await self._gateway.start_booking(
                attempt.correlation_id, attempt.guest_details, selection, attempt.customer_price
            )
        except SupplierRejectedError as exc:
            return await self._fail_with_error(record, exc)
        except SupplierTransientError as exc:
            # Non-idempotent write with unknown outcome: never resend, let status reads decide.
            self._logger.warning(
                "Submit outcome unknown, polling status instead of resubmitting",
                extra={"correlation_id": attempt.correlation_id, "error_code": exc.supplier_error_code},
            )
        return await self._transition(record, BookingState.POLLING)

    async def _resume_submitting(self, record: ReservationRecord) -> ReservationRecord:
        # Crashed after the write-ahead record; the submit may or may not have been sent.
        self._logger.warning(
            "Resuming attempt left in submitting, polling status",
            extra={"correlation_id": record.correlation_id},
        )
        return await self._transition(record, BookingState.POLLING)

    async def _poll(self, record: ReservationRecord) -> ReservationRecord:
        correlation_id = record.correlation_id
        policy = self._poll_policy
        for attempt_number in range(1, policy.max_attempts + 1):
            try:
                result = await self._gateway.check_booking_status(correlation_id)
            except SupplierTransientError as exc:
                # A failed read counts as still processing.
                self._logger.warning(
                    "Status read failed",
                    extra={
                        "correlation_id": correlation_id,
                        "attempt": attempt_number,
                        "error_code": exc.supplier_error_code,
                    },
                )
                result = None
            except SupplierRejectedError as exc:
                return await self._fail_with_error(record, exc)

            if result is not None and result.status == STATUS_OK:
                record = await self._transition(
                    record,
                    BookingState.CONFIRMED,
                    {"order_id": result.order_id or record.attempt.order_id},
                )
                await self._notify(record, EVENT_CONFIRMED)
                return record
            if result is not None and result.status == STATUS_ERROR:
                return await self._fail_with_status(record, result)

            if attempt_number < policy.max_attempts:
                await self._scheduler.sleep(policy.delay_for(attempt_number))

        return await self._fail(
            record,
            FailureReason.TIMEOUT,
            "timeout",
            f"No terminal status after {policy.max_attempts} polls",
        )

    # === Helpers ===

    async def _get(self, correlation_id: str) -> ReservationRecord:
        record = await self._ledger.get_current(correlation_id)
        if record is None:
            raise BookingNotFoundError(correlation_id)
        return record

    async def _transition(
        self,
        record: ReservationRecord,
        to_state: BookingState,
        payload: dict[str, Any] | None = None,
    ) -> ReservationRecord:
        updated = await self._ledger.record_transition(record.correlation_id, record.state, to_state, payload)
        self._logger.info(
            "Booking transition recorded",
            extra={
                "correlation_id": record.correlation_id,
                "from_state": record.state.value,
                "to_state": to_state.value,
            },
        )
        return updated

    async def _fail(
        self,
        record: ReservationRecord,
        reason: FailureReason,
        code: str | None,
        message: str | None,
    ) -> ReservationRecord:
        record = await self._transition(
            record,
            BookingState.FAILED,
            {"failure_reason": reason, "failure_code": code, "failure_message": message},
        )
        self._logger.error(
            "Booking attempt failed",
            extra={
                "correlation_id": record.correlation_id,
                "failure_reason": reason.value,
                "error_code": code,
            },
        )
        await self._notify(record, EVENT_FAILED)
        return record

    async def _fail_with_error(self, record: ReservationRecord, exc: SupplierRejectedError) -> ReservationRecord:
        return await self._fail(record, FailureReason(exc.reason), exc.supplier_error_code, exc.message)

    async def _fail_with_status(self, record: ReservationRecord, result: StatusResult) -> ReservationRecord:
        reason = _STATUS_ERROR_REASONS.get(result.error_code or "", FailureReason.SUPPLIER_ERROR)
        return await self._fail(record, reason, result.error_code, f"Supplier reported booking error: {result.error_code}")

    async def _abandon(self, record: ReservationRecord) -> ReservationRecord:
        return await self._fail(record, FailureReason.ABANDONED, "abandoned", "Caller abandoned the booking flow")

    async def _abandon_requested(self, record: ReservationRecord) -> bool:
        # The flag is set by another request; re-read it at each checkpoint.
        current = await self._get(record.correlation_id)
        return current.attempt.abandon_honored

    def _price_changed(self, quoted: Decimal, locked: Decimal) -> bool:
        limit = quoted * (Decimal("1") + self._price_tolerance / Decimal("100"))
        return locked > limit

    @staticmethod
    def _payment_selection(selection: PaymentSelection | None, options: list) -> PaymentSelection:
        if selection is None:
            if not options:
                raise ValidationError("payment_selection", "el proveedor no ofreció tipos de pago")
            selection = PaymentSelection(type=options[0].type, currency=options[0].currency)
        return selection.resolve(options)

    async def _with_transport_retry(
        self, func: Callable[[], Awaitable[T]], operation: str, correlation_id: str
    ) -> T:
        return await retry_async(
            func,
            self._transport_policy,
            self._scheduler,
            retry_on=(SupplierTransientError,),
            operation=operation,
            context={"correlation_id": correlation_id},
        )

    async def _notify(self, record: ReservationRecord, event_type: str) -> None:
        attempt = record.attempt
        event = BookingEvent(
            event_type=event_type,
            reservation_code=record.reservation_code,
            correlation_id=record.correlation_id,
            status=record.status.value,
            contact_email=attempt.guest_details.email,
            contact_phone=attempt.guest_details.phone,
            price={
                "supplier_price": str(attempt.supplier_price),
                "margin_amount": str(attempt.margin_amount),
                "customer_price": str(attempt.customer_price),
                "currency": attempt.currency,
            },
            failure_reason=attempt.failure_reason.value if attempt.failure_reason else None,
        )
        try:
            await self._notifier.publish(event)
        except Exception:
            # Delivery failures never affect the booking outcome.
            self._logger.exception(
                "Booking notification failed",
                extra={"correlation_id": record.correlation_id, "event_type": event_type},
            )
