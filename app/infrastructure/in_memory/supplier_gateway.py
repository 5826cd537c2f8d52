from collections import defaultdict, deque
from decimal import Decimal
from typing import Any
from uuid import uuid4

from app.application.interfaces.supplier_gateway import (
    STATUS_ERROR,
    STATUS_OK,
    BookingForm,
    CancelResult,
    LockResult,
    RateOffer,
    SearchRequest,
    StatusResult,
    SupplierGateway,
)
from app.domain.entities.booking_attempt import GuestDetails, PaymentOption, PaymentSelection
from app.domain.errors import SandboxRestrictionError, SupplierRejectedError


class StubSupplierGateway(SupplierGateway):
    """
    Scriptable supplier for development and tests.

    Honors partner_order_id idempotency: the same correlation id always maps
    to the same order id. Every call is recorded in `calls`.
    """

    def __init__(
        self,
        offers: list[RateOffer] | None = None,
        default_price: Decimal = Decimal("1000.00"),
        lock_price: Decimal | None = None,
        lock_refundable: bool = True,
        form_error: str | None = None,
        payment_types: list[str] | None = None,
        status_sequence: list[str] | None = None,
        status_error_code: str = "book_failed",
        cancel_error: str | None = None,
    ) -> None:
        self.offers = list(offers or [])
        self.default_price = default_price
        self.lock_price = lock_price
        self.lock_refundable = lock_refundable
        self.form_error = form_error
        self.payment_types = payment_types or ["deposit"]
        self.status_sequence = list(status_sequence or [STATUS_OK])
        self.status_error_code = status_error_code
        self.cancel_error = cancel_error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.orders: dict[str, str] = {}
        self.cancelled: set[str] = set()
        self._book_hash_prices: dict[str, Decimal] = {}
        self._order_prices: dict[str, Decimal] = {}
        self._status_cursor: dict[str, int] = defaultdict(int)
        self._failures: dict[str, deque[Exception]] = defaultdict(deque)

    def fail(self, operation: str, *errors: Exception) -> None:
        """Queues errors raised by the next calls to `operation`."""
        self._failures[operation].extend(errors)

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def _record(self, operation: str, **kwargs: Any) -> None:
        self.calls.append((operation, kwargs))
        if self._failures[operation]:
            raise self._failures[operation].popleft()

    def _price_for(self, match_hash: str) -> Decimal:
        for offer in self.offers:
            if offer.match_hash == match_hash:
                return offer.price
        return self.default_price

    async def search(self, request: SearchRequest) -> list[RateOffer]:
        self._record("search", hotel_id=request.hotel_id)
        return [offer for offer in self.offers if offer.hotel_id == request.hotel_id]

    async def prebook(self, match_hash: str) -> LockResult:
        self._record("prebook", match_hash=match_hash)
        price = self.lock_price if self.lock_price is not None else self._price_for(match_hash)
        book_hash = f"h-{match_hash}"
        self._book_hash_prices[book_hash] = price
        return LockResult(book_hash=book_hash, price=price, currency="SAR", is_refundable=self.lock_refundable)

    async def create_booking_form(
        self, correlation_id: str, book_hash: str, user_ip: str | None = None
    ) -> BookingForm:
        self._record("create_booking_form", correlation_id=correlation_id, book_hash=book_hash)
        if self.form_error == "sandbox_restriction":
            raise SandboxRestrictionError("create_booking_form", self.form_error)
        if self.form_error:
            raise SupplierRejectedError("create_booking_form", self.form_error)

        order_id = self.orders.setdefault(correlation_id, f"ORD-{uuid4().hex[:8].upper()}")
        amount = self._book_hash_prices.get(book_hash, self.default_price)
        self._order_prices[correlation_id] = amount
        return BookingForm(
            order_id=order_id,
            payment_options=[PaymentOption(type=t, amount=amount, currency="SAR") for t in self.payment_types],
        )

    async def start_booking(
        self,
        correlation_id: str,
        guest_details: GuestDetails,
        payment: PaymentSelection,
        customer_price: Decimal | None = None,
    ) -> None:
        self._record(
            "start_booking",
            correlation_id=correlation_id,
            payment_type=payment.type,
            amount=payment.amount,
        )

    async def check_booking_status(self, correlation_id: str) -> StatusResult:
        self._record("check_booking_status", correlation_id=correlation_id)
        cursor = self._status_cursor[correlation_id]
        status = self.status_sequence[min(cursor, len(self.status_sequence) - 1)]
        self._status_cursor[correlation_id] = cursor + 1
        if status == STATUS_OK:
            return StatusResult(status=status, order_id=self.orders.get(correlation_id), percent=100)
        if status == STATUS_ERROR:
            return StatusResult(status=status, error_code=self.status_error_code)
        return StatusResult(status=status, percent=50)

    async def cancel_booking(self, correlation_id: str) -> CancelResult:
        self._record("cancel_booking", correlation_id=correlation_id)
        if self.cancel_error:
            raise SupplierRejectedError("cancel_booking", self.cancel_error)
        self.cancelled.add(correlation_id)
        return CancelResult(
            status="cancelled",
            refund_amount=self._order_prices.get(correlation_id),
            currency="SAR",
        )
