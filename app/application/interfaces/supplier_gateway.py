from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from app.domain.entities.booking_attempt import GuestDetails, PaymentOption, PaymentSelection

STATUS_OK = "ok"
STATUS_PROCESSING = "processing"
STATUS_ERROR = "error"


@dataclass
class SearchRequest:
    hotel_id: str
    check_in: date
    check_out: date
    adults: int = 2
    children: list[int] = field(default_factory=list)
    currency: str = "SAR"
    residency: str = "sa"
    language: str = "en"


@dataclass
class RateOffer:
    match_hash: str
    hotel_id: str
    room_name: str
    meal_type: str
    price: Decimal
    currency: str
    book_hash: str | None = None
    is_refundable: bool = False
    free_cancellation_before: datetime | None = None
    cancellation_penalties: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class LockResult:
    book_hash: str
    price: Decimal
    currency: str
    is_refundable: bool = False


@dataclass
class BookingForm:
    order_id: str
    payment_options: list[PaymentOption] = field(default_factory=list)


@dataclass
class StatusResult:
    status: str  # ok, processing, error
    order_id: str | None = None
    error_code: str | None = None
    percent: int | None = None


@dataclass
class CancelResult:
    status: str
    refund_amount: Decimal | None = None
    currency: str | None = None


class SupplierGateway(ABC):
    """
    Cliente del protocolo del proveedor.

    Todas las llamadas de escritura llevan el correlation id como
    `partner_order_id`; el proveedor lo usa como llave de idempotencia.
    Las implementaciones clasifican los errores en el punto de llamada:
    SupplierRejectedError (no reintentable) o SupplierTransientError.
    """

    @abstractmethod
    async def search(self, request: SearchRequest) -> list[RateOffer]:
        pass

    @abstractmethod
    async def prebook(self, match_hash: str) -> LockResult:
        """Locks a rate, returning the book hash and the revalidated price."""
        pass

    @abstractmethod
    async def create_booking_form(
        self, correlation_id: str, book_hash: str, user_ip: str | None = None
    ) -> BookingForm:
        pass

    @abstractmethod
    async def start_booking(
        self,
        correlation_id: str,
        guest_details: GuestDetails,
        payment: PaymentSelection,
        customer_price: Decimal | None = None,
    ) -> None:
        """
        Submits guest and payment details. Acknowledgement only; the
        terminal result comes from check_booking_status.
        """
        pass

    @abstractmethod
    async def check_booking_status(self, correlation_id: str) -> StatusResult:
        pass

    @abstractmethod
    async def cancel_booking(self, correlation_id: str) -> CancelResult:
        pass
