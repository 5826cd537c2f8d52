import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from pybreaker import CircuitBreaker

from app.application.interfaces.clock import Clock, SystemClock
from app.application.interfaces.supplier_gateway import (
    STATUS_ERROR,
    STATUS_OK,
    STATUS_PROCESSING,
    BookingForm,
    CancelResult,
    LockResult,
    RateOffer,
    SearchRequest,
    StatusResult,
    SupplierGateway,
)
from app.domain.entities.booking_attempt import GuestDetails, PaymentOption, PaymentSelection
from app.domain.errors import (
    InsufficientBalanceError,
    RateUnavailableError,
    SandboxRestrictionError,
    SupplierRejectedError,
    SupplierTransientError,
)
from app.infrastructure.circuit_breaker import call_with_breaker

logger = logging.getLogger(__name__)

# Body error codes the supplier documents as worth retrying with the same partner_order_id.
TRANSIENT_ERROR_CODES = {"timeout", "unknown", "temporarily_unavailable", "endpoint_exceeded_limit"}


def _decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return default


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _as_utc(value: datetime) -> datetime:
    # The supplier sends naive timestamps in UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def has_free_cancellation(penalties: dict[str, Any], now: datetime) -> bool:
    """
    True when the rate can still be cancelled at no charge.

    `free_cancellation_before` wins when it is still in the future; otherwise
    any policy window that has not ended and charges nothing counts.
    """
    free_until = _parse_datetime(penalties.get("free_cancellation_before"))
    if free_until is not None and _as_utc(free_until) > now:
        return True

    for policy in penalties.get("policies") or []:
        deadline = _parse_datetime(policy.get("end_at") or policy.get("start_at"))
        if deadline is None or _as_utc(deadline) <= now:
            continue
        charges = [policy.get("amount_charge"), policy.get("percent_charge")]
        if any(c is not None and _decimal(c, Decimal("-1")) == 0 for c in charges):
            return True
    return False


def classify_error(operation: str, error_code: str, message: str | None = None) -> Exception:
    """Maps a supplier body error to the domain error taxonomy."""
    if error_code == "sandbox_restriction":
        return SandboxRestrictionError(operation, error_code, message)
    if error_code in ("insufficient_b2b_balance", "insufficient_balance"):
        return InsufficientBalanceError(operation, error_code, message)
    if error_code == "no_available_rates" and operation == "prebook":
        # The supplier may briefly report no rates while revalidating; retried once upstream.
        return SupplierTransientError(operation, error_code, message)
    if error_code in ("no_available_rates", "rate_not_found", "hotel_not_found"):
        return RateUnavailableError(operation, error_code, message)
    if error_code in TRANSIENT_ERROR_CODES:
        return SupplierTransientError(operation, error_code, message)
    return SupplierRejectedError(operation, error_code, message)


class RateHawkGateway(SupplierGateway):
    def __init__(
        self,
        client: httpx.AsyncClient,
        breaker: CircuitBreaker,
        language: str = "en",
        clock: Clock | None = None,
    ) -> None:
        """
        HTTP gateway for the RateHawk (ETG) B2B API.

        Args:
            client: AsyncClient built at startup with base_url, basic auth and timeout.
            breaker: Circuit breaker shared by all supplier calls.
            language: Language sent with every request.
            clock: Reference time for refundability; defaults to the system clock.
        """
        self._client = client
        self._breaker = breaker
        self._language = language
        self._clock = clock or SystemClock()

    async def search(self, request: SearchRequest) -> list[RateOffer]:
        body = await self._post(
            "/search/hp/",
            {
                "id": request.hotel_id,
                "checkin": request.check_in.isoformat(),
                "checkout": request.check_out.isoformat(),
                "residency": request.residency,
                "language": request.language or self._language,
                "guests": [{"adults": request.adults, "children": request.children}],
                "currency": request.currency,
            },
            operation="search",
        )
        offers = []
        for hotel in (body.get("data") or {}).get("hotels", []):
            for rate in hotel.get("rates", []):
                offers.append(self._to_offer(str(hotel.get("id", request.hotel_id)), rate, request.currency))
        return offers

    async def prebook(self, match_hash: str) -> LockResult:
        body = await self._post(
            "/hotel/prebook",
            {"hash": match_hash, "language": self._language},
            operation="prebook",
        )
        hotels = (body.get("data") or {}).get("hotels") or []
        rates = hotels[0].get("rates", []) if hotels else []
        if not rates or not rates[0].get("book_hash"):
            raise RateUnavailableError("prebook", "no_book_hash", "Prebook returned no usable rate")

        rate = rates[0]
        offer = self._to_offer(str(hotels[0].get("id", "")), rate, None)
        return LockResult(
            book_hash=rate["book_hash"],
            price=offer.price,
            currency=offer.currency,
            is_refundable=offer.is_refundable,
        )

    async def create_booking_form(
        self, correlation_id: str, book_hash: str, user_ip: str | None = None
    ) -> BookingForm:
        body = await self._post(
            "/hotel/order/booking/form/",
            {
                "partner_order_id": correlation_id,
                "book_hash": book_hash,
                "language": self._language,
                "user_ip": user_ip or "127.0.0.1",
            },
            operation="create_booking_form",
            correlation_id=correlation_id,
        )
        data = body.get("data") or {}
        if not data.get("order_id"):
            raise SupplierTransientError("create_booking_form", "missing_order_id")
        return BookingForm(
            order_id=str(data["order_id"]),
            payment_options=[
                PaymentOption(
                    type=p.get("type", ""),
                    amount=_decimal(p.get("amount")),
                    currency=p.get("currency_code", ""),
                )
                for p in data.get("payment_types", [])
            ],
        )

    async def start_booking(
        self,
        correlation_id: str,
        guest_details: GuestDetails,
        payment: PaymentSelection,
        customer_price: Decimal | None = None,
    ) -> None:
        lead = guest_details.lead_guest
        partner: dict[str, Any] = {"partner_order_id": correlation_id}
        if guest_details.comment:
            partner["comment"] = guest_details.comment
        if customer_price is not None:
            partner["amount_sell_b2b2c"] = str(customer_price)

        await self._post(
            "/hotel/order/booking/finish/",
            {
                "partner": partner,
                "user": {
                    "email": guest_details.email,
                    "phone": guest_details.phone,
                    "comment": guest_details.comment,
                },
                "supplier_data": {
                    "first_name_original": lead.first_name if lead else "",
                    "last_name_original": lead.last_name if lead else "",
                    "phone": guest_details.phone,
                    "email": guest_details.email,
                },
                "language": self._language,
                "rooms": [
                    {"guests": [{"first_name": g.first_name, "last_name": g.last_name} for g in room]}
                    for room in guest_details.rooms
                ],
                "payment_type": {
                    "type": payment.type,
                    "amount": str(payment.amount),
                    "currency_code": payment.currency,
                },
            },
            operation="start_booking",
            correlation_id=correlation_id,
        )

    async def check_booking_status(self, correlation_id: str) -> StatusResult:
        body = await self._post(
            "/hotel/order/booking/finish/status/",
            {"partner_order_id": correlation_id},
            operation="check_booking_status",
            correlation_id=correlation_id,
            raise_on_error=False,
        )
        data = body.get("data") or {}
        status = body.get("status")
        if status == STATUS_OK:
            return StatusResult(status=STATUS_OK, order_id=_str_or_none(data.get("order_id")), percent=data.get("percent"))
        if status == STATUS_ERROR:
            error_code = body.get("error") or "unknown"
            if error_code in TRANSIENT_ERROR_CODES:
                return StatusResult(status=STATUS_PROCESSING, error_code=error_code)
            return StatusResult(status=STATUS_ERROR, error_code=error_code)
        return StatusResult(status=STATUS_PROCESSING, percent=data.get("percent"))

    async def cancel_booking(self, correlation_id: str) -> CancelResult:
        body = await self._post(
            "/hotel/order/cancel/",
            {"partner_order_id": correlation_id},
            operation="cancel_booking",
            correlation_id=correlation_id,
        )
        data = body.get("data") or {}
        refund = data.get("amount_refunded") or {}
        return CancelResult(
            status="cancelled",
            refund_amount=_decimal(refund.get("amount")) if refund.get("amount") is not None else None,
            currency=refund.get("currency_code"),
        )

    # === HTTP ===

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        operation: str,
        correlation_id: str | None = None,
        raise_on_error: bool = True,
    ) -> dict[str, Any]:
        async def _request() -> dict[str, Any]:
            try:
                response = await self._client.post(path, json=payload)
            except httpx.TimeoutException as exc:
                logger.warning(
                    "Supplier request timeout",
                    extra={"operation": operation, "correlation_id": correlation_id},
                )
                raise SupplierTransientError(operation, "timeout", str(exc)) from exc
            except httpx.HTTPError as exc:
                logger.warning(
                    "Supplier connection error",
                    extra={"operation": operation, "correlation_id": correlation_id, "error": str(exc)},
                )
                raise SupplierTransientError(operation, "connection_error", str(exc)) from exc

            if response.status_code == 429 or response.status_code >= 500:
                raise SupplierTransientError(operation, f"http_{response.status_code}", response.text[:200])

            try:
                body = response.json()
            except json.JSONDecodeError as exc:
                raise SupplierTransientError(operation, "invalid_json", response.text[:200]) from exc

            if response.status_code >= 400:
                error_code = body.get("error") or f"http_{response.status_code}"
                if response.status_code in (401, 403):
                    raise SupplierRejectedError(operation, "unauthorized", error_code)
                raise classify_error(operation, error_code, f"Supplier error on {operation}: {error_code}")
            if raise_on_error and body.get("status") == STATUS_ERROR:
                error_code = body.get("error") or "unknown"
                raise classify_error(operation, error_code, f"Supplier error on {operation}: {error_code}")
            return body

        return await call_with_breaker(self._breaker, operation, _request)

    def _to_offer(self, hotel_id: str, rate: dict[str, Any], fallback_currency: str | None) -> RateOffer:
        payment_types = (rate.get("payment_options") or {}).get("payment_types") or [{}]
        payment = payment_types[0]
        penalties = payment.get("cancellation_penalties") or rate.get("cancellation_penalties") or {}
        free_until = _parse_datetime(penalties.get("free_cancellation_before"))
        return RateOffer(
            match_hash=rate.get("match_hash", ""),
            book_hash=rate.get("book_hash"),
            hotel_id=hotel_id,
            room_name=rate.get("room_name", ""),
            meal_type=rate.get("meal", ""),
            price=_decimal(payment.get("show_amount") or payment.get("amount")),
            currency=payment.get("show_currency_code") or payment.get("currency_code") or fallback_currency or "",
            is_refundable=has_free_cancellation(penalties, self._clock.now()),
            free_cancellation_before=free_until,
            cancellation_penalties=penalties.get("policies", []),
        )


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None
