"""DTOs para reservaciones de hotel."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from app.domain.entities.booking_attempt import GuestDetails, PaymentSelection


@dataclass
class StartBookingCommand:
    """Solicitud del cliente para confirmar una tarifa cotizada."""

    correlation_id: str
    hotel_id: str
    check_in: date
    check_out: date
    match_hash: str
    supplier_price: Decimal
    currency: str
    guest_details: GuestDetails
    payment_selection: PaymentSelection | None = None
    book_hash: str | None = None
    hotel_name: str | None = None
    room_name: str | None = None
    meal_type: str | None = None
    is_refundable: bool | None = None
    require_refundable: bool = False
    country: str | None = None
    city: str | None = None
    star_rating: int | None = None
    hotel_brand: str | None = None
    customer_type: str = "b2c"
    user_ip: str | None = None
