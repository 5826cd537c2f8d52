"""DTOs (Data Transfer Objects) de la capa de aplicación."""

from app.application.dtos.booking_dto import StartBookingCommand
from app.application.dtos.pricing_dto import PriceBreakdown

__all__ = [
    "PriceBreakdown",
    "StartBookingCommand",
]
