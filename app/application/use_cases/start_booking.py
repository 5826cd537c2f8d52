import logging

from app.application.dtos.booking_dto import StartBookingCommand
from app.application.interfaces.booking_dispatcher import BookingDispatcher
from app.application.interfaces.reservation_ledger import ReservationLedger
from app.application.services.pricing_engine import PricingPolicyEngine
from app.domain.entities.booking_attempt import BookingAttempt
from app.domain.entities.reservation import ReservationRecord
from app.domain.errors import IdempotencyConflictError, ValidationError
from app.domain.value_objects.quote_context import QuoteContext
from app.domain.value_objects.reservation_code import ReservationCode


class StartBookingUseCase:
    """
    Crea el intento de reservación y lo entrega al dispatcher.

    Idempotente por correlation id: repetir la solicitud retorna el mismo
    registro y, si no ha terminado, reanuda su orquestación.
    """

    def __init__(
        self,
        ledger: ReservationLedger,
        pricing_engine: PricingPolicyEngine,
        dispatcher: BookingDispatcher,
    ) -> None:
        self._ledger = ledger
        self._pricing = pricing_engine
        self._dispatcher = dispatcher
        self._logger = logging.getLogger(__name__)

    async def execute(self, command: StartBookingCommand) -> ReservationRecord:
        existing = await self._ledger.get_current(command.correlation_id)
        if existing is not None:
            if existing.attempt.match_hash != command.match_hash:
                raise IdempotencyConflictError(command.correlation_id)
            if not existing.attempt.is_settled:
                await self._dispatcher.dispatch(command.correlation_id)
            return await self._ledger.get_current(command.correlation_id)

        self._validate(command)
        ctx = QuoteContext(
            booking_value=command.supplier_price,
            country=command.country,
            city=command.city,
            star_rating=command.star_rating,
            hotel_brand=command.hotel_brand,
            check_in_date=command.check_in,
            meal_type=command.meal_type,
            customer_type=command.customer_type,
        )
        price = await self._pricing.quote(ctx, command.currency)

        record = ReservationRecord(
            reservation_code=ReservationCode.generate().value,
            hotel_id=command.hotel_id,
            hotel_name=command.hotel_name,
            check_in=command.check_in,
            check_out=command.check_out,
            room_name=command.room_name,
            meal_type=command.meal_type,
            guest_count=command.guest_details.guest_count,
            attempt=BookingAttempt(
                correlation_id=command.correlation_id,
                match_hash=command.match_hash,
                book_hash=command.book_hash,
                supplier_price=price.base_price,
                currency=command.currency,
                guest_details=command.guest_details,
                payment_selection=command.payment_selection,
                margin_rule_id=price.rule_id,
                margin_amount=price.margin_amount,
                customer_price=price.final_price,
                is_refundable=command.is_refundable,
                require_refundable=command.require_refundable,
                user_ip=command.user_ip,
            ),
        )
        record = await self._ledger.create(record)
        self._logger.info(
            "Booking attempt created",
            extra={
                "correlation_id": command.correlation_id,
                "reservation_code": record.reservation_code,
                "margin_rule_id": price.rule_id,
                "customer_price": str(price.final_price),
            },
        )

        await self._dispatcher.dispatch(command.correlation_id)
        return await self._ledger.get_current(command.correlation_id)

    @staticmethod
    def _validate(command: StartBookingCommand) -> None:
        if command.check_out <= command.check_in:
            raise ValidationError("check_out", "debe ser posterior a check_in")
        if command.supplier_price < 0:
            raise ValidationError("supplier_price", "no puede ser negativo")
        if command.guest_details.guest_count == 0:
            raise ValidationError("guest_details.rooms", "se requiere al menos un huésped")
