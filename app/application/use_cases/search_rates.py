import logging
from dataclasses import dataclass

from app.application.dtos.pricing_dto import PriceBreakdown
from app.application.interfaces.supplier_gateway import RateOffer, SearchRequest, SupplierGateway
from app.application.services.pricing_engine import PricingPolicyEngine
from app.domain.value_objects.quote_context import QuoteContext


@dataclass
class PricedRate:
    offer: RateOffer
    price: PriceBreakdown


@dataclass
class HotelFacts:
    """Hotel attributes the supplier search does not return but rules match on."""

    country: str | None = None
    city: str | None = None
    star_rating: int | None = None
    hotel_brand: str | None = None


class SearchRatesUseCase:
    """Searches supplier rates and prices each one; quote-time pricing never touches rule counters."""

    def __init__(self, supplier_gateway: SupplierGateway, pricing_engine: PricingPolicyEngine) -> None:
        self._gateway = supplier_gateway
        self._pricing = pricing_engine
        self._logger = logging.getLogger(__name__)

    async def execute(
        self,
        request: SearchRequest,
        hotel: HotelFacts | None = None,
        customer_type: str = "b2c",
    ) -> list[PricedRate]:
        hotel = hotel or HotelFacts()
        offers = await self._gateway.search(request)
        priced = []
        for offer in offers:
            ctx = QuoteContext(
                booking_value=offer.price,
                country=hotel.country,
                city=hotel.city,
                star_rating=hotel.star_rating,
                hotel_brand=hotel.hotel_brand,
                check_in_date=request.check_in,
                meal_type=offer.meal_type,
                customer_type=customer_type,
            )
            priced.append(PricedRate(offer=offer, price=await self._pricing.quote(ctx, offer.currency)))

        self._logger.info(
            "Supplier rates priced",
            extra={"hotel_id": request.hotel_id, "rates": len(priced)},
        )
        return priced


class QuoteRateUseCase:
    """Prices a single base amount for a context (also used by rule simulation)."""

    def __init__(self, pricing_engine: PricingPolicyEngine) -> None:
        self._pricing = pricing_engine

    async def execute(self, ctx: QuoteContext, currency: str) -> PriceBreakdown:
        return await self._pricing.quote(ctx, currency)
