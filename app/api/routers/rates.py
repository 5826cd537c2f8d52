from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_use_cases
from app.api.schemas.pricing import (
    PriceBreakdownResponse,
    PricedRateResponse,
    QuoteRequest,
    RateSearchRequest,
    RateSearchResponse,
)
from app.application.interfaces.supplier_gateway import SearchRequest
from app.application.use_cases.search_rates import HotelFacts
from app.domain.errors import ValidationError

router = APIRouter()


@router.post(
    "/rates/search",
    response_model=RateSearchResponse,
    status_code=status.HTTP_200_OK,
)
async def search_rates(payload: RateSearchRequest, use_cases=Depends(get_use_cases)) -> RateSearchResponse:
    if payload.check_out <= payload.check_in:
        raise ValidationError("check_out", "debe ser posterior a check_in")
    priced = await use_cases["search_rates"].execute(
        SearchRequest(
            hotel_id=payload.hotel_id,
            check_in=payload.check_in,
            check_out=payload.check_out,
            adults=payload.adults,
            children=list(payload.children),
            currency=payload.currency,
            residency=payload.residency,
        ),
        hotel=HotelFacts(
            country=payload.country,
            city=payload.city,
            star_rating=payload.star_rating,
            hotel_brand=payload.hotel_brand,
        ),
        customer_type=payload.customer_type.value,
    )
    return RateSearchResponse(
        hotel_id=payload.hotel_id,
        rates=[
            PricedRateResponse(
                match_hash=item.offer.match_hash,
                book_hash=item.offer.book_hash,
                hotel_id=item.offer.hotel_id,
                room_name=item.offer.room_name,
                meal_type=item.offer.meal_type,
                is_refundable=item.offer.is_refundable,
                free_cancellation_before=item.offer.free_cancellation_before,
                price=PriceBreakdownResponse.from_dto(item.price),
            )
            for item in priced
        ],
    )


@router.post(
    "/quotes",
    response_model=PriceBreakdownResponse,
    status_code=status.HTTP_200_OK,
)
async def quote(payload: QuoteRequest, use_cases=Depends(get_use_cases)) -> PriceBreakdownResponse:
    """Prices a base amount; usage counters are never touched at quote time."""
    breakdown = await use_cases["quote_rate"].execute(payload.to_context(payload.base_price), payload.currency)
    return PriceBreakdownResponse.from_dto(breakdown)
