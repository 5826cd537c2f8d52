from fastapi import APIRouter, Depends, Request, Response, status

from app.api.dependencies import get_use_cases
from app.api.schemas.bookings import (
    AbandonResponse,
    ReservationResponse,
    StartBookingRequest,
    TransitionResponse,
)
from app.domain.entities.booking_attempt import FailureReason
from app.domain.errors import BookingTimeoutError

router = APIRouter()


@router.post(
    "/bookings",
    response_model=ReservationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_booking(
    payload: StartBookingRequest,
    request: Request,
    response: Response,
    use_cases=Depends(get_use_cases),
) -> ReservationResponse:
    """
    Confirms a priced rate. The orchestration runs in the background;
    poll GET /bookings/{correlation_id} for the outcome.

    Replaying the same correlation_id returns the existing reservation.
    """
    user_ip = request.client.host if request.client else None
    record = await use_cases["start_booking"].execute(payload.to_command(user_ip=user_ip))
    response.headers["Location"] = f"/api/v1/bookings/{record.correlation_id}"
    return ReservationResponse.from_record(record)


@router.get(
    "/bookings/{correlation_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def get_booking(correlation_id: str, use_cases=Depends(get_use_cases)) -> ReservationResponse:
    record = await use_cases["get_reservation"].execute(correlation_id)
    return ReservationResponse.from_record(record)


@router.get(
    "/bookings/{correlation_id}/transitions",
    response_model=list[TransitionResponse],
    status_code=status.HTTP_200_OK,
)
async def list_transitions(correlation_id: str, use_cases=Depends(get_use_cases)) -> list[TransitionResponse]:
    entries = await use_cases["get_reservation"].transitions(correlation_id)
    return [TransitionResponse.from_entry(entry) for entry in entries]


@router.post(
    "/bookings/{correlation_id}/abandon",
    response_model=AbandonResponse,
    status_code=status.HTTP_200_OK,
)
async def abandon_booking(correlation_id: str, use_cases=Depends(get_use_cases)) -> AbandonResponse:
    record, accepted = await use_cases["orchestrator"].request_abandon(correlation_id)
    return AbandonResponse(accepted=accepted, reservation=ReservationResponse.from_record(record))


@router.post(
    "/bookings/{correlation_id}/recheck",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def recheck_booking(correlation_id: str, use_cases=Depends(get_use_cases)) -> ReservationResponse:
    """One status read for a booking whose polling timed out."""
    record = await use_cases["orchestrator"].recheck(correlation_id)
    if record.attempt.failure_reason == FailureReason.TIMEOUT:
        raise BookingTimeoutError(correlation_id)
    return ReservationResponse.from_record(record)


@router.post(
    "/bookings/{correlation_id}/cancel",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_booking(correlation_id: str, use_cases=Depends(get_use_cases)) -> ReservationResponse:
    record = await use_cases["orchestrator"].cancel(correlation_id)
    return ReservationResponse.from_record(record)
