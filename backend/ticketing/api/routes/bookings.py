"""
Booking endpoints with concurrency-safe admission.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.security import Identity, get_current_identity
from ticketing.db.session import get_db
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.schemas.booking import BookingCreate, BookingResponse
from ticketing.schemas.common import ApiResponse
from ticketing.schemas.event import EventSummary
from ticketing.services.booking_service import (
    cancel_booking,
    get_booking,
    list_bookings,
    request_booking,
)
from ticketing.services.cache_service import invalidate_event_cache

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def to_booking_response(
    booking: Booking,
    event: Optional[Event] = None,
    tickets_remaining: Optional[int] = None,
) -> BookingResponse:
    response = BookingResponse.model_validate(booking)
    response.tickets_remaining = tickets_remaining
    response.event = EventSummary.model_validate(event) if event is not None else None
    return response


@router.post("/", response_model=ApiResponse[BookingResponse], status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """
    Book seats or general-admission tickets for an event.

    Price comes from the catalog, never from the client. Concurrent
    requests for the same event are serialized per event; the loser of a
    race for the last ticket or a seat gets 409.
    """
    confirmation = await request_booking(
        db,
        event_id=booking_data.event_id,
        user_id=identity.user_id,
        seats=booking_data.seats,
        quantity=booking_data.quantity,
        payment_method=booking_data.payment_method,
        notes=booking_data.notes,
    )
    # Listing availability changed
    await invalidate_event_cache()
    return ApiResponse(
        data=to_booking_response(
            confirmation.booking, confirmation.event, confirmation.tickets_remaining
        ),
        message="Booking confirmed.",
    )


@router.get("/", response_model=ApiResponse[list[BookingResponse]])
async def list_user_bookings(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Get the caller's bookings; admins see every booking."""
    rows = await list_bookings(db, identity)
    return ApiResponse(data=[to_booking_response(booking, event) for booking, event in rows])


@router.get("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def get_booking_endpoint(
    booking_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Booking detail with the event's current tickets remaining."""
    detail = await get_booking(db, booking_id, identity)
    return ApiResponse(
        data=to_booking_response(detail.booking, detail.event, detail.tickets_remaining)
    )


@router.delete("/{booking_id}", response_model=ApiResponse[BookingResponse])
async def cancel_booking_endpoint(
    booking_id: int,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and release its seats and quantity."""
    booking = await cancel_booking(db, booking_id, identity)
    await invalidate_event_cache()
    return ApiResponse(
        data=to_booking_response(booking), message="Booking cancelled successfully."
    )
