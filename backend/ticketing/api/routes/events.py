"""
Event endpoints with Redis caching on list operations.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.logging import get_logger
from ticketing.core.security import Identity, require_roles
from ticketing.db.session import get_db
from ticketing.models.event import Event
from ticketing.schemas.common import ApiResponse
from ticketing.schemas.event import (
    EventCreate,
    EventDeleted,
    EventResponse,
    EventStatus,
    EventType,
    EventUpdate,
)
from ticketing.services import event_service
from ticketing.services.cache_service import (
    get_cached_events,
    invalidate_event_cache,
    set_cached_events,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])

require_organizer = require_roles("organizer", "admin")


def to_event_response(event: Event, sold: int) -> EventResponse:
    response = EventResponse.model_validate(event)
    response.tickets_sold = sold
    response.tickets_available = max(event.capacity - sold, 0)
    return response


async def _with_availability(db: AsyncSession, event: Event) -> EventResponse:
    sold = await event_service.availability(db, [event])
    return to_event_response(event, sold[event.id])


@router.get("/", response_model=ApiResponse[list[EventResponse]])
async def list_events_endpoint(
    type: Optional[EventType] = Query(None),
    category: Optional[str] = Query(None),
    status: Optional[EventStatus] = Query(None),
    search: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with live availability.
    Results are cached in Redis for 5 minutes and invalidated whenever
    events or bookings change.
    """
    filters = {
        "type": type,
        "category": category,
        "status": status,
        "search": search,
        "from": date_from,
        "to": date_to,
    }

    cached = await get_cached_events(filters)
    if cached is not None:
        logger.info("events_list_cache_hit", count=len(cached))
        return ApiResponse(data=[EventResponse.model_validate(item) for item in cached])

    events = await event_service.list_events(
        db,
        type=type,
        category=category,
        status=status,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )
    sold = await event_service.availability(db, events)
    data = [to_event_response(event, sold[event.id]) for event in events]

    await set_cached_events(
        filters, [item.model_dump(mode="json", by_alias=True) for item in data]
    )
    return ApiResponse(data=data)


@router.get("/{event_id}", response_model=ApiResponse[EventResponse])
async def get_event_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single event by ID. Not cached (needs real-time availability)."""
    event = await event_service.get_event(db, event_id)
    return ApiResponse(data=await _with_availability(db, event))


@router.post("/", response_model=ApiResponse[EventResponse], status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    identity: Identity = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Organizers and admins only."""
    event = await event_service.create_event(db, event_data, identity)
    await invalidate_event_cache()
    return ApiResponse(data=to_event_response(event, 0), message="Event created successfully.")


@router.put("/{event_id}", response_model=ApiResponse[EventResponse])
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    identity: Identity = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    """
    Partially update an event. Organizers may only touch their own events (403).
    Capacity cannot drop below the tickets already booked (409).
    """
    event = await event_service.update_event(db, event_id, event_data, identity)
    await invalidate_event_cache()
    return ApiResponse(
        data=await _with_availability(db, event), message="Event updated successfully."
    )


@router.delete("/{event_id}", response_model=ApiResponse[EventDeleted])
async def delete_event_endpoint(
    event_id: int,
    identity: Identity = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event (creator or admin). Refused with 409 while it has active bookings."""
    await event_service.delete_event(db, event_id, identity)
    await invalidate_event_cache()
    return ApiResponse(data=EventDeleted(id=event_id), message="Event deleted successfully.")
