"""
Event service: the catalog bookings are admitted against.

Capacity is guarded at this boundary too. Lowering capacity runs through
the same claim-and-commit sequence as booking admission, so a capacity
decrease and a booking for the same event can never both pass their
checks against the same snapshot.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import (
    AccessDenied,
    CapacityBelowBooked,
    EventHasActiveBookings,
    EventNotBookable,
    EventNotFound,
)
from ticketing.core.logging import get_logger
from ticketing.core.security import Identity
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.schemas.event import EventCreate, EventUpdate
from ticketing.services import ledger
from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.strategy_factory import get_admission

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate, identity: Identity) -> Event:
    """Create a new event. Availability starts at full capacity."""
    event = Event(
        **event_data.model_dump(),
        created_by=identity.user_id,
        updated_by=identity.user_id,
        version=1,
    )
    db.add(event)
    await db.commit()

    logger.info(
        "event_created",
        event_id=event.id,
        name=event.name,
        capacity=event.capacity,
        created_by=identity.user_id,
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    event = await db.get(Event, event_id, populate_existing=True)
    if event is None:
        raise EventNotFound(event_id)
    return event


async def get_bookable(db: AsyncSession, event_id: int) -> Event:
    """Get an event that currently accepts bookings."""
    event = await get_event(db, event_id)
    if not event.is_bookable:
        raise EventNotBookable(event_id, event.status)
    return event


async def list_events(
    db: AsyncSession,
    type: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[Event]:
    """
    List events ordered by date and time.
    Archived events are hidden unless `status` asks for them.
    Category and search match case-insensitively anywhere in the text.
    """
    query = select(Event)

    if type:
        query = query.where(Event.type == type)
    if category and category.strip():
        query = query.where(Event.category.ilike(f"%{category.strip()}%"))
    if status:
        query = query.where(Event.status == status)
    else:
        query = query.where(Event.status != "archived")
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                Event.name.ilike(pattern),
                Event.venue.ilike(pattern),
                Event.category.ilike(pattern),
            )
        )
    if date_from:
        query = query.where(Event.date >= date_from)
    if date_to:
        query = query.where(Event.date <= date_to)

    result = await db.execute(
        query.order_by(Event.date.asc(), Event.time.asc(), Event.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def _ensure_can_manage(event: Event, identity: Optional[Identity]) -> None:
    """Organizers manage only their own events; admins manage all."""
    if identity is None or identity.is_admin:
        return
    if event.created_by != identity.user_id:
        raise AccessDenied()


async def availability(db: AsyncSession, events: list[Event]) -> dict[int, int]:
    """Tickets sold per event id, from active bookings."""
    sold = await ledger.booked_quantities(db, (event.id for event in events))
    return {event.id: sold.get(event.id, 0) for event in events}


async def update_event(
    db: AsyncSession,
    event_id: int,
    event_data: EventUpdate,
    identity: Optional[Identity] = None,
    strategy: Optional[AdmissionStrategy] = None,
) -> Event:
    """
    Apply a partial update; creator or admin only.
    A capacity change is rejected if it would drop below tickets already
    booked; the check and the write share one claimed transaction.
    """
    strategy = strategy or get_admission()
    changes = event_data.model_dump(exclude_unset=True)
    # Explicit nulls are ignored for required columns
    changes = {
        key: value
        for key, value in changes.items()
        if value is not None or key in ("description", "image")
    }

    async def attempt() -> Event:
        event = await strategy.load_event(db, event_id)
        if event is None:
            raise EventNotFound(event_id)
        _ensure_can_manage(event, identity)

        new_capacity = changes.get("capacity")
        if new_capacity is not None and new_capacity < event.capacity:
            aggregate = await ledger.aggregate_active(db, event.id)
            if new_capacity < aggregate.booked_quantity:
                raise CapacityBelowBooked(aggregate.booked_quantity)

        if not await strategy.claim(db, event):
            raise ledger.ClaimLost()

        for key, value in changes.items():
            setattr(event, key, value)
        if identity is not None:
            event.updated_by = identity.user_id
        await db.commit()
        return event

    event = await ledger.run_serialized(
        db, attempt, operation="event_update", event_id=event_id
    )

    logger.info(
        "event_updated",
        event_id=event.id,
        fields=sorted(changes),
        capacity=event.capacity,
        status=event.status,
    )
    return event


async def update_capacity(
    db: AsyncSession,
    event_id: int,
    new_capacity: int,
    identity: Optional[Identity] = None,
    strategy: Optional[AdmissionStrategy] = None,
) -> Event:
    """Change capacity; never below the active booked quantity."""
    event = await update_event(
        db, event_id, EventUpdate(capacity=new_capacity), identity, strategy
    )
    logger.info("event_capacity_updated", event_id=event_id, capacity=new_capacity)
    return event


async def delete_event(
    db: AsyncSession,
    event_id: int,
    identity: Optional[Identity] = None,
    strategy: Optional[AdmissionStrategy] = None,
) -> None:
    """
    Delete an event with no active bookings; creator or admin only.
    Cancelled bookings for the event go with it.
    """
    strategy = strategy or get_admission()

    async def attempt() -> None:
        event = await strategy.load_event(db, event_id)
        if event is None:
            raise EventNotFound(event_id)
        _ensure_can_manage(event, identity)
        if await ledger.has_active_bookings(db, event.id):
            raise EventHasActiveBookings(event_id)
        if not await strategy.claim(db, event):
            raise ledger.ClaimLost()

        await db.execute(
            delete(Booking)
            .where(Booking.event_id == event.id)
            .execution_options(synchronize_session=False)
        )
        await db.delete(event)
        await db.commit()

    await ledger.run_serialized(db, attempt, operation="event_delete", event_id=event_id)
    logger.info("event_deleted", event_id=event_id)

