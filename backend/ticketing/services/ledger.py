"""
Booking ledger: committed booking records and the aggregate derived from them.

The aggregate (booked quantity, taken seats) is recomputed from committed
rows on every call. It is never cached: a cached count is exactly the
stale read that lets two requests sell the same last ticket.

`run_serialized` is the only way callers reach the ledger for writes that
depend on the aggregate. It runs one attempt per transaction and re-runs
the attempt when the event claim was lost or a seat hold collided at
commit. Any other database failure surfaces as LedgerUnavailable.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.config import settings
from ticketing.core.errors import LedgerUnavailable, TicketingError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_db_retry
from ticketing.models.booking import Booking, BookingSeat

logger = get_logger(__name__)

T = TypeVar("T")

ACTIVE = Booking.status != "cancelled"


class ClaimLost(Exception):
    """The event changed between reading it and claiming it."""


@dataclass(frozen=True)
class ActiveAggregate:
    booked_quantity: int
    taken_seats: frozenset

    def remaining(self, capacity: int) -> int:
        return max(capacity - self.booked_quantity, 0)


async def aggregate_active(db: AsyncSession, event_id: int) -> ActiveAggregate:
    """Sum of quantities and union of seats over non-cancelled bookings."""
    booked = await db.scalar(
        select(func.coalesce(func.sum(Booking.quantity), 0)).where(
            Booking.event_id == event_id, ACTIVE
        )
    )
    labels = await db.scalars(
        select(BookingSeat.label)
        .join(Booking, Booking.id == BookingSeat.booking_id)
        .where(BookingSeat.event_id == event_id, ACTIVE)
    )
    return ActiveAggregate(booked_quantity=int(booked or 0), taken_seats=frozenset(labels))


async def booked_quantities(db: AsyncSession, event_ids: Iterable[int]) -> dict[int, int]:
    """Active booked quantity per event, for listings. Missing ids mean zero."""
    ids = list(event_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Booking.event_id, func.sum(Booking.quantity))
        .where(Booking.event_id.in_(ids), ACTIVE)
        .group_by(Booking.event_id)
    )
    return {event_id: int(total) for event_id, total in result.all()}


async def has_active_bookings(db: AsyncSession, event_id: int) -> bool:
    found = await db.scalar(
        select(Booking.id).where(Booking.event_id == event_id, ACTIVE).limit(1)
    )
    return found is not None


async def commit(db: AsyncSession, booking: Booking) -> Booking:
    """
    Append a booking plus one hold per seat and commit them together.
    A seat already held by another booking raises IntegrityError here.
    """
    db.add(booking)
    await db.flush()
    db.add_all(
        BookingSeat(booking_id=booking.id, event_id=booking.event_id, label=label)
        for label in booking.seats
    )
    await db.commit()
    return booking


async def run_serialized(
    db: AsyncSession,
    attempt: Callable[[], Awaitable[T]],
    *,
    operation: str,
    event_id: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run `attempt` until it commits, rolling back between tries.

    Domain rejections roll back and propagate untouched, so a rejected
    request leaves no trace in the ledger.
    """
    max_attempts = max_attempts or settings.BOOKING_MAX_ATTEMPTS

    for attempt_no in range(1, max_attempts + 1):
        try:
            return await attempt()
        except ClaimLost:
            reason = "version_conflict"
        except IntegrityError:
            reason = "seat_hold_conflict"
        except TicketingError:
            await db.rollback()
            raise
        except (DBAPIError, asyncio.TimeoutError) as e:
            await db.rollback()
            logger.error(
                f"{operation}_ledger_unavailable",
                event_id=event_id,
                attempt=attempt_no,
                error=str(e),
            )
            raise LedgerUnavailable() from e

        await db.rollback()
        record_db_retry()
        logger.info(
            f"{operation}_retry",
            event_id=event_id,
            attempt=attempt_no,
            reason=reason,
        )

    logger.warning(f"{operation}_attempts_exhausted", event_id=event_id, attempts=max_attempts)
    raise LedgerUnavailable("Booking failed due to high demand. Please try again.")
