"""
Booking service: admission control for seat and quantity reservations.

CONCURRENCY STRATEGY: Per-event claim with re-run
=================================================

Problem:
  Two users try to book the last ticket (or the same seat) simultaneously.
  Both read booked=capacity-1, both pass the check, both insert.
  Result: Overbooking.

Solution:
  Reading the aggregate, checking it and inserting the booking happen in
  one transaction that also *claims* the event row (see
  services/interfaces). Only one transaction per event can hold the claim
  at commit time:

  1. Load the event (status, capacity, version)
  2. Recompute booked quantity and taken seats from committed bookings
  3. Reject on seat conflict, then on capacity
  4. Claim: bump the event version (CAS or under row lock)
  5. Insert booking + seat holds, commit

  If the claim is lost, the whole sequence re-runs on fresh state, so the
  loser of a race observes the winner's booking and rejects with a typed
  error. UNIQUE(event_id, seat label) on seat holds is the last line of
  defence against a double-booked seat.

  Requests for different events claim different rows and never wait on
  each other.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import (
    AccessDenied,
    BookingAlreadyCancelled,
    BookingNotFound,
    CapacityExceeded,
    EventNotBookable,
    EventNotFound,
    InvalidBookingRequest,
    InvalidPaymentMethod,
    InvalidQuantity,
    InvalidSeats,
    SeatConflict,
    TicketingError,
    UserNotFound,
    ValidationError,
)
from ticketing.core.logging import get_logger
from ticketing.core.metrics import booking_latency, record_admission, record_booking_attempt
from ticketing.core.security import Identity
from ticketing.models.booking import PAYMENT_METHODS, Booking, BookingSeat
from ticketing.models.event import Event
from ticketing.models.user import User
from ticketing.services import ledger
from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.strategy_factory import get_admission

logger = get_logger(__name__)

DEFAULT_PAYMENT_METHOD = "card"


@dataclass(frozen=True)
class BookingRequest:
    """A validated booking payload."""

    seats: tuple
    quantity: int
    payment_method: str
    notes: Optional[str] = None

    @property
    def is_general_admission(self) -> bool:
        return not self.seats


@dataclass(frozen=True)
class BookingConfirmation:
    booking: Booking
    event: Event
    tickets_remaining: int


def validate_booking_request(
    seats: Optional[Iterable[Any]] = None,
    quantity: Any = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
) -> BookingRequest:
    """
    Normalize and check a raw booking payload.

    Seat labels are trimmed and case-sensitive. When seats are given,
    quantity defaults to (and must equal) the number of seats; without
    seats, quantity is required (general admission). Anything other than
    a list or tuple of seats counts as no selection.

    Every failing field is reported: a single failure raises its own
    error type, several raise InvalidBookingRequest with all of them.
    """
    problems: list[ValidationError] = []

    if not isinstance(seats, (list, tuple)):
        seats = ()
    labels = []
    for raw in seats:
        label = raw.strip() if isinstance(raw, str) else ""
        if not label:
            problems.append(InvalidSeats("Seat labels must be non-empty strings."))
            break
        if label in labels:
            problems.append(InvalidSeats(f"Seat {label} is listed more than once."))
            break
        labels.append(label)
    seats_valid = not problems

    if quantity is None:
        if labels or not seats_valid:
            quantity = len(labels)
        else:
            problems.append(
                InvalidQuantity("Provide seat selections or specify a quantity to book.")
            )
    elif isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        problems.append(InvalidQuantity("Quantity must be a positive integer."))
    elif seats_valid and labels and quantity != len(labels):
        problems.append(InvalidSeats("Quantity must match the number of selected seats."))

    method = (payment_method or DEFAULT_PAYMENT_METHOD).strip().lower()
    if method not in PAYMENT_METHODS:
        problems.append(InvalidPaymentMethod(PAYMENT_METHODS))

    if len(problems) == 1:
        raise problems[0]
    if problems:
        errors = {}
        for problem in problems:
            errors.update(problem.errors)
        raise InvalidBookingRequest(errors)

    notes = notes.strip() if isinstance(notes, str) else None
    return BookingRequest(
        seats=tuple(labels),
        quantity=quantity,
        payment_method=method,
        notes=notes or None,
    )


async def request_booking(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    seats: Optional[Iterable[Any]] = None,
    quantity: Any = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    strategy: Optional[AdmissionStrategy] = None,
) -> BookingConfirmation:
    """
    Admit or reject one booking request.

    Returns the committed booking with a fresh tickets_remaining snapshot.
    Raises a TicketingError subclass on rejection; nothing is written.
    """
    start = time.perf_counter()
    strategy = strategy or get_admission()

    try:
        request = validate_booking_request(seats, quantity, payment_method, notes)

        async def attempt() -> BookingConfirmation:
            # First statement of the transaction; on SQLite this is where a
            # busy database lock times out.
            user = await db.get(User, user_id, populate_existing=True)
            if user is None or not user.is_active:
                raise UserNotFound(user_id)

            event = await strategy.load_event(db, event_id)
            if event is None:
                raise EventNotFound(event_id)
            if not event.is_bookable:
                raise EventNotBookable(event_id, event.status)

            aggregate = await ledger.aggregate_active(db, event.id)

            conflicting = [seat for seat in request.seats if seat in aggregate.taken_seats]
            if conflicting:
                raise SeatConflict(conflicting)

            if aggregate.booked_quantity + request.quantity > event.capacity:
                raise CapacityExceeded(aggregate.remaining(event.capacity))

            if not await strategy.claim(db, event):
                raise ledger.ClaimLost()

            price_per_seat = float(event.ticket_price or 0)
            booking = Booking(
                user_id=user_id,
                event_id=event.id,
                seats=list(request.seats),
                quantity=request.quantity,
                price_per_seat=price_per_seat,
                total_price=round(price_per_seat * request.quantity, 2),
                payment_method=request.payment_method,
                payment_status="paid",
                status="confirmed",
                user_name=user.name,
                user_email=user.email,
                notes=request.notes,
            )
            await ledger.commit(db, booking)

            return BookingConfirmation(
                booking=booking,
                event=event,
                tickets_remaining=event.capacity - (aggregate.booked_quantity + request.quantity),
            )

        confirmation = await ledger.run_serialized(
            db, attempt, operation="booking", event_id=event_id
        )

    except TicketingError as e:
        await db.rollback()
        record_booking_attempt("rejected" if not e.retryable else "error")
        record_admission(False, e.code.value)
        logger.warning(
            "booking_rejected",
            event_id=event_id,
            user_id=user_id,
            code=e.code.value,
            errors=e.errors,
        )
        raise
    finally:
        booking_latency.observe(time.perf_counter() - start)

    record_booking_attempt("success")
    record_admission(True)
    logger.info(
        "booking_created",
        booking_id=confirmation.booking.id,
        user_id=user_id,
        event_id=event_id,
        seats=list(request.seats),
        general_admission=request.is_general_admission,
        quantity=request.quantity,
        tickets_remaining=confirmation.tickets_remaining,
    )
    return confirmation


async def _load_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _ensure_can_access(booking: Booking, identity: Identity) -> None:
    if booking.user_id != identity.user_id and not identity.is_admin:
        raise AccessDenied()


async def cancel_booking(db: AsyncSession, booking_id: int, identity: Identity) -> Booking:
    """
    Cancel a booking: owner or admin only.

    Flips status confirmed -> cancelled with a compare-and-swap so two
    concurrent cancels cannot both succeed, marks the payment refunded,
    releases the seat holds and bumps the event version in one commit.
    """

    async def attempt() -> Booking:
        booking = await _load_booking(db, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        _ensure_can_access(booking, identity)
        if booking.status == "cancelled":
            raise BookingAlreadyCancelled(booking_id)

        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == "confirmed")
            .values(status="cancelled", payment_status="refunded", cancelled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise BookingAlreadyCancelled(booking_id)

        await db.execute(
            delete(BookingSeat)
            .where(BookingSeat.booking_id == booking_id)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(Event)
            .where(Event.id == booking.event_id)
            .values(version=Event.version + 1)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(booking)
        await db.commit()
        return booking

    booking = await ledger.run_serialized(db, attempt, operation="booking_cancel")

    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        user_id=booking.user_id,
        cancelled_by=identity.user_id,
        event_id=booking.event_id,
        seats_released=booking.seats,
        quantity_released=booking.quantity,
    )
    return booking


async def list_bookings(db: AsyncSession, identity: Identity) -> list[tuple[Booking, Optional[Event]]]:
    """Bookings visible to the identity (own, or all for admins), newest first."""
    query = select(Booking, Event).outerjoin(Event, Event.id == Booking.event_id)
    if not identity.is_admin:
        query = query.where(Booking.user_id == identity.user_id)

    result = await db.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return [(booking, event) for booking, event in result.all()]


async def get_booking(db: AsyncSession, booking_id: int, identity: Identity) -> BookingConfirmation:
    """Booking detail with the event's current tickets remaining."""
    booking = await _load_booking(db, booking_id)
    if booking is None:
        raise BookingNotFound(booking_id)
    _ensure_can_access(booking, identity)

    event = await db.get(Event, booking.event_id, populate_existing=True)
    if event is None:
        raise EventNotFound(booking.event_id)
    aggregate = await ledger.aggregate_active(db, event.id)

    return BookingConfirmation(
        booking=booking,
        event=event,
        tickets_remaining=aggregate.remaining(event.capacity),
    )
