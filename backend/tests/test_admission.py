"""
Admission control under concurrency.

Every request runs in its own session, like separate app workers, and the
requests are fired together with asyncio.gather. Both admission strategies
must keep the same guarantees.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from ticketing.core.errors import (
    CapacityBelowBooked,
    CapacityExceeded,
    EventNotBookable,
    EventNotFound,
    InvalidBookingRequest,
    InvalidPaymentMethod,
    InvalidQuantity,
    InvalidSeats,
    LedgerUnavailable,
    SeatConflict,
    UserNotFound,
)
from ticketing.core.security import Identity
from ticketing.models.booking import Booking, BookingSeat
from ticketing.services import event_service, ledger
from ticketing.services.booking_service import (
    cancel_booking,
    request_booking,
    validate_booking_request,
)
from ticketing.services.interfaces import OptimisticAdmission, PessimisticAdmission
from ticketing.services.strategy_factory import get_admission_strategy

STRATEGIES = [OptimisticAdmission(), PessimisticAdmission()]


@pytest.fixture(params=STRATEGIES, ids=lambda strategy: strategy.name)
def strategy(request):
    return request.param


async def book_in_own_session(session_factory, strategy, event_id, user_id, **kwargs):
    async with session_factory() as session:
        return await request_booking(
            session, event_id=event_id, user_id=user_id, strategy=strategy, **kwargs
        )


async def aggregate(session_factory, event_id):
    async with session_factory() as session:
        return await ledger.aggregate_active(session, event_id)


async def booking_count(session_factory, event_id):
    async with session_factory() as session:
        return await session.scalar(
            select(func.count(Booking.id)).where(Booking.event_id == event_id)
        )


# --- request validation ---

def test_validate_general_admission():
    request = validate_booking_request(quantity=3)
    assert request.seats == ()
    assert request.quantity == 3
    assert request.payment_method == "card"
    assert request.is_general_admission


def test_validate_seats_trim_and_default_quantity():
    request = validate_booking_request(seats=[" A1 ", "a1"], payment_method=" Wallet ", notes="  ")
    assert request.seats == ("A1", "a1")
    assert request.quantity == 2
    assert request.payment_method == "wallet"
    assert request.notes is None
    assert not request.is_general_admission


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"seats": ["A1", "A2"], "quantity": 3}, InvalidSeats),
        ({"seats": ["A1", " A1"]}, InvalidSeats),
        ({"seats": [""]}, InvalidSeats),
        ({"seats": [7]}, InvalidSeats),
        ({}, InvalidQuantity),
        ({"quantity": 0}, InvalidQuantity),
        ({"quantity": True}, InvalidQuantity),
        ({"quantity": "2"}, InvalidQuantity),
        ({"quantity": 1, "payment_method": "cheque"}, InvalidPaymentMethod),
    ],
)
def test_validate_rejects(kwargs, error):
    with pytest.raises(error):
        validate_booking_request(**kwargs)


def test_validate_reports_every_failing_field():
    with pytest.raises(InvalidBookingRequest) as exc_info:
        validate_booking_request(seats=["A1", "A1"], payment_method="cheque")
    assert set(exc_info.value.errors) == {"seats", "paymentMethod"}

    with pytest.raises(InvalidBookingRequest) as exc_info:
        validate_booking_request(quantity=-1, payment_method="cheque")
    assert set(exc_info.value.errors) == {"quantity", "paymentMethod"}


def test_validate_non_list_seats_mean_no_selection():
    request = validate_booking_request(seats="A1", quantity=2)
    assert request.seats == ()
    assert request.quantity == 2

    with pytest.raises(InvalidQuantity):
        validate_booking_request(seats=None)


def test_unknown_strategy_name():
    with pytest.raises(ValueError):
        get_admission_strategy("carrier-pigeon")


# --- single requests ---

@pytest.mark.asyncio
async def test_success_prices_from_catalog(session_factory, strategy, test_event, test_user):
    confirmation = await book_in_own_session(
        session_factory, strategy, test_event.id, test_user.id, quantity=5
    )
    assert confirmation.booking.total_price == 600
    assert confirmation.booking.price_per_seat == 120
    assert confirmation.tickets_remaining == 95
    assert confirmation.event.id == test_event.id


@pytest.mark.asyncio
async def test_seat_conflict_leaves_ledger_unchanged(session_factory, strategy, test_event, test_user):
    event_id = test_event.id
    await book_in_own_session(session_factory, strategy, event_id, test_user.id, seats=["A1"])
    before = await aggregate(session_factory, event_id)

    with pytest.raises(SeatConflict) as exc_info:
        await book_in_own_session(
            session_factory, strategy, event_id, test_user.id, seats=["A1", "A2"]
        )

    assert exc_info.value.conflicting_seats == ["A1"]
    assert await aggregate(session_factory, event_id) == before
    assert await booking_count(session_factory, event_id) == 1


@pytest.mark.asyncio
async def test_count_mismatch_rejected_without_mutation(session_factory, strategy, test_event, test_user):
    event_id = test_event.id
    with pytest.raises(InvalidSeats):
        await book_in_own_session(
            session_factory, strategy, event_id, test_user.id, seats=["A1", "A2"], quantity=3
        )
    assert await booking_count(session_factory, event_id) == 0


@pytest.mark.asyncio
async def test_cancelled_event_not_bookable(session_factory, strategy, cancelled_event, test_user):
    with pytest.raises(EventNotBookable):
        await book_in_own_session(
            session_factory, strategy, cancelled_event.id, test_user.id, quantity=1
        )


@pytest.mark.asyncio
async def test_archived_event_not_bookable_but_draft_is(session_factory, strategy, event_factory, test_user):
    archived = await event_factory(status="archived")
    draft = await event_factory(status="draft")

    with pytest.raises(EventNotBookable):
        await book_in_own_session(session_factory, strategy, archived.id, test_user.id, quantity=1)

    confirmation = await book_in_own_session(
        session_factory, strategy, draft.id, test_user.id, quantity=1
    )
    assert confirmation.booking.status == "confirmed"


@pytest.mark.asyncio
async def test_unknown_event_and_user(session_factory, strategy, test_event, test_user):
    with pytest.raises(EventNotFound):
        await book_in_own_session(session_factory, strategy, 99999, test_user.id, quantity=1)
    with pytest.raises(UserNotFound):
        await book_in_own_session(session_factory, strategy, test_event.id, 99999, quantity=1)


@pytest.mark.asyncio
async def test_capacity_exceeded_reports_remaining(session_factory, strategy, event_factory, test_user):
    event = await event_factory(capacity=10)
    await book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=7)

    with pytest.raises(CapacityExceeded) as exc_info:
        await book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=4)
    assert exc_info.value.remaining == 3

    # Exactly filling the event is allowed
    confirmation = await book_in_own_session(
        session_factory, strategy, event.id, test_user.id, quantity=3
    )
    assert confirmation.tickets_remaining == 0


@pytest.mark.asyncio
async def test_cancel_releases_seats_and_quantity(session_factory, strategy, test_event, test_user):
    event_id = test_event.id
    confirmation = await book_in_own_session(
        session_factory, strategy, event_id, test_user.id, seats=["C1", "C2"]
    )

    async with session_factory() as session:
        cancelled = await cancel_booking(
            session, confirmation.booking.id, Identity(user_id=test_user.id, role="user")
        )
    assert cancelled.status == "cancelled"

    after = await aggregate(session_factory, event_id)
    assert after.booked_quantity == 0
    assert after.taken_seats == frozenset()

    async with session_factory() as session:
        holds = await session.scalar(select(func.count(BookingSeat.id)))
    assert holds == 0


# --- concurrent requests ---

@pytest.mark.asyncio
async def test_last_ticket_goes_to_exactly_one(session_factory, strategy, event_factory, test_user, other_user):
    event = await event_factory(capacity=1)

    results = await asyncio.gather(
        book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=1),
        book_in_own_session(session_factory, strategy, event.id, other_user.id, quantity=1),
        return_exceptions=True,
    )

    errors = [result for result in results if isinstance(result, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], CapacityExceeded)
    assert await booking_count(session_factory, event.id) == 1


@pytest.mark.asyncio
async def test_no_overselling_under_contention(session_factory, strategy, event_factory, test_user):
    event = await event_factory(capacity=5)

    results = await asyncio.gather(
        *(
            book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=1)
            for _ in range(12)
        ),
        return_exceptions=True,
    )

    admitted = [result for result in results if not isinstance(result, Exception)]
    rejected = [result for result in results if isinstance(result, Exception)]
    assert len(admitted) == 5
    assert all(isinstance(error, CapacityExceeded) for error in rejected)

    state = await aggregate(session_factory, event.id)
    assert state.booked_quantity == 5
    assert sorted(c.tickets_remaining for c in admitted) == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_same_seat_never_double_booked(session_factory, strategy, test_event, test_user, other_user):
    event_id = test_event.id
    users = [test_user.id, other_user.id] * 4

    results = await asyncio.gather(
        *(
            book_in_own_session(session_factory, strategy, event_id, user_id, seats=["A1", f"Z{n}"])
            for n, user_id in enumerate(users)
        ),
        return_exceptions=True,
    )

    admitted = [result for result in results if not isinstance(result, Exception)]
    rejected = [result for result in results if isinstance(result, Exception)]
    assert len(admitted) == 1
    assert all(isinstance(error, SeatConflict) for error in rejected)
    assert all(error.conflicting_seats == ["A1"] for error in rejected)

    async with session_factory() as session:
        labels = list(await session.scalars(select(BookingSeat.label)))
    assert sorted(labels) == sorted(admitted[0].booking.seats)


@pytest.mark.asyncio
async def test_mixed_seats_and_quantity_within_capacity(session_factory, strategy, event_factory, test_user):
    event = await event_factory(capacity=6)
    requests = [
        {"seats": ["A1", "A2"]},
        {"seats": ["A2", "A3"]},
        {"quantity": 2},
        {"quantity": 3},
        {"seats": ["B1"]},
    ]

    await asyncio.gather(
        *(
            book_in_own_session(session_factory, strategy, event.id, test_user.id, **kwargs)
            for kwargs in requests
        ),
        return_exceptions=True,
    )

    async with session_factory() as session:
        rows = list(
            await session.scalars(
                select(Booking).where(Booking.event_id == event.id, Booking.status == "confirmed")
            )
        )
    assert sum(row.quantity for row in rows) <= 6
    seats = [seat for row in rows for seat in row.seats]
    assert len(seats) == len(set(seats))


@pytest.mark.asyncio
async def test_different_events_do_not_block_each_other(session_factory, strategy, event_factory, test_user):
    first = await event_factory(capacity=1)
    second = await event_factory(capacity=1)

    results = await asyncio.gather(
        book_in_own_session(session_factory, strategy, first.id, test_user.id, quantity=1),
        book_in_own_session(session_factory, strategy, second.id, test_user.id, quantity=1),
    )
    assert [result.event.id for result in results] == [first.id, second.id]


@pytest.mark.asyncio
async def test_capacity_decrease_races_booking(session_factory, strategy, event_factory, test_user):
    """A shrink and a booking on the same snapshot can never both pass."""
    event = await event_factory(capacity=10)
    await book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=9)

    async def shrink():
        async with session_factory() as session:
            return await event_service.update_capacity(session, event.id, 9, strategy=strategy)

    results = await asyncio.gather(
        shrink(),
        book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=1),
        return_exceptions=True,
    )

    errors = [result for result in results if isinstance(result, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], (CapacityBelowBooked, CapacityExceeded))

    async with session_factory() as session:
        current = await event_service.get_event(session, event.id)
        state = await ledger.aggregate_active(session, event.id)
    assert state.booked_quantity <= current.capacity


@pytest.mark.asyncio
async def test_update_capacity_below_booked(session_factory, strategy, event_factory, test_user):
    event = await event_factory(capacity=10)
    await book_in_own_session(session_factory, strategy, event.id, test_user.id, quantity=4)

    async with session_factory() as session:
        with pytest.raises(CapacityBelowBooked) as exc_info:
            await event_service.update_capacity(session, event.id, 3, strategy=strategy)
    assert exc_info.value.booked == 4

    async with session_factory() as session:
        updated = await event_service.update_capacity(session, event.id, 4, strategy=strategy)
    assert updated.capacity == 4


@pytest.mark.asyncio
async def test_get_bookable(session_factory, test_event, cancelled_event):
    async with session_factory() as session:
        event = await event_service.get_bookable(session, test_event.id)
        assert event.id == test_event.id
        with pytest.raises(EventNotBookable):
            await event_service.get_bookable(session, cancelled_event.id)
        with pytest.raises(EventNotFound):
            await event_service.get_bookable(session, 99999)


# --- ledger retry loop ---

@pytest.mark.asyncio
async def test_run_serialized_retries_lost_claims(session_factory):
    calls = []

    async def attempt():
        calls.append(1)
        if len(calls) < 3:
            raise ledger.ClaimLost()
        return "committed"

    async with session_factory() as session:
        result = await ledger.run_serialized(session, attempt, operation="test", max_attempts=5)
    assert result == "committed"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_run_serialized_gives_up_as_unavailable(session_factory):
    async def attempt():
        raise ledger.ClaimLost()

    async with session_factory() as session:
        with pytest.raises(LedgerUnavailable) as exc_info:
            await ledger.run_serialized(session, attempt, operation="test", max_attempts=2)
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_run_serialized_maps_timeouts(session_factory):
    async def attempt():
        raise asyncio.TimeoutError()

    async with session_factory() as session:
        with pytest.raises(LedgerUnavailable):
            await ledger.run_serialized(session, attempt, operation="test")


@pytest.mark.asyncio
async def test_held_lock_surfaces_as_unavailable(
    session_factory, impatient_session_factory, write_lock, strategy, test_event, test_user
):
    event_id = test_event.id
    confirmation = await book_in_own_session(
        impatient_session_factory, strategy, event_id, test_user.id, seats=["E1"]
    )

    with write_lock():
        with pytest.raises(LedgerUnavailable) as exc_info:
            await book_in_own_session(
                impatient_session_factory, strategy, event_id, test_user.id, quantity=1
            )
        assert exc_info.value.retryable

        async with impatient_session_factory() as session:
            with pytest.raises(LedgerUnavailable):
                await cancel_booking(
                    session, confirmation.booking.id, Identity(user_id=test_user.id, role="user")
                )

    after = await aggregate(session_factory, event_id)
    assert after.booked_quantity == 1
    assert after.taken_seats == frozenset({"E1"})
