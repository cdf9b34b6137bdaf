"""
Typed errors raised by the booking and catalog services.

Services never build HTTP responses. Each error carries a stable code, a
user-safe message and an optional per-field ``errors`` map; the API layer
maps error families to status codes in one place.
"""

from enum import Enum
from typing import Iterable, Optional


class ErrorCode(str, Enum):
    INVALID_SEATS = "INVALID_SEATS"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PAYMENT_METHOD = "INVALID_PAYMENT_METHOD"
    INVALID_BOOKING_REQUEST = "INVALID_BOOKING_REQUEST"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    EVENT_NOT_BOOKABLE = "EVENT_NOT_BOOKABLE"
    SEAT_CONFLICT = "SEAT_CONFLICT"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    CAPACITY_BELOW_BOOKED = "CAPACITY_BELOW_BOOKED"
    EVENT_HAS_ACTIVE_BOOKINGS = "EVENT_HAS_ACTIVE_BOOKINGS"
    BOOKING_ALREADY_CANCELLED = "BOOKING_ALREADY_CANCELLED"
    ACCESS_DENIED = "ACCESS_DENIED"
    LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"


class TicketingError(Exception):
    """Base error with code, message and field-keyed details."""

    code: ErrorCode
    retryable = False

    def __init__(self, message: str, errors: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


# --- validation: caller-correctable, never retried ---

class ValidationError(TicketingError):
    pass


class InvalidSeats(ValidationError):
    code = ErrorCode.INVALID_SEATS

    def __init__(self, detail: str) -> None:
        super().__init__("Validation failed.", {"seats": detail})


class InvalidQuantity(ValidationError):
    code = ErrorCode.INVALID_QUANTITY

    def __init__(self, detail: str) -> None:
        super().__init__("Validation failed.", {"quantity": detail})


class InvalidPaymentMethod(ValidationError):
    code = ErrorCode.INVALID_PAYMENT_METHOD

    def __init__(self, allowed: Iterable[str]) -> None:
        super().__init__(
            "Validation failed.",
            {"paymentMethod": f"paymentMethod must be one of: {', '.join(allowed)}."},
        )


class InvalidBookingRequest(ValidationError):
    """More than one field of a booking payload failed; `errors` has them all."""

    code = ErrorCode.INVALID_BOOKING_REQUEST

    def __init__(self, errors: dict) -> None:
        super().__init__("Validation failed.", errors)


# --- not found: terminal for the request ---

class NotFoundError(TicketingError):
    pass


class EventNotFound(NotFoundError):
    code = ErrorCode.EVENT_NOT_FOUND

    def __init__(self, event_id: int) -> None:
        super().__init__("Event not found.", {"eventId": f"No event with id {event_id}."})
        self.event_id = event_id


class BookingNotFound(NotFoundError):
    code = ErrorCode.BOOKING_NOT_FOUND

    def __init__(self, booking_id: int) -> None:
        super().__init__("Booking not found.")
        self.booking_id = booking_id


class UserNotFound(NotFoundError):
    code = ErrorCode.USER_NOT_FOUND

    def __init__(self, user_id: int) -> None:
        super().__init__("User account not found.")
        self.user_id = user_id


# --- state conflicts: re-fetch availability, maybe retry differently ---

class ConflictError(TicketingError):
    pass


class EventNotBookable(ConflictError):
    code = ErrorCode.EVENT_NOT_BOOKABLE

    def __init__(self, event_id: int, status: str) -> None:
        super().__init__(
            "Bookings are not allowed for this event.",
            {"eventId": f"Event is {status}."},
        )
        self.event_id = event_id
        self.status = status


class SeatConflict(ConflictError):
    code = ErrorCode.SEAT_CONFLICT

    def __init__(self, conflicting_seats: list) -> None:
        super().__init__(
            "Selected seats are no longer available.",
            {"seats": list(conflicting_seats)},
        )
        self.conflicting_seats = list(conflicting_seats)


class CapacityExceeded(ConflictError):
    code = ErrorCode.CAPACITY_EXCEEDED

    def __init__(self, remaining: int) -> None:
        super().__init__(
            "Not enough tickets available.",
            {"quantity": f"Only {remaining} ticket(s) remaining."},
        )
        self.remaining = remaining


class CapacityBelowBooked(ConflictError):
    code = ErrorCode.CAPACITY_BELOW_BOOKED

    def __init__(self, booked: int) -> None:
        super().__init__(
            "Capacity cannot be less than booked tickets.",
            {"capacity": f"Already {booked} tickets booked."},
        )
        self.booked = booked


class EventHasActiveBookings(ConflictError):
    code = ErrorCode.EVENT_HAS_ACTIVE_BOOKINGS

    def __init__(self, event_id: int) -> None:
        super().__init__("Cannot delete event with active bookings.")
        self.event_id = event_id


class BookingAlreadyCancelled(ConflictError):
    code = ErrorCode.BOOKING_ALREADY_CANCELLED

    def __init__(self, booking_id: int) -> None:
        super().__init__("Booking is already cancelled.")
        self.booking_id = booking_id


class AccessDenied(TicketingError):
    code = ErrorCode.ACCESS_DENIED

    def __init__(self, message: str = "Access denied.") -> None:
        super().__init__(message)


# --- infrastructure: retryable with backoff by the caller ---

class LedgerUnavailable(TicketingError):
    code = ErrorCode.LEDGER_UNAVAILABLE
    retryable = True

    def __init__(self, message: str = "Booking service is busy. Please try again.") -> None:
        super().__init__(message)
