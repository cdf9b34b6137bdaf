"""
Booking model representing a user's reservation for an event.

Key design decisions:
- Status field allows cancellation without deleting records
- `seats` keeps the labels the booking was made with, for history
- BookingSeat rows are the live seat holds. UNIQUE(event_id, label) makes a
  double-booked seat fail at commit even if a pre-check was bypassed.
  Holds are deleted on cancellation, which frees the seat.
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from ticketing.db.base import Base, TimestampMixin, one_of

PAYMENT_METHODS = ("card", "upi", "wallet", "cash", "other")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
BOOKING_STATUSES = ("confirmed", "cancelled")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    seats = Column(JSON, nullable=False, default=list)
    quantity = Column(Integer, nullable=False)
    price_per_seat = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)
    payment_method = Column(String(20), nullable=False, default="card")
    payment_status = Column(String(20), nullable=False, default="paid")
    status = Column(String(20), nullable=False, default="confirmed")  # confirmed, cancelled
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    notes = Column(String(1000), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_quantity_positive"),
        CheckConstraint("price_per_seat >= 0", name="check_booking_price_non_negative"),
        CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        CheckConstraint(one_of("status", BOOKING_STATUSES), name="check_booking_status"),
        CheckConstraint(one_of("payment_method", PAYMENT_METHODS), name="check_booking_payment_method"),
        CheckConstraint(one_of("payment_status", PAYMENT_STATUSES), name="check_booking_payment_status"),
        # Aggregate query: active bookings of one event
        Index("ix_bookings_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"


class BookingSeat(Base):
    __tablename__ = "booking_seats"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    label = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "label", name="uq_event_seat_label"),
    )

    def __repr__(self) -> str:
        return f"<BookingSeat(event={self.event_id}, label={self.label}, booking={self.booking_id})>"
