"""
Event model: the catalog entry bookings are admitted against.

Key design decisions:
- Availability is NOT stored. Booked quantity and taken seats are derived
  from the bookings table on every admission attempt.
- `version` is the per-event claim token. Every write that changes what
  admission may decide (booking commit, cancellation, capacity/status
  change, delete) increments it, so concurrent writers for the same event
  serialize on this row while other events stay independent.
- Index on `date` for listing queries ordered by date.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, one_of

EVENT_TYPES = ("Movie", "Sports", "Concert", "Family")
EVENT_STATUSES = ("draft", "active", "cancelled", "archived")
UNBOOKABLE_STATUSES = ("cancelled", "archived")


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    category = Column(String(100), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    time = Column(String(10), nullable=False)
    venue = Column(String(255), nullable=False)
    ticket_price = Column(Float, nullable=False, default=0)
    capacity = Column(Integer, nullable=False)
    description = Column(String(2000), nullable=True)
    image = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("ticket_price >= 0", name="check_ticket_price_non_negative"),
        CheckConstraint(one_of("type", EVENT_TYPES), name="check_event_type"),
        CheckConstraint(one_of("status", EVENT_STATUSES), name="check_event_status"),
        Index("ix_events_date", "date"),
        Index("ix_events_type_category", "type", "category"),
    )

    @property
    def is_bookable(self) -> bool:
        return self.status not in UNBOOKABLE_STATUSES

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, capacity={self.capacity}, status={self.status})>"
