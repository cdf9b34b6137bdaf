"""
Pydantic schemas for booking-related request/response validation.

The request schema only checks shapes. Seat/quantity rules live in
`validate_booking_request` so that non-HTTP callers get the same checks.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from ticketing.schemas.common import CamelModel
from ticketing.schemas.event import EventSummary


class BookingCreate(CamelModel):
    event_id: int
    seats: list[str] = Field(default_factory=list)
    quantity: Optional[int] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("seats", mode="before")
    @classmethod
    def seats_as_list(cls, value):
        # null or any non-array means no seat selection
        return value if isinstance(value, list) else []


class BookingResponse(CamelModel):
    id: int
    event_id: int
    user_id: int
    seats: list[str]
    quantity: int
    price_per_seat: float
    total_price: float
    payment_method: str
    payment_status: str
    status: str
    notes: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    created_at: datetime
    cancelled_at: Optional[datetime] = None
    tickets_remaining: Optional[int] = None
    event: Optional[EventSummary] = None
