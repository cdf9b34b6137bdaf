"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, field_validator

from ticketing.schemas.common import CamelModel

EventType = Literal["Movie", "Sports", "Concert", "Family"]
EventStatus = Literal["draft", "active", "cancelled", "archived"]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d(?:\s?(?:AM|PM|am|pm))?$"


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class EventCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: EventType
    category: str = Field(..., min_length=1, max_length=100)
    date: datetime
    time: str = Field(..., pattern=TIME_PATTERN)
    venue: str = Field(..., min_length=1, max_length=255)
    ticket_price: float = Field(..., ge=0)
    capacity: int = Field(..., gt=0, le=1_000_000)
    description: Optional[str] = Field(None, max_length=2000)
    image: Optional[str] = Field(None, max_length=1000)
    status: EventStatus = "active"

    @field_validator("name", "category", "venue", "time", mode="before")
    @classmethod
    def strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", "image")
    @classmethod
    def clean_optional(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)


class EventUpdate(CamelModel):
    """Partial update; only fields present in the payload are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[EventType] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    date: Optional[datetime] = None
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    venue: Optional[str] = Field(None, min_length=1, max_length=255)
    ticket_price: Optional[float] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, gt=0, le=1_000_000)
    description: Optional[str] = Field(None, max_length=2000)
    image: Optional[str] = Field(None, max_length=1000)
    status: Optional[EventStatus] = None

    @field_validator("name", "category", "venue", "time", mode="before")
    @classmethod
    def strip_required(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", "image")
    @classmethod
    def clean_optional(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)


class EventSummary(CamelModel):
    id: int
    name: str
    type: str
    category: str
    date: datetime
    time: str
    venue: str
    ticket_price: float
    capacity: int
    status: str


class EventResponse(EventSummary):
    description: Optional[str]
    image: Optional[str]
    created_by: Optional[int]
    created_at: datetime
    tickets_sold: int = 0
    tickets_available: int = 0


class EventDeleted(CamelModel):
    id: int
