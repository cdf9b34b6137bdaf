from ticketing.schemas.common import ApiResponse, ErrorResponse
from ticketing.schemas.user import UserCreate, UserResponse, UserLogin, AuthResult
from ticketing.schemas.event import EventCreate, EventUpdate, EventResponse, EventSummary, EventDeleted
from ticketing.schemas.booking import BookingCreate, BookingResponse

__all__ = [
    "ApiResponse", "ErrorResponse",
    "UserCreate", "UserResponse", "UserLogin", "AuthResult",
    "EventCreate", "EventUpdate", "EventResponse", "EventSummary", "EventDeleted",
    "BookingCreate", "BookingResponse",
]
