from ticketing.models.user import User
from ticketing.models.event import Event
from ticketing.models.booking import Booking, BookingSeat

__all__ = ["User", "Event", "Booking", "BookingSeat"]
