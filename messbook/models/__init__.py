"""Database models."""

from messbook.models.admin import AuditLog
from messbook.models.booking import Booking
from messbook.models.listing import Listing
from messbook.models.payment import PaymentSession
from messbook.models.user import User
from messbook.models.viewing_request import ViewingRequest

__all__ = [
    "User",
    "Listing",
    "Booking",
    "PaymentSession",
    "ViewingRequest",
    "AuditLog",
]
