"""Pydantic schemas for API validation."""

from messbook.schemas.admin import (
    AdminBookingStatusUpdate,
    AdminPaymentStatusUpdate,
    RefundCreate,
)
from messbook.schemas.booking import (
    BookingCreate,
    BookingResponse,
    BookingStatusUpdate,
    EmergencyContact,
)
from messbook.schemas.common import ok
from messbook.schemas.payment import (
    CustomerInfo,
    FallbackConfirm,
    PaymentInitiate,
    PaymentSessionResponse,
    SettlementResponse,
)
from messbook.schemas.viewing import ViewingRequestResponse

__all__ = [
    "AdminBookingStatusUpdate",
    "AdminPaymentStatusUpdate",
    "RefundCreate",
    "BookingCreate",
    "BookingResponse",
    "BookingStatusUpdate",
    "EmergencyContact",
    "ok",
    "CustomerInfo",
    "FallbackConfirm",
    "PaymentInitiate",
    "PaymentSessionResponse",
    "SettlementResponse",
    "ViewingRequestResponse",
]
