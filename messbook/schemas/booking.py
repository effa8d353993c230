"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EmergencyContact(BaseModel):
    name: str = Field(..., max_length=200)
    phone: str = Field(..., max_length=20)
    relation: str | None = Field(None, max_length=50)


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    listing_id: UUID
    check_in_date: date
    payable_amount: int = Field(..., gt=0)
    tenant_name: str = Field(..., min_length=1, max_length=200)
    tenant_phone: str = Field(..., min_length=6, max_length=20)
    tenant_email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    emergency_contact: EmergencyContact | None = None
    payment_method: str | None = Field(None, max_length=30)


class BookingStatusUpdate(BaseModel):
    """Owner decision on a booking."""

    booking_status: str = Field(..., pattern="^(confirmed|rejected|cancelled)$")


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    listing_id: UUID
    renter_id: UUID
    owner_id: UUID
    check_in_date: date
    advance_months: int
    total_amount: int
    payable_amount: int
    tenant_name: str
    tenant_phone: str
    tenant_email: str
    booking_status: str
    payment_status: str
    payment_method: str | None = None
    transaction_id: str | None = None
    paid_at: datetime | None = None
    refund_amount: int = 0
    refunded_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    created_at: datetime
