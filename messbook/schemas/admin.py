"""Admin override schemas."""

from pydantic import BaseModel, Field


class AdminBookingStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(pending|confirmed|cancelled|rejected|completed)$")
    notes: str | None = Field(None, max_length=1000)


class AdminPaymentStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(pending|paid|failed|refunded)$")
    notes: str | None = Field(None, max_length=1000)


class RefundCreate(BaseModel):
    """Schema for a refund. Omitting ``amount`` refunds the full payable amount."""

    amount: int | None = Field(None, gt=0)
    reason: str = Field(..., min_length=1, max_length=1000)
    cancel_booking: bool = False
