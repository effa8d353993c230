"""Payment-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CustomerInfo(BaseModel):
    """Overrides for the customer block sent to the gateway."""

    name: str | None = Field(None, max_length=200)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=20)
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    postcode: str | None = Field(None, max_length=20)


class PaymentInitiate(BaseModel):
    booking_id: UUID
    customer_info: CustomerInfo | None = None


class PaymentSessionResponse(BaseModel):
    """Returned by initiate; the client redirects to ``payment_url``."""

    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    booking_id: UUID
    amount: int
    currency: str
    gateway: str
    payment_url: str | None = Field(None, validation_alias="redirect_url")


class FallbackConfirm(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=100)


class SettlementResponse(BaseModel):
    outcome: str
    transaction_id: str | None = None
    booking_id: UUID
    booking_status: str
    payment_status: str


class PaymentRecordResponse(BaseModel):
    """A booking seen from the payment side, for the admin payment list."""

    model_config = ConfigDict(from_attributes=True)

    booking_id: UUID = Field(validation_alias="id")
    transaction_id: str | None = None
    listing_id: UUID
    renter_id: UUID
    owner_id: UUID
    tenant_name: str
    tenant_email: str
    amount: int = Field(validation_alias="payable_amount")
    payment_status: str
    payment_method: str | None = None
    booking_status: str
    payment_initiated_at: datetime | None = None
    paid_at: datetime | None = None
    refund_amount: int = 0
    refunded_at: datetime | None = None
