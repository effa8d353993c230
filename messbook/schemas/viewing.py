"""Viewing request schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ViewingRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    listing_id: UUID
    renter_id: UUID
    owner_id: UUID
    status: str
    preferred_date: date | None = None
    message: str | None = None
    updated_at: datetime | None = None
