"""Listing model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from messbook.database import Base

if TYPE_CHECKING:
    from messbook.models.booking import Booking
    from messbook.models.user import User


class Listing(Base):
    """A rentable mess unit.

    ``availability``, ``active_booking_id`` and ``version`` are written only by
    the consistency coordinator.
    """

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)

    # Pricing (whole currency units)
    monthly_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    advance_months: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 0-3

    # Availability
    availability: Mapped[str] = mapped_column(
        String(30), nullable=False, default="free", index=True
    )  # free, reserved_for_viewing, reserved_for_booking, booked
    active_booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_booked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    owner: Mapped["User"] = relationship("User")
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="listing")
