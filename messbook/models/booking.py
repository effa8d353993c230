"""Booking model."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from messbook.database import Base, JSONDict

if TYPE_CHECKING:
    from messbook.models.listing import Listing
    from messbook.models.payment import PaymentSession
    from messbook.models.user import User


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Booking(Base):
    """A renter's reservation of a listing.

    ``booking_status`` and ``payment_status`` are only ever changed through
    conditional updates keyed on their previously read values.
    """

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False, index=True
    )
    renter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    # Details
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)  # monthly_rate * advance_months
    payable_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    advance_months: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Tenant
    tenant_name: Mapped[str] = mapped_column(String(200), nullable=False)
    tenant_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    tenant_email: Mapped[str] = mapped_column(String(255), nullable=False)
    emergency_contact: Mapped[dict | None] = mapped_column(JSONDict)

    # Status
    booking_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, confirmed, cancelled, rejected, completed
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )  # pending, paid, failed, refunded

    # Payment
    payment_method: Mapped[str | None] = mapped_column(String(30))
    transaction_id: Mapped[str | None] = mapped_column(String(100), index=True)
    payment_details: Mapped[dict | None] = mapped_column(JSONDict)
    payment_initiated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Refund
    refund_amount: Mapped[int] = mapped_column(Integer, default=0)
    refund_reason: Mapped[str | None] = mapped_column(Text)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refunded_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[str | None] = mapped_column(String(10))  # renter, owner, admin, system

    admin_notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    # Relationships
    listing: Mapped["Listing"] = relationship("Listing", back_populates="bookings")
    renter: Mapped["User"] = relationship("User", foreign_keys=[renter_id])
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])
    payment_sessions: Mapped[list["PaymentSession"]] = relationship(
        "PaymentSession", back_populates="booking", cascade="all, delete-orphan", passive_deletes=True
    )

    def snapshot(self) -> dict:
        """Current status fields, as returned with conflicts."""
        return {
            "booking_id": str(self.id),
            "booking_status": self.booking_status,
            "payment_status": self.payment_status,
        }
