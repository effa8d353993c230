"""Payment session model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from messbook.database import Base, JSONDict

if TYPE_CHECKING:
    from messbook.models.booking import Booking


class PaymentSession(Base):
    """One attempt to collect a booking's payment through the gateway.

    Consumed at most once, by whichever confirmation path reaches it first.
    """

    __tablename__ = "payment_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Amount
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Customer snapshot and callback addresses
    customer: Mapped[dict | None] = mapped_column(JSONDict)
    success_url: Mapped[str] = mapped_column(Text, nullable=False)
    fail_url: Mapped[str] = mapped_column(Text, nullable=False)
    cancel_url: Mapped[str] = mapped_column(Text, nullable=False)
    ipn_url: Mapped[str] = mapped_column(Text, nullable=False)

    # Gateway
    gateway: Mapped[str] = mapped_column(String(30), nullable=False)
    redirect_url: Mapped[str | None] = mapped_column(Text)
    gateway_session_key: Mapped[str | None] = mapped_column(String(255))
    gateway_validation_id: Mapped[str | None] = mapped_column(String(255))
    gateway_bank_tran_id: Mapped[str | None] = mapped_column(String(255))
    gateway_response: Mapped[dict | None] = mapped_column(JSONDict)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="open"
    )  # open, consumed, failed, cancelled, duplicate
    settled_via: Mapped[str | None] = mapped_column(String(20))  # webhook, fallback, admin

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payment_sessions")
