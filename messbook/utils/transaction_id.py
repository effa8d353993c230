"""Transaction identifier generation."""

import random
import string
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


def format_transaction_id(booking_id: UUID | str, now: datetime | None = None) -> str:
    """Human-traceable id: ``BOOKING-<ddmmyyyy>-<HHMMSS>-<booking id suffix>``."""
    now = now or datetime.now(UTC)
    suffix = str(booking_id).replace("-", "")[-6:].upper()
    return f"BOOKING-{now:%d%m%Y}-{now:%H%M%S}-{suffix}"


async def generate_transaction_id(db: AsyncSession, booking_id: UUID | str) -> str:
    """Generate a unique transaction id for a new payment session.

    Args:
        db: Database session for uniqueness check
        booking_id: Booking the session belongs to

    Returns:
        str: Unique id like 'BOOKING-19102026-143005-9F3A1C', with a random
        tail appended when the same booking initiates twice in one second
    """
    from messbook.models.payment import PaymentSession

    base = format_transaction_id(booking_id)
    candidate = base
    while True:
        result = await db.execute(
            select(PaymentSession.id).where(PaymentSession.transaction_id == candidate)
        )
        if result.scalar_one_or_none() is None:
            return candidate
        random_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
        candidate = f"{base}-{random_part}"
