"""Booking lifecycle service.

Creation, owner decisions, renter cancellation and expiry of unpaid
bookings. Status writes are conditional on the status that was read, so two
concurrent actors cannot both move the same booking.
"""

import logging
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from messbook.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from messbook.domain.availability import (
    BOOKING_STATUS_CAUSES,
    Availability,
    AvailabilityCause,
)
from messbook.domain.booking_state import (
    BookingStatus,
    assert_booking_transition,
)
from messbook.domain.payment_state import PaymentStatus
from messbook.models.booking import Booking
from messbook.models.listing import Listing
from messbook.models.user import User
from messbook.services.coordinator import coordinator, listing_state
from messbook.services.notification_service import notification_service

logger = logging.getLogger(__name__)

STATUS_NOTIFICATIONS = {
    BookingStatus.CONFIRMED: notification_service.BOOKING_CONFIRMED,
    BookingStatus.REJECTED: notification_service.BOOKING_REJECTED,
    BookingStatus.CANCELLED: notification_service.BOOKING_CANCELLED,
    BookingStatus.COMPLETED: notification_service.BOOKING_COMPLETED,
}


async def get_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking", str(booking_id))
    return booking


async def refresh_booking(db: AsyncSession, booking_id: UUID) -> Booking:
    """Re-read a booking, overwriting whatever the session had cached."""
    booking = await db.get(Booking, booking_id, populate_existing=True)
    if not booking:
        raise NotFoundError("Booking", str(booking_id))
    return booking


async def update_booking_if(
    db: AsyncSession,
    booking: Booking,
    values: dict[str, Any],
    **expected: Any,
) -> bool:
    """Apply ``values`` only if every ``expected`` column still holds its value.

    Returns:
        bool: True when this call won the write
    """
    conditions = [Booking.id == booking.id]
    conditions.extend(getattr(Booking, column) == value for column, value in expected.items())

    result = await db.execute(
        update(Booking)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    for column, value in values.items():
        set_committed_value(booking, column, value)
    return True


def reject_if_paid(booking: Booking, target: BookingStatus) -> None:
    """Paid bookings are cancelled through a refund, never directly."""
    if (
        target in (BookingStatus.CANCELLED, BookingStatus.REJECTED)
        and booking.payment_status == PaymentStatus.PAID.value
    ):
        raise ConflictError(
            "Paid bookings must be refunded before they can be cancelled",
            current_state=booking.snapshot(),
        )


class BookingService:
    """Service for booking creation and status transitions."""

    async def create(
        self,
        db: AsyncSession,
        listing_id: UUID,
        renter: User,
        check_in_date: date,
        payable_amount: int,
        tenant_name: str,
        tenant_phone: str,
        tenant_email: str,
        emergency_contact: dict | None = None,
        payment_method: str | None = None,
    ) -> Booking:
        """Create a pending booking and reserve the listing for it.

        Raises:
            NotFoundError: Unknown listing
            ForbiddenError: Suspended renter account
            ValidationError: Own listing, non-positive amount or past check-in
            ConflictError: Listing is not free
        """
        listing = await db.get(Listing, listing_id, populate_existing=True)
        if not listing:
            raise NotFoundError("Listing", str(listing_id))

        if not renter.is_active:
            raise ForbiddenError("Your account is suspended")

        if listing.owner_id == renter.id:
            raise ValidationError("You cannot book your own listing")
        if payable_amount <= 0:
            raise ValidationError("Payable amount must be greater than zero")
        if check_in_date < datetime.now(UTC).date():
            raise ValidationError("Check-in date cannot be in the past")

        if listing.availability != Availability.FREE.value:
            raise ConflictError(
                f"This listing is already {listing.availability.replace('_', ' ')}",
                current_state=listing_state(listing),
            )

        booking = Booking(
            listing_id=listing.id,
            renter_id=renter.id,
            owner_id=listing.owner_id,
            check_in_date=check_in_date,
            advance_months=listing.advance_months,
            total_amount=listing.monthly_rate * listing.advance_months,
            payable_amount=payable_amount,
            tenant_name=tenant_name,
            tenant_phone=tenant_phone,
            tenant_email=tenant_email,
            emergency_contact=emergency_contact,
            payment_method=payment_method,
            booking_status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
        )
        db.add(booking)
        await db.flush()

        await coordinator.apply(
            db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=booking.id
        )

        notification_service.queue(
            db,
            notification_service.BOOKING_CREATED,
            booking,
            old_status=None,
            new_status=booking.booking_status,
        )
        logger.info("Booking %s created for listing %s by %s", booking.id, listing.id, renter.id)
        return booking

    async def owner_set_status(
        self,
        db: AsyncSession,
        booking_id: UUID,
        owner: User,
        new_status: str,
    ) -> Booking:
        """Owner confirms, rejects or cancels a booking on their listing."""
        booking = await get_booking(db, booking_id)
        if booking.owner_id != owner.id:
            raise ForbiddenError("You can only manage bookings on your own listings")

        target = assert_booking_transition(booking.booking_status, new_status, "owner")
        reject_if_paid(booking, target)
        return await self.transition(db, booking, target, actor="owner")

    async def renter_cancel(
        self,
        db: AsyncSession,
        booking_id: UUID,
        renter: User,
    ) -> Booking:
        """Renter withdraws a pending or confirmed booking."""
        booking = await get_booking(db, booking_id)
        if booking.renter_id != renter.id:
            raise ForbiddenError("You can only cancel your own bookings")

        target = assert_booking_transition(booking.booking_status, BookingStatus.CANCELLED, "renter")
        reject_if_paid(booking, target)
        return await self.transition(db, booking, target, actor="renter")

    async def transition(
        self,
        db: AsyncSession,
        booking: Booking,
        target: BookingStatus,
        actor: str,
        cause: AvailabilityCause | None = None,
        notes: str | None = None,
        notification_type: str | None = None,
    ) -> Booking:
        """Write an already-validated status change and derive availability.

        The write is conditional on both statuses the caller validated
        against; losing that race raises ``ConflictError`` with the fresh state.
        """
        old_status = booking.booking_status
        now = datetime.now(UTC)

        values: dict[str, Any] = {"booking_status": target.value}
        if target in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
            values["cancelled_at"] = now
            values["cancelled_by"] = actor
        if notes:
            values["admin_notes"] = notes

        won = await update_booking_if(
            db,
            booking,
            values,
            booking_status=booking.booking_status,
            payment_status=booking.payment_status,
        )
        if not won:
            fresh = await refresh_booking(db, booking.id)
            raise ConflictError(
                "Booking was changed by another request, please retry",
                current_state=fresh.snapshot(),
            )

        cause = cause or BOOKING_STATUS_CAUSES.get(target.value)
        if cause is not None:
            await coordinator.apply(db, booking.listing_id, cause, booking_id=booking.id)

        booking = await refresh_booking(db, booking.id)
        notification_service.queue(
            db,
            notification_type or STATUS_NOTIFICATIONS[target],
            booking,
            old_status=old_status,
            new_status=target.value,
        )
        logger.info("Booking %s %s -> %s by %s", booking.id, old_status, target.value, actor)
        return booking

    async def find_expired(self, db: AsyncSession, cutoff: datetime) -> list[UUID]:
        """Pending bookings created before ``cutoff`` that were never paid."""
        result = await db.execute(
            select(Booking.id).where(
                Booking.booking_status == BookingStatus.PENDING.value,
                Booking.payment_status.in_(
                    [PaymentStatus.PENDING.value, PaymentStatus.FAILED.value]
                ),
                Booking.created_at < cutoff,
            )
        )
        return list(result.scalars().all())

    async def expire_unpaid(self, db: AsyncSession, booking_id: UUID) -> bool:
        """Cancel one stale unpaid booking and free its listing.

        Returns:
            bool: False when the booking moved on since it was selected
        """
        booking = await get_booking(db, booking_id)
        if (
            booking.booking_status != BookingStatus.PENDING.value
            or booking.payment_status == PaymentStatus.PAID.value
        ):
            return False

        target = assert_booking_transition(booking.booking_status, BookingStatus.CANCELLED, "system")
        await self.transition(
            db,
            booking,
            target,
            actor="system",
            cause=AvailabilityCause.BOOKING_EXPIRED,
            notification_type=notification_service.BOOKING_EXPIRED,
        )
        return True

    async def list_bookings(
        self,
        db: AsyncSession,
        *,
        renter_id: UUID | None = None,
        owner_id: UUID | None = None,
        listing_id: UUID | None = None,
        booking_status: str | None = None,
        payment_status: str | None = None,
        payment_method: str | None = None,
        period: str | None = None,
        initiated_only: bool = False,
        search: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Booking], int]:
        """One page of bookings matching every given filter, plus the total count.

        ``period`` is ``upcoming`` (check-in today or later) or ``past``;
        upcoming bookings come soonest first, everything else newest first.
        """
        query = select(Booking)
        if renter_id:
            query = query.where(Booking.renter_id == renter_id)
        if owner_id:
            query = query.where(Booking.owner_id == owner_id)
        if listing_id:
            query = query.where(Booking.listing_id == listing_id)
        if booking_status:
            query = query.where(Booking.booking_status == booking_status)
        if payment_status:
            query = query.where(Booking.payment_status == payment_status)
        if payment_method:
            query = query.where(Booking.payment_method == payment_method)
        if initiated_only:
            query = query.where(Booking.transaction_id.is_not(None))
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Booking.transaction_id.ilike(pattern),
                    Booking.tenant_name.ilike(pattern),
                    Booking.tenant_email.ilike(pattern),
                    Booking.tenant_phone.ilike(pattern),
                )
            )

        today = datetime.now(UTC).date()
        if period == "upcoming":
            query = query.where(Booking.check_in_date >= today)
            order = (Booking.check_in_date.asc(), Booking.created_at.asc())
        else:
            if period == "past":
                query = query.where(Booking.check_in_date < today)
            order = (Booking.created_at.desc(),)

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        offset = (page - 1) * page_size
        result = await db.execute(query.order_by(*order).offset(offset).limit(page_size))
        return list(result.scalars().all()), total


booking_service = BookingService()
