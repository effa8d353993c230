"""Administrative overrides.

Admins may move bookings and payments along paths other actors cannot, but
every override still goes through the same conditional writes and the
consistency coordinator, and leaves an audit row behind.
"""

import logging
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.core.exceptions import ConflictError, ForbiddenError
from messbook.domain.availability import AvailabilityCause
from messbook.domain.booking_state import (
    BookingStatus,
    assert_booking_transition,
    is_terminal,
)
from messbook.domain.payment_state import PaymentStatus, assert_payment_transition
from messbook.models.booking import Booking
from messbook.models.payment import PaymentSession
from messbook.models.user import User
from messbook.services.audit_service import audit_service
from messbook.services.booking_service import booking_service, get_booking, reject_if_paid
from messbook.services.coordinator import coordinator
from messbook.services.payment_service import SettlementOutcome, payment_service

logger = logging.getLogger(__name__)


def _require_admin(user: User) -> None:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")


class AdminService:
    """Service for administrator overrides of bookings and payments."""

    async def override_booking_status(
        self,
        db: AsyncSession,
        booking_id: UUID,
        admin: User,
        new_status: str,
        notes: str | None = None,
    ) -> Booking:
        """Force a booking transition from the admin table.

        Confirmation holds the listing; any terminal status frees it.
        """
        _require_admin(admin)
        booking = await get_booking(db, booking_id)
        old_state = booking.snapshot()

        target = assert_booking_transition(booking.booking_status, new_status, "admin")
        reject_if_paid(booking, target)

        cause = (
            AvailabilityCause.BOOKING_CONFIRMED
            if target is BookingStatus.CONFIRMED
            else AvailabilityCause.ADMIN_TERMINAL
        )
        booking = await booking_service.transition(
            db, booking, target, actor="admin", cause=cause, notes=notes
        )

        await audit_service.log_booking_action(
            db,
            user_id=admin.id,
            action="booking_status_override",
            booking_id=booking.id,
            old_state=old_state,
            new_state=booking.snapshot(),
            notes=notes,
        )
        return booking

    async def override_payment_status(
        self,
        db: AsyncSession,
        booking_id: UUID,
        admin: User,
        new_status: str,
        notes: str | None = None,
    ) -> Booking:
        """Force a payment transition.

        ``paid`` settles exactly as a gateway confirmation would, and
        ``refunded`` performs a full refund.
        """
        _require_admin(admin)
        booking = await get_booking(db, booking_id)
        old_state = booking.snapshot()

        target = assert_payment_transition(booking.payment_status, new_status)

        if target is PaymentStatus.PAID:
            result = await payment_service.settle_by_admin(db, booking, admin)
            if result.outcome is not SettlementOutcome.APPLIED:
                raise ConflictError(
                    f"Payment could not be marked paid: {result.reason}",
                    current_state=result.booking.snapshot(),
                )
            booking = result.booking
        elif target is PaymentStatus.FAILED:
            booking = await payment_service.mark_failed_by_admin(db, booking)
        else:
            booking = await payment_service.refund(
                db, booking.id, admin, reason=notes or "Admin override"
            )

        await audit_service.log_booking_action(
            db,
            user_id=admin.id,
            action="payment_status_override",
            booking_id=booking.id,
            old_state=old_state,
            new_state=booking.snapshot(),
            notes=notes,
        )
        return booking

    async def refund(
        self,
        db: AsyncSession,
        booking_id: UUID,
        admin: User,
        amount: int | None = None,
        reason: str = "",
        cancel_booking: bool = False,
    ) -> Booking:
        _require_admin(admin)
        booking = await payment_service.refund(
            db,
            booking_id,
            admin,
            amount=amount,
            reason=reason,
            cancel_booking=cancel_booking,
        )
        await audit_service.log_refund_action(
            db,
            user_id=admin.id,
            booking_id=booking.id,
            amount=booking.refund_amount,
            reason=reason,
            refund_id=(booking.payment_details or {}).get("refund_id"),
        )
        return booking

    async def delete_booking(self, db: AsyncSession, booking_id: UUID, admin: User) -> None:
        """Delete a booking, freeing the listing if the booking held it."""
        _require_admin(admin)
        booking = await get_booking(db, booking_id)

        if booking.payment_status == PaymentStatus.PAID.value:
            raise ConflictError(
                "Refund the payment before deleting a paid booking",
                current_state=booking.snapshot(),
            )

        old_state = booking.snapshot()
        if not is_terminal(booking.booking_status):
            await coordinator.apply(
                db, booking.listing_id, AvailabilityCause.BOOKING_DELETED, booking_id=booking.id
            )

        await audit_service.log_admin_action(
            db,
            user_id=admin.id,
            action="booking_delete",
            resource_type="booking",
            resource_id=booking.id,
            old_values=old_state,
        )
        await db.execute(delete(PaymentSession).where(PaymentSession.booking_id == booking.id))
        await db.delete(booking)
        await db.flush()
        logger.info("Booking %s deleted by admin %s", booking_id, admin.id)


admin_service = AdminService()
