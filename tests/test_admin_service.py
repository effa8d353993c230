"""Administrator overrides."""

import pytest
from sqlalchemy import select

from messbook.core.exceptions import ConflictError, ForbiddenError, InvalidTransition
from messbook.models.admin import AuditLog
from messbook.models.booking import Booking
from messbook.models.listing import Listing
from messbook.models.payment import PaymentSession
from messbook.services.admin_service import admin_service
from messbook.services.payment_service import payment_service


async def _listing(db, listing_id):
    return await db.get(Listing, listing_id, populate_existing=True)


async def _audit_actions(db, booking_id):
    result = await db.execute(select(AuditLog.action).where(AuditLog.resource_id == booking_id))
    return list(result.scalars().all())


class TestBookingOverride:
    async def test_complete_frees_listing(self, db, create_booking, users, listing):
        booking = await create_booking()
        await admin_service.override_booking_status(db, booking.id, users.admin, "confirmed")

        completed = await admin_service.override_booking_status(
            db, booking.id, users.admin, "completed", notes="Lease ended"
        )
        await db.commit()

        assert completed.booking_status == "completed"
        assert completed.admin_notes == "Lease ended"
        assert (await _listing(db, listing.id)).availability == "free"
        assert await _audit_actions(db, booking.id) == [
            "booking_status_override",
            "booking_status_override",
        ]

    async def test_admin_cancel_frees_listing(self, db, create_booking, users, listing):
        booking = await create_booking()

        cancelled = await admin_service.override_booking_status(db, booking.id, users.admin, "cancelled")

        assert cancelled.cancelled_by == "admin"
        assert (await _listing(db, listing.id)).availability == "free"

    async def test_terminal_status_cannot_be_reopened(self, db, create_booking, users):
        booking = await create_booking()
        await admin_service.override_booking_status(db, booking.id, users.admin, "rejected")

        with pytest.raises(InvalidTransition):
            await admin_service.override_booking_status(db, booking.id, users.admin, "pending")

    async def test_requires_admin(self, db, create_booking, users):
        booking = await create_booking()
        with pytest.raises(ForbiddenError):
            await admin_service.override_booking_status(db, booking.id, users.owner, "confirmed")


class TestPaymentOverride:
    async def test_mark_paid_settles_like_a_gateway(self, db, create_booking, users, listing, dispatched):
        booking = await create_booking()

        paid = await admin_service.override_payment_status(db, booking.id, users.admin, "paid")
        await db.commit()

        assert (paid.booking_status, paid.payment_status) == ("confirmed", "paid")
        assert paid.payment_details["manual"] is True
        assert (await _listing(db, listing.id)).availability == "booked"
        assert dispatched[-1].event == "payment_paid"
        assert await _audit_actions(db, booking.id) == ["payment_status_override"]

    async def test_mark_failed(self, db, create_booking, users):
        booking = await create_booking()

        failed = await admin_service.override_payment_status(db, booking.id, users.admin, "failed")

        assert failed.payment_status == "failed"
        assert failed.booking_status == "pending"

    async def test_failed_payment_cannot_become_paid(self, db, create_booking, users):
        booking = await create_booking()
        await admin_service.override_payment_status(db, booking.id, users.admin, "failed")

        with pytest.raises(InvalidTransition):
            await admin_service.override_payment_status(db, booking.id, users.admin, "paid")

    async def test_refunded_override_refunds_in_full(self, db, create_booking, users, listing):
        booking = await create_booking()
        await admin_service.override_payment_status(db, booking.id, users.admin, "paid")

        refunded = await admin_service.override_payment_status(
            db, booking.id, users.admin, "refunded", notes="Duplicate payment"
        )

        assert refunded.payment_status == "refunded"
        assert refunded.refund_amount == booking.payable_amount
        assert refunded.refund_reason == "Duplicate payment"
        assert (await _listing(db, listing.id)).availability == "free"


class TestRefund:
    async def test_refund_is_audited(self, db, create_booking, users):
        booking = await create_booking()
        await admin_service.override_payment_status(db, booking.id, users.admin, "paid")

        refunded = await admin_service.refund(
            db, booking.id, users.admin, amount=4500, reason="Half month", cancel_booking=True
        )
        await db.commit()

        assert refunded.refund_amount == 4500
        assert refunded.booking_status == "cancelled"
        assert "payment_refund" in await _audit_actions(db, booking.id)


class TestDelete:
    async def test_delete_releases_listing(self, db, create_booking, users, listing):
        booking = await create_booking()
        payment_session = await payment_service.initiate(db, booking.id)
        await db.commit()

        await admin_service.delete_booking(db, booking.id, users.admin)
        await db.commit()

        assert await db.get(Booking, booking.id, populate_existing=True) is None
        assert await db.get(PaymentSession, payment_session.id, populate_existing=True) is None
        fresh = await _listing(db, listing.id)
        assert fresh.availability == "free"
        assert fresh.active_booking_id is None
        assert await _audit_actions(db, booking.id) == ["booking_delete"]

    async def test_paid_booking_must_be_refunded_first(self, db, create_booking, users):
        booking = await create_booking()
        await admin_service.override_payment_status(db, booking.id, users.admin, "paid")

        with pytest.raises(ConflictError):
            await admin_service.delete_booking(db, booking.id, users.admin)
