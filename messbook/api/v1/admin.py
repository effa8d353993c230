"""Admin endpoints for booking and payment overrides."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.api.deps import get_current_admin, get_db
from messbook.models.admin import AuditLog
from messbook.models.user import User
from messbook.schemas.admin import (
    AdminBookingStatusUpdate,
    AdminPaymentStatusUpdate,
    RefundCreate,
)
from messbook.schemas.booking import BookingResponse
from messbook.schemas.common import ok, paginated
from messbook.schemas.payment import PaymentRecordResponse
from messbook.services.admin_service import admin_service
from messbook.services.booking_service import booking_service

router = APIRouter()


def _booking_data(booking) -> dict:
    return BookingResponse.model_validate(booking).model_dump(mode="json")


# ============ BOOKINGS ============


@router.get("/bookings")
async def get_all_bookings(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: str | None = Query(default=None, alias="status"),
    payment_status: str | None = None,
    renter_id: UUID | None = None,
    owner_id: UUID | None = None,
    listing_id: UUID | None = None,
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> dict:
    """Every booking, newest first."""
    bookings, total = await booking_service.list_bookings(
        db,
        renter_id=renter_id,
        owner_id=owner_id,
        listing_id=listing_id,
        booking_status=status_filter,
        payment_status=payment_status,
        search=search,
        page=page,
        page_size=page_size,
    )
    return ok(
        "Bookings fetched successfully",
        paginated("bookings", [_booking_data(b) for b in bookings], total, page, page_size),
    )


@router.get("/payments")
async def get_all_payments(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: str | None = Query(default=None, alias="status"),
    payment_method: str | None = None,
    renter_id: UUID | None = None,
    owner_id: UUID | None = None,
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> dict:
    """Bookings that reached the gateway, seen as payments."""
    bookings, total = await booking_service.list_bookings(
        db,
        renter_id=renter_id,
        owner_id=owner_id,
        payment_status=status_filter,
        payment_method=payment_method,
        initiated_only=True,
        search=search,
        page=page,
        page_size=page_size,
    )
    payments = [PaymentRecordResponse.model_validate(b).model_dump(mode="json") for b in bookings]
    return ok("Payments fetched successfully", paginated("payments", payments, total, page, page_size))


@router.patch("/bookings/{booking_id}/status")
async def override_booking_status(
    booking_id: UUID,
    request: AdminBookingStatusUpdate,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Force a booking status change."""
    booking = await admin_service.override_booking_status(
        db, booking_id, admin, request.status, notes=request.notes
    )
    return ok("Booking status updated successfully", _booking_data(booking))


@router.patch("/bookings/{booking_id}/payment-status")
async def override_payment_status(
    booking_id: UUID,
    request: AdminPaymentStatusUpdate,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Force a payment status change."""
    booking = await admin_service.override_payment_status(
        db, booking_id, admin, request.status, notes=request.notes
    )
    return ok("Payment status updated successfully", _booking_data(booking))


@router.post("/bookings/{booking_id}/refund")
async def refund_booking(
    booking_id: UUID,
    request: RefundCreate,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Refund a paid booking, optionally cancelling it."""
    booking = await admin_service.refund(
        db,
        booking_id,
        admin,
        amount=request.amount,
        reason=request.reason,
        cancel_booking=request.cancel_booking,
    )
    return ok("Refund processed successfully", _booking_data(booking))


@router.delete("/bookings/{booking_id}")
async def delete_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Delete a booking and release its listing."""
    await admin_service.delete_booking(db, booking_id, admin)
    return ok("Booking deleted successfully", {"booking_id": str(booking_id)})


# ============ AUDIT LOG ============


@router.get("/audit-logs")
async def get_audit_logs(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    resource_id: UUID | None = None,
    action: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
) -> dict:
    """Get audit log entries, newest first."""
    query = select(AuditLog)
    if resource_id:
        query = query.where(AuditLog.resource_id == resource_id)
    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(AuditLog.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)

    result = await db.execute(query)
    logs = [
        {
            "id": str(log.id),
            "user_id": str(log.user_id) if log.user_id else None,
            "action": log.action,
            "resource_type": log.resource_type,
            "resource_id": str(log.resource_id) if log.resource_id else None,
            "old_values": log.old_values,
            "new_values": log.new_values,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }
        for log in result.scalars().all()
    ]
    return ok("Audit logs fetched successfully", logs)
