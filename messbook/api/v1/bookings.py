"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.api.deps import get_current_owner, get_current_user, get_db
from messbook.core.exceptions import ForbiddenError
from messbook.models.user import User
from messbook.schemas.booking import BookingCreate, BookingResponse, BookingStatusUpdate
from messbook.schemas.common import ok, paginated
from messbook.services.booking_service import booking_service, get_booking as load_booking

router = APIRouter()


def _booking_data(booking) -> dict:
    return BookingResponse.model_validate(booking).model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Create a new booking; the listing is reserved until it is paid or cancelled."""
    booking = await booking_service.create(
        db,
        listing_id=booking_data.listing_id,
        renter=current_user,
        check_in_date=booking_data.check_in_date,
        payable_amount=booking_data.payable_amount,
        tenant_name=booking_data.tenant_name,
        tenant_phone=booking_data.tenant_phone,
        tenant_email=booking_data.tenant_email,
        emergency_contact=(
            booking_data.emergency_contact.model_dump() if booking_data.emergency_contact else None
        ),
        payment_method=booking_data.payment_method,
    )
    return ok("Booking created successfully", _booking_data(booking))


@router.get("/mine")
async def get_my_bookings(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: str | None = Query(default=None, alias="status"),
    period: str | None = Query(default=None, pattern="^(upcoming|past)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
) -> dict:
    """Renter's own bookings."""
    bookings, total = await booking_service.list_bookings(
        db,
        renter_id=current_user.id,
        booking_status=status_filter,
        period=period,
        page=page,
        page_size=page_size,
    )
    return ok(
        "Bookings fetched successfully",
        paginated("bookings", [_booking_data(b) for b in bookings], total, page, page_size),
    )


@router.get("/owner")
async def get_owner_bookings(
    current_user: Annotated[User, Depends(get_current_owner)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter: str | None = Query(default=None, alias="status"),
    period: str | None = Query(default=None, pattern="^(upcoming|past)$"),
    listing_id: UUID | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
) -> dict:
    """Bookings on the current owner's listings."""
    bookings, total = await booking_service.list_bookings(
        db,
        owner_id=current_user.id,
        listing_id=listing_id,
        booking_status=status_filter,
        period=period,
        page=page,
        page_size=page_size,
    )
    return ok(
        "Bookings fetched successfully",
        paginated("bookings", [_booking_data(b) for b in bookings], total, page, page_size),
    )


@router.get("/{booking_id}")
async def get_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Get a booking by ID."""
    booking = await load_booking(db, booking_id)
    if not current_user.is_admin and current_user.id not in (booking.renter_id, booking.owner_id):
        raise ForbiddenError("You don't have permission to access this booking")
    return ok("Booking fetched successfully", _booking_data(booking))


@router.patch("/{booking_id}/status")
async def update_booking_status(
    booking_id: UUID,
    request: BookingStatusUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Owner confirms, rejects or cancels a booking."""
    booking = await booking_service.owner_set_status(
        db, booking_id, current_user, request.booking_status
    )
    return ok(f"Booking {booking.booking_status} successfully", _booking_data(booking))


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Renter cancels their own booking."""
    booking = await booking_service.renter_cancel(db, booking_id, current_user)
    return ok("Booking cancelled successfully", _booking_data(booking))
