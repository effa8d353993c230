"""Viewing request endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.api.deps import get_current_user, get_db
from messbook.models.user import User
from messbook.schemas.common import ok
from messbook.schemas.viewing import ViewingRequestResponse
from messbook.services.viewing_service import viewing_service

router = APIRouter()


@router.post("/{request_id}/accept")
async def accept_viewing_request(
    request_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Accept a viewing request; a free listing is reserved for the visit."""
    viewing, change = await viewing_service.accept(db, request_id, current_user)
    data = ViewingRequestResponse.model_validate(viewing).model_dump(mode="json")
    data["listing_availability"] = change.new
    return ok("Viewing request accepted", data)


@router.post("/{request_id}/reject")
async def reject_viewing_request(
    request_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Reject a viewing request."""
    viewing, change = await viewing_service.reject(db, request_id, current_user)
    data = ViewingRequestResponse.model_validate(viewing).model_dump(mode="json")
    if change is not None:
        data["listing_availability"] = change.new
    return ok("Viewing request rejected", data)


@router.post("/{request_id}/reopen")
async def reopen_viewing_request(
    request_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Re-submit a rejected viewing request."""
    viewing = await viewing_service.reopen(db, request_id, current_user)
    return ok(
        "Viewing request re-submitted",
        ViewingRequestResponse.model_validate(viewing).model_dump(mode="json"),
    )
