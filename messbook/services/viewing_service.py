"""Viewing request decisions.

An accepted viewing reserves a free listing for the visit. Rejecting the
last accepted viewing gives the listing back.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from messbook.domain.availability import AvailabilityCause
from messbook.domain.viewing_state import ViewingStatus, assert_viewing_transition
from messbook.models.user import User
from messbook.models.viewing_request import ViewingRequest
from messbook.services.coordinator import AvailabilityChange, coordinator

logger = logging.getLogger(__name__)


class ViewingService:
    """Service for owner decisions on viewing requests."""

    async def _get_owned(self, db: AsyncSession, request_id: UUID, owner: User) -> ViewingRequest:
        viewing = await db.get(ViewingRequest, request_id)
        if not viewing:
            raise NotFoundError("Viewing request", str(request_id))
        if viewing.owner_id != owner.id and not owner.is_admin:
            raise ForbiddenError("You can only manage viewing requests for your own listings")
        return viewing

    async def _set_status(
        self,
        db: AsyncSession,
        viewing: ViewingRequest,
        target: ViewingStatus,
        actor: User,
    ) -> ViewingRequest:
        history = list(viewing.status_history or [])
        history.append(
            {
                "status": target.value,
                "changed_by": str(actor.id),
                "changed_at": datetime.now(UTC).isoformat(),
            }
        )

        result = await db.execute(
            update(ViewingRequest)
            .where(ViewingRequest.id == viewing.id, ViewingRequest.status == viewing.status)
            .values(status=target.value, status_history=history)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            fresh = await db.get(ViewingRequest, viewing.id, populate_existing=True)
            raise ConflictError(
                "Viewing request was changed by another request",
                current_state={"viewing_request_id": str(viewing.id), "status": fresh.status},
            )
        return await db.get(ViewingRequest, viewing.id, populate_existing=True)

    async def accept(
        self,
        db: AsyncSession,
        request_id: UUID,
        owner: User,
    ) -> tuple[ViewingRequest, AvailabilityChange]:
        """Accept a viewing; the listing is reserved only if it was free."""
        viewing = await self._get_owned(db, request_id, owner)
        target = assert_viewing_transition(viewing.status, ViewingStatus.ACCEPTED)

        viewing = await self._set_status(db, viewing, target, owner)
        change = await coordinator.apply(db, viewing.listing_id, AvailabilityCause.VIEWING_ACCEPTED)
        logger.info("Viewing request %s accepted (listing %s -> %s)", viewing.id, change.old, change.new)
        return viewing, change

    async def reject(
        self,
        db: AsyncSession,
        request_id: UUID,
        owner: User,
    ) -> tuple[ViewingRequest, AvailabilityChange | None]:
        """Reject a viewing, releasing a viewing reservation nobody else needs."""
        viewing = await self._get_owned(db, request_id, owner)
        was_accepted = viewing.status == ViewingStatus.ACCEPTED.value
        target = assert_viewing_transition(viewing.status, ViewingStatus.REJECTED)

        viewing = await self._set_status(db, viewing, target, owner)

        change = None
        if was_accepted:
            result = await db.execute(
                select(func.count(ViewingRequest.id)).where(
                    ViewingRequest.listing_id == viewing.listing_id,
                    ViewingRequest.status == ViewingStatus.ACCEPTED.value,
                )
            )
            if result.scalar_one() == 0:
                change = await coordinator.apply(
                    db, viewing.listing_id, AvailabilityCause.VIEWING_RELEASED
                )
        logger.info("Viewing request %s rejected", viewing.id)
        return viewing, change

    async def reopen(self, db: AsyncSession, request_id: UUID, renter: User) -> ViewingRequest:
        """Renter asks again after a rejection. Availability is untouched until accepted."""
        viewing = await db.get(ViewingRequest, request_id)
        if not viewing:
            raise NotFoundError("Viewing request", str(request_id))
        if viewing.renter_id != renter.id:
            raise ForbiddenError("You can only re-open your own viewing requests")

        target = assert_viewing_transition(viewing.status, ViewingStatus.PENDING)
        viewing = await self._set_status(db, viewing, target, renter)
        logger.info("Viewing request %s re-opened by %s", viewing.id, renter.id)
        return viewing


viewing_service = ViewingService()
