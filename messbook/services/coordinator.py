"""Consistency coordinator.

The only component allowed to write a listing's availability. Every write is
a read followed by a conditional update on the listing's ``version``, issued
in the caller's session so it commits or aborts together with the booking or
payment write that triggered it.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from messbook.config import settings
from messbook.core.exceptions import ConflictError, NotFoundError
from messbook.domain.availability import (
    AVAILABILITY_RULES,
    Availability,
    AvailabilityCause,
    AvailabilityRule,
    Holder,
    OnMismatch,
)
from messbook.models.listing import Listing

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityChange:
    """Outcome of one coordinator call."""

    listing_id: UUID
    cause: AvailabilityCause
    old: str
    new: str
    applied: bool


def listing_state(listing: Listing) -> dict:
    return {
        "listing_id": str(listing.id),
        "availability": listing.availability,
        "active_booking_id": str(listing.active_booking_id) if listing.active_booking_id else None,
    }


class ConsistencyCoordinator:
    """Derives and applies listing availability from booking/payment events."""

    def __init__(self, max_attempts: int | None = None) -> None:
        self.max_attempts = max_attempts or settings.coordinator_max_attempts

    async def apply(
        self,
        db: AsyncSession,
        listing_id: UUID,
        cause: AvailabilityCause,
        *,
        booking_id: UUID | None = None,
    ) -> AvailabilityChange:
        """Move the listing to the availability ``cause`` demands.

        A lost compare-and-set is retried against fresh state up to
        ``max_attempts`` times before surfacing ``ConflictError``.
        """
        rule = AVAILABILITY_RULES[cause]
        if rule.holder is not Holder.NONE and booking_id is None:
            raise ValueError(f"{cause.value} must name the triggering booking")

        for attempt in range(1, self.max_attempts + 1):
            listing = await self._load(db, listing_id)
            if not self._should_write(listing, rule, cause, booking_id):
                return AvailabilityChange(
                    listing_id, cause, listing.availability, listing.availability, applied=False
                )

            old = listing.availability
            holder = self._next_holder(listing, rule, booking_id)
            if await self._compare_and_set(db, listing, rule.target, holder):
                logger.info(
                    "Listing %s availability %s -> %s (cause=%s, booking=%s)",
                    listing_id, old, rule.target.value, cause.value, booking_id,
                )
                return AvailabilityChange(listing_id, cause, old, rule.target.value, applied=True)

            logger.info(
                "Listing %s changed concurrently during %s (attempt %d/%d)",
                listing_id, cause.value, attempt, self.max_attempts,
            )

        listing = await self._load(db, listing_id)
        raise ConflictError(
            "Listing availability changed concurrently, please retry",
            current_state=listing_state(listing),
        )

    async def _load(self, db: AsyncSession, listing_id: UUID) -> Listing:
        result = await db.execute(
            select(Listing)
            .where(Listing.id == listing_id)
            .execution_options(populate_existing=True)
        )
        listing = result.scalar_one_or_none()
        if not listing:
            raise NotFoundError("Listing", str(listing_id))
        return listing

    def _should_write(
        self,
        listing: Listing,
        rule: AvailabilityRule,
        cause: AvailabilityCause,
        booking_id: UUID | None,
    ) -> bool:
        if rule.holder is Holder.RELEASE and listing.active_booking_id != booking_id:
            return False

        matches = rule.requires is None or Availability(listing.availability) in rule.requires
        if rule.holder is Holder.REQUIRE and listing.active_booking_id != booking_id:
            matches = False

        if not matches:
            if rule.on_mismatch is OnMismatch.SKIP:
                logger.info(
                    "Listing %s is %s; %s leaves it unchanged",
                    listing.id, listing.availability, cause.value,
                )
                return False
            raise ConflictError(
                f"Listing is {listing.availability}",
                current_state=listing_state(listing),
            )

        holder = self._next_holder(listing, rule, booking_id)
        return not (listing.availability == rule.target.value and listing.active_booking_id == holder)

    @staticmethod
    def _next_holder(listing: Listing, rule: AvailabilityRule, booking_id: UUID | None) -> UUID | None:
        if rule.holder in (Holder.ACQUIRE, Holder.REQUIRE):
            return booking_id
        if rule.holder is Holder.RELEASE:
            return None
        return listing.active_booking_id

    async def _compare_and_set(
        self,
        db: AsyncSession,
        listing: Listing,
        target: Availability,
        holder: UUID | None,
    ) -> bool:
        values = {
            "availability": target.value,
            "active_booking_id": holder,
            "version": listing.version + 1,
        }
        if target is Availability.BOOKED:
            values["last_booked_at"] = datetime.now(UTC)

        result = await db.execute(
            update(Listing)
            .where(Listing.id == listing.id, Listing.version == listing.version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        # Later reads in this session must see the write, not the cached row
        for key, value in values.items():
            set_committed_value(listing, key, value)
        return True


coordinator = ConsistencyCoordinator()
