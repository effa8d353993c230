"""Consistency coordinator: availability derivation and compare-and-set retries."""

import uuid

import pytest
from sqlalchemy import update

from messbook.core.exceptions import ConflictError, NotFoundError
from messbook.domain.availability import AvailabilityCause
from messbook.models.listing import Listing
from messbook.services.coordinator import ConsistencyCoordinator


async def _reload(db, listing_id):
    return await db.get(Listing, listing_id, populate_existing=True)


class TestApply:
    async def test_booking_created_reserves_and_takes_hold(self, db, listing):
        booking_id = uuid.uuid4()
        change = await ConsistencyCoordinator().apply(
            db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=booking_id
        )
        await db.commit()

        assert change.applied
        assert (change.old, change.new) == ("free", "reserved_for_booking")
        fresh = await _reload(db, listing.id)
        assert fresh.availability == "reserved_for_booking"
        assert fresh.active_booking_id == booking_id
        assert fresh.version == 1

    async def test_booking_created_on_held_listing_conflicts(self, db, listing):
        coordinator = ConsistencyCoordinator()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=uuid.uuid4())

        with pytest.raises(ConflictError) as exc_info:
            await coordinator.apply(
                db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=uuid.uuid4()
            )
        assert exc_info.value.current_state["availability"] == "reserved_for_booking"

    async def test_paid_moves_holder_to_booked(self, db, listing):
        coordinator = ConsistencyCoordinator()
        booking_id = uuid.uuid4()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=booking_id)

        change = await coordinator.apply(db, listing.id, AvailabilityCause.PAYMENT_PAID, booking_id=booking_id)

        assert change.new == "booked"
        fresh = await _reload(db, listing.id)
        assert fresh.last_booked_at is not None

    async def test_paid_after_owner_confirmation_is_a_no_op(self, db, listing):
        coordinator = ConsistencyCoordinator()
        booking_id = uuid.uuid4()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=booking_id)
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CONFIRMED, booking_id=booking_id)
        version = (await _reload(db, listing.id)).version

        change = await coordinator.apply(db, listing.id, AvailabilityCause.PAYMENT_PAID, booking_id=booking_id)

        assert not change.applied
        assert (await _reload(db, listing.id)).version == version

    async def test_paid_for_non_holder_conflicts(self, db, listing):
        coordinator = ConsistencyCoordinator()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=uuid.uuid4())

        with pytest.raises(ConflictError):
            await coordinator.apply(
                db, listing.id, AvailabilityCause.PAYMENT_PAID, booking_id=uuid.uuid4()
            )

    async def test_release_by_holder_frees_listing(self, db, listing):
        coordinator = ConsistencyCoordinator()
        booking_id = uuid.uuid4()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=booking_id)

        change = await coordinator.apply(
            db, listing.id, AvailabilityCause.BOOKING_CANCELLED, booking_id=booking_id
        )

        assert change.new == "free"
        fresh = await _reload(db, listing.id)
        assert fresh.availability == "free"
        assert fresh.active_booking_id is None

    async def test_release_by_stale_booking_leaves_new_holder_alone(self, db, listing):
        coordinator = ConsistencyCoordinator()
        current_holder = uuid.uuid4()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=current_holder)
        await coordinator.apply(db, listing.id, AvailabilityCause.PAYMENT_PAID, booking_id=current_holder)

        change = await coordinator.apply(
            db, listing.id, AvailabilityCause.PAYMENT_REFUNDED, booking_id=uuid.uuid4()
        )

        assert not change.applied
        fresh = await _reload(db, listing.id)
        assert fresh.availability == "booked"
        assert fresh.active_booking_id == current_holder

    async def test_viewing_acceptance_skips_reserved_listing(self, db, listing):
        coordinator = ConsistencyCoordinator()
        await coordinator.apply(db, listing.id, AvailabilityCause.BOOKING_CREATED, booking_id=uuid.uuid4())

        change = await coordinator.apply(db, listing.id, AvailabilityCause.VIEWING_ACCEPTED)

        assert not change.applied
        assert (await _reload(db, listing.id)).availability == "reserved_for_booking"

    async def test_holder_causes_need_a_booking(self, db, listing):
        with pytest.raises(ValueError):
            await ConsistencyCoordinator().apply(db, listing.id, AvailabilityCause.BOOKING_CREATED)

    async def test_unknown_listing(self, db, users):
        with pytest.raises(NotFoundError):
            await ConsistencyCoordinator().apply(db, uuid.uuid4(), AvailabilityCause.VIEWING_ACCEPTED)


class TestConcurrentWriters:
    """Another transaction commits between our read and our conditional write."""

    def _race(self, monkeypatch, coordinator, session_maker, listing_id, values):
        original_load = coordinator._load
        calls = []

        async def racing_load(db, lid):
            found = await original_load(db, lid)
            calls.append(found.version)
            if len(calls) == 1:
                async with session_maker() as other:
                    await other.execute(
                        update(Listing)
                        .where(Listing.id == listing_id)
                        .values(version=Listing.version + 1, **values)
                    )
                    await other.commit()
            return found

        monkeypatch.setattr(coordinator, "_load", racing_load)
        return calls

    async def test_lost_write_is_retried_on_fresh_state(self, db, listing, session_maker, monkeypatch):
        coordinator = ConsistencyCoordinator(max_attempts=3)
        calls = self._race(monkeypatch, coordinator, session_maker, listing.id, {})

        change = await coordinator.apply(db, listing.id, AvailabilityCause.VIEWING_ACCEPTED)
        await db.commit()

        assert change.applied
        assert len(calls) == 2
        fresh = await _reload(db, listing.id)
        assert fresh.availability == "reserved_for_viewing"
        assert fresh.version == 2

    async def test_retry_observes_the_competing_change(self, db, listing, session_maker, monkeypatch):
        coordinator = ConsistencyCoordinator(max_attempts=3)
        holder = uuid.uuid4()
        self._race(
            monkeypatch,
            coordinator,
            session_maker,
            listing.id,
            {"availability": "reserved_for_booking", "active_booking_id": holder},
        )

        change = await coordinator.apply(db, listing.id, AvailabilityCause.VIEWING_ACCEPTED)

        assert not change.applied
        fresh = await _reload(db, listing.id)
        assert fresh.availability == "reserved_for_booking"
        assert fresh.active_booking_id == holder

    async def test_gives_up_after_max_attempts(self, db, listing, monkeypatch):
        coordinator = ConsistencyCoordinator(max_attempts=2)
        attempts = []

        async def always_lose(*args):
            attempts.append(args)
            return False

        monkeypatch.setattr(coordinator, "_compare_and_set", always_lose)

        with pytest.raises(ConflictError) as exc_info:
            await coordinator.apply(db, listing.id, AvailabilityCause.VIEWING_ACCEPTED)
        assert exc_info.value.current_state["availability"] == "free"
        assert len(attempts) == 2
