"""Transition tables for bookings, payments, viewings and availability."""

import pytest

from messbook.core.exceptions import InvalidTransition
from messbook.domain.availability import (
    AVAILABILITY_RULES,
    BOOKING_STATUS_CAUSES,
    Availability,
    AvailabilityCause,
    Holder,
    OnMismatch,
)
from messbook.domain.booking_state import (
    BookingStatus,
    assert_booking_transition,
    is_terminal,
)
from messbook.domain.payment_state import PaymentStatus, assert_payment_transition
from messbook.domain.viewing_state import ViewingStatus, assert_viewing_transition


class TestBookingTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [("pending", "confirmed"), ("pending", "rejected"), ("confirmed", "cancelled")],
    )
    def test_owner_allowed(self, current, target):
        assert assert_booking_transition(current, target, "owner") == BookingStatus(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "completed"),
            ("confirmed", "pending"),
            ("cancelled", "confirmed"),
            ("rejected", "pending"),
            ("completed", "cancelled"),
        ],
    )
    def test_owner_rejected(self, current, target):
        with pytest.raises(InvalidTransition) as exc_info:
            assert_booking_transition(current, target, "owner")
        assert exc_info.value.status_code == 422
        assert f"{current} → {target}" in exc_info.value.detail

    def test_renter_can_only_cancel_active_bookings(self):
        assert assert_booking_transition("pending", "cancelled", "renter") is BookingStatus.CANCELLED
        assert assert_booking_transition("confirmed", "cancelled", "renter") is BookingStatus.CANCELLED
        for current in ("cancelled", "rejected", "completed"):
            with pytest.raises(InvalidTransition):
                assert_booking_transition(current, "cancelled", "renter")

    def test_renter_cannot_confirm(self):
        with pytest.raises(InvalidTransition):
            assert_booking_transition("pending", "confirmed", "renter")

    def test_admin_can_complete_confirmed(self):
        assert assert_booking_transition("confirmed", "completed", "admin") is BookingStatus.COMPLETED

    def test_terminal_statuses_have_no_exits(self):
        for actor in ("owner", "renter", "admin", "system"):
            for current in ("cancelled", "rejected", "completed"):
                for target in BookingStatus:
                    with pytest.raises(InvalidTransition):
                        assert_booking_transition(current, target.value, actor)

    def test_unknown_status_is_invalid_transition(self):
        with pytest.raises(InvalidTransition):
            assert_booking_transition("pending", "archived", "owner")

    def test_enum_target_renders_as_value(self):
        with pytest.raises(InvalidTransition) as exc_info:
            assert_booking_transition("completed", BookingStatus.CANCELLED, "renter")
        assert "completed → cancelled" in exc_info.value.detail

    def test_is_terminal(self):
        assert is_terminal("cancelled")
        assert is_terminal("completed")
        assert not is_terminal("pending")
        assert not is_terminal("confirmed")


class TestPaymentTransitions:
    def test_allowed(self):
        assert assert_payment_transition("pending", "paid") is PaymentStatus.PAID
        assert assert_payment_transition("pending", "failed") is PaymentStatus.FAILED
        assert assert_payment_transition("paid", "refunded") is PaymentStatus.REFUNDED

    @pytest.mark.parametrize(
        "current,target",
        [("paid", "pending"), ("failed", "paid"), ("refunded", "paid"), ("pending", "refunded")],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransition) as exc_info:
            assert_payment_transition(current, target)
        assert "payment" in exc_info.value.detail


class TestViewingTransitions:
    def test_accept_and_reject_pending(self):
        assert assert_viewing_transition("pending", "accepted") is ViewingStatus.ACCEPTED
        assert assert_viewing_transition("pending", "rejected") is ViewingStatus.REJECTED

    def test_accepted_can_be_rejected_later(self):
        assert assert_viewing_transition("accepted", "rejected") is ViewingStatus.REJECTED

    def test_rejected_cannot_be_accepted_directly(self):
        with pytest.raises(InvalidTransition):
            assert_viewing_transition("rejected", "accepted")


class TestAvailabilityRules:
    def test_every_cause_has_a_rule(self):
        assert set(AVAILABILITY_RULES) == set(AvailabilityCause)

    def test_booking_creation_requires_free_listing(self):
        rule = AVAILABILITY_RULES[AvailabilityCause.BOOKING_CREATED]
        assert rule.target is Availability.RESERVED_FOR_BOOKING
        assert rule.requires == {Availability.FREE}
        assert rule.on_mismatch is OnMismatch.CONFLICT
        assert rule.holder is Holder.ACQUIRE

    def test_viewing_acceptance_never_overrides_a_booking(self):
        rule = AVAILABILITY_RULES[AvailabilityCause.VIEWING_ACCEPTED]
        assert rule.requires == {Availability.FREE}
        assert rule.on_mismatch is OnMismatch.SKIP

    @pytest.mark.parametrize(
        "cause",
        [
            AvailabilityCause.BOOKING_CANCELLED,
            AvailabilityCause.BOOKING_REJECTED,
            AvailabilityCause.BOOKING_EXPIRED,
            AvailabilityCause.PAYMENT_REFUNDED,
            AvailabilityCause.ADMIN_TERMINAL,
            AvailabilityCause.BOOKING_DELETED,
        ],
    )
    def test_release_causes_free_only_their_own_hold(self, cause):
        rule = AVAILABILITY_RULES[cause]
        assert rule.target is Availability.FREE
        assert rule.holder is Holder.RELEASE

    def test_status_causes(self):
        assert BOOKING_STATUS_CAUSES["confirmed"] is AvailabilityCause.BOOKING_CONFIRMED
        assert BOOKING_STATUS_CAUSES["cancelled"] is AvailabilityCause.BOOKING_CANCELLED
        assert BOOKING_STATUS_CAUSES["rejected"] is AvailabilityCause.BOOKING_REJECTED
