"""Listing availability rules.

The desired availability is a function of the triggering event, never of the
listing's prior value. Each cause also states which prior values it accepts,
what happens when the prior value does not match, and how it treats the
listing's booking holder.
"""

from dataclasses import dataclass
from enum import Enum


class Availability(str, Enum):
    FREE = "free"
    RESERVED_FOR_VIEWING = "reserved_for_viewing"
    RESERVED_FOR_BOOKING = "reserved_for_booking"
    BOOKED = "booked"


class AvailabilityCause(str, Enum):
    BOOKING_CREATED = "booking_created"
    VIEWING_ACCEPTED = "viewing_accepted"
    VIEWING_RELEASED = "viewing_released"
    BOOKING_CONFIRMED = "booking_confirmed"
    PAYMENT_PAID = "payment_paid"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_EXPIRED = "booking_expired"
    PAYMENT_REFUNDED = "payment_refunded"
    ADMIN_TERMINAL = "admin_terminal"
    BOOKING_DELETED = "booking_deleted"


class OnMismatch(str, Enum):
    CONFLICT = "conflict"
    SKIP = "skip"


class Holder(str, Enum):
    ACQUIRE = "acquire"  # the triggering booking becomes the holder
    REQUIRE = "require"  # only the current holder may trigger it
    RELEASE = "release"  # clears the holder; no-op unless the trigger is the holder
    NONE = "none"  # not booking driven


@dataclass(frozen=True)
class AvailabilityRule:
    target: Availability
    requires: frozenset[Availability] | None
    on_mismatch: OnMismatch
    holder: Holder


_ANY = None

AVAILABILITY_RULES: dict[AvailabilityCause, AvailabilityRule] = {
    AvailabilityCause.BOOKING_CREATED: AvailabilityRule(
        Availability.RESERVED_FOR_BOOKING,
        frozenset({Availability.FREE}),
        OnMismatch.CONFLICT,
        Holder.ACQUIRE,
    ),
    AvailabilityCause.VIEWING_ACCEPTED: AvailabilityRule(
        Availability.RESERVED_FOR_VIEWING,
        frozenset({Availability.FREE}),
        OnMismatch.SKIP,
        Holder.NONE,
    ),
    AvailabilityCause.VIEWING_RELEASED: AvailabilityRule(
        Availability.FREE,
        frozenset({Availability.RESERVED_FOR_VIEWING}),
        OnMismatch.SKIP,
        Holder.NONE,
    ),
    AvailabilityCause.BOOKING_CONFIRMED: AvailabilityRule(
        Availability.BOOKED,
        frozenset({Availability.RESERVED_FOR_BOOKING, Availability.BOOKED}),
        OnMismatch.CONFLICT,
        Holder.REQUIRE,
    ),
    AvailabilityCause.PAYMENT_PAID: AvailabilityRule(
        Availability.BOOKED,
        frozenset({Availability.RESERVED_FOR_BOOKING, Availability.BOOKED}),
        OnMismatch.CONFLICT,
        Holder.REQUIRE,
    ),
}

for _cause in (
    AvailabilityCause.BOOKING_CANCELLED,
    AvailabilityCause.BOOKING_REJECTED,
    AvailabilityCause.BOOKING_EXPIRED,
    AvailabilityCause.PAYMENT_REFUNDED,
    AvailabilityCause.ADMIN_TERMINAL,
    AvailabilityCause.BOOKING_DELETED,
):
    AVAILABILITY_RULES[_cause] = AvailabilityRule(
        Availability.FREE, _ANY, OnMismatch.SKIP, Holder.RELEASE
    )

BOOKING_STATUS_CAUSES = {
    "confirmed": AvailabilityCause.BOOKING_CONFIRMED,
    "cancelled": AvailabilityCause.BOOKING_CANCELLED,
    "rejected": AvailabilityCause.BOOKING_REJECTED,
}
