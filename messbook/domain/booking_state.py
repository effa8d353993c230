"""Booking state machine.

Each actor has its own transition table. A transition missing from the
table is illegal for that actor.
"""

from enum import Enum

from messbook.core.exceptions import InvalidTransition


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    COMPLETED = "completed"


TERMINAL_BOOKING_STATUSES = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.COMPLETED}
)
ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

OWNER_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.REJECTED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED},
}

RENTER_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED},
}

ADMIN_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
    },
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
}

SYSTEM_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
}

BOOKING_TRANSITIONS = {
    "owner": OWNER_TRANSITIONS,
    "renter": RENTER_TRANSITIONS,
    "admin": ADMIN_TRANSITIONS,
    "system": SYSTEM_TRANSITIONS,
}


def is_terminal(status: str) -> bool:
    return status in {s.value for s in TERMINAL_BOOKING_STATUSES}


def assert_booking_transition(current: str, target: str, actor: str) -> BookingStatus:
    """Look up ``current → target`` in the actor's table.

    Returns the target as a ``BookingStatus``; raises ``InvalidTransition``
    on a lookup miss, including unknown status names.
    """
    table = BOOKING_TRANSITIONS[actor]
    try:
        current_status = BookingStatus(current)
        target_status = BookingStatus(target)
    except ValueError:
        raise InvalidTransition(str(current), getattr(target, "value", str(target)))
    if target_status not in table.get(current_status, set()):
        raise InvalidTransition(current_status.value, target_status.value)
    return target_status
