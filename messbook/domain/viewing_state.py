"""Viewing request lifecycle."""

from enum import Enum

from messbook.core.exceptions import InvalidTransition


class ViewingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Owner decisions; a rejected request can be re-opened by the renter.
VIEWING_TRANSITIONS: dict[ViewingStatus, set[ViewingStatus]] = {
    ViewingStatus.PENDING: {ViewingStatus.ACCEPTED, ViewingStatus.REJECTED},
    ViewingStatus.ACCEPTED: {ViewingStatus.REJECTED},
    ViewingStatus.REJECTED: {ViewingStatus.PENDING},
}


def assert_viewing_transition(current: str, target: str | ViewingStatus) -> ViewingStatus:
    try:
        current_status = ViewingStatus(current)
        target_status = ViewingStatus(target)
    except ValueError:
        raise InvalidTransition(str(current), getattr(target, "value", str(target)), entity="viewing request")

    if target_status not in VIEWING_TRANSITIONS[current_status]:
        raise InvalidTransition(current_status.value, target_status.value, entity="viewing request")
    return target_status
