"""Payment state machine."""

from enum import Enum

from messbook.core.exceptions import InvalidTransition


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


class GatewayStatus(str, Enum):
    """Normalized outcome reported by a payment gateway callback."""

    VALID = "VALID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"


class SessionStatus(str, Enum):
    OPEN = "open"
    CONSUMED = "consumed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # Charged after the booking was already paid through another session
    DUPLICATE = "duplicate"


def assert_payment_transition(current: str, target: str) -> PaymentStatus:
    try:
        current_status = PaymentStatus(current)
        target_status = PaymentStatus(target)
    except ValueError:
        raise InvalidTransition(str(current), getattr(target, "value", str(target)), entity="payment")
    if target_status not in PAYMENT_TRANSITIONS[current_status]:
        raise InvalidTransition(current_status.value, target_status.value, entity="payment")
    return target_status
