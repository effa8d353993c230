"""Base payment gateway interface.

All gateway adapters must implement this interface.
Business logic should NOT live in adapters - only gateway communication.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from messbook.domain.payment_state import GatewayStatus


def parse_amount(value: object) -> float | None:
    """Gateway amounts arrive as strings; anything unparseable counts as absent."""
    if value is None or value == "":
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


class GatewayType(str, Enum):
    """Supported payment gateways."""

    SSLCOMMERZ = "sslcommerz"
    SANDBOX = "sandbox"


@dataclass
class SessionRequest:
    """Everything a gateway needs to open a hosted checkout."""

    transaction_id: str
    amount: int
    currency: str
    product_name: str
    success_url: str
    fail_url: str
    cancel_url: str
    ipn_url: str
    customer: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)


@dataclass
class SessionResult:
    """Result of opening a checkout session."""

    success: bool
    redirect_url: str | None = None
    session_key: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


@dataclass
class ValidationResult:
    """Gateway's own answer about a transaction."""

    status: GatewayStatus
    transaction_id: str | None = None
    amount: float | None = None
    currency: str | None = None
    validation_id: str | None = None
    bank_tran_id: str | None = None
    raw_response: dict | None = None

    @property
    def is_valid(self) -> bool:
        return self.status is GatewayStatus.VALID


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways.

    Transport failures and timeouts raise ``GatewayUnavailable``; a gateway
    that answered but declined is reported through the result objects.
    """

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def create_session(self, request: SessionRequest) -> SessionResult:
        """Open a hosted checkout session and return its redirect URL."""
        pass

    @abstractmethod
    async def validate_callback(self, payload: dict) -> ValidationResult:
        """Validate a success/IPN callback against the gateway's API.

        Args:
            payload: Form fields posted by the gateway

        Returns:
            ValidationResult; VALID only when the gateway confirms the charge
        """
        pass

    @abstractmethod
    async def query_transaction(self, transaction_id: str) -> ValidationResult:
        """Look up a transaction by our transaction id."""
        pass

    @abstractmethod
    async def process_refund(
        self,
        bank_tran_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process a refund.

        Args:
            bank_tran_id: Gateway-side id of the original charge
            amount: Refund amount in currency units
            reason: Refund reason

        Returns:
            RefundResult with refund details
        """
        pass

    @abstractmethod
    def verify_webhook(self, payload: dict) -> bool:
        """Check the callback signature. Unsigned or tampered payloads fail."""
        pass
