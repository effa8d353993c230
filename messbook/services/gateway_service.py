"""Payment gateway service.

Routes payment operations to the configured gateway adapter.
No business logic here - only gateway coordination.
"""

import logging

from messbook.config import settings
from messbook.gateways.base import (
    GatewayType,
    PaymentGateway,
    RefundResult,
    SessionRequest,
    SessionResult,
    ValidationResult,
)
from messbook.gateways.sandbox import SandboxGateway
from messbook.gateways.sslcommerz import SSLCommerzGateway

logger = logging.getLogger(__name__)


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_real_gateway_in_production(gateway_type: GatewayType) -> None:
    """Block the sandbox gateway in production.

    Raises:
        RuntimeError: If the sandbox would settle real bookings
    """
    if gateway_type == GatewayType.SANDBOX and _is_production():
        raise RuntimeError(
            "The sandbox gateway cannot settle payments in production. "
            "Set PAYMENT_GATEWAY=sslcommerz."
        )


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self):
        self._gateways: dict[GatewayType, PaymentGateway] = {}

    def get_gateway(self, gateway_type: str | GatewayType | None = None) -> PaymentGateway:
        """Get or create gateway instance, defaulting to the configured one."""
        gateway_type = GatewayType(gateway_type or settings.payment_gateway)

        if gateway_type not in self._gateways:
            if gateway_type == GatewayType.SSLCOMMERZ:
                self._gateways[gateway_type] = SSLCommerzGateway()
            else:
                self._gateways[gateway_type] = SandboxGateway()

        return self._gateways[gateway_type]

    async def create_session(self, request: SessionRequest) -> SessionResult:
        gateway = self.get_gateway()
        _assert_real_gateway_in_production(gateway.gateway_type)
        logger.info(
            "Opening %s session %s for %s %s",
            gateway.gateway_type.value, request.transaction_id, request.amount, request.currency,
        )
        return await gateway.create_session(request)

    async def validate_callback(self, payload: dict) -> ValidationResult:
        return await self.get_gateway().validate_callback(payload)

    async def query_transaction(self, transaction_id: str) -> ValidationResult:
        return await self.get_gateway().query_transaction(transaction_id)

    async def process_refund(
        self,
        gateway_type: str | GatewayType,
        bank_tran_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process refund via the gateway that took the payment."""
        gateway = self.get_gateway(gateway_type)
        _assert_real_gateway_in_production(gateway.gateway_type)
        return await gateway.process_refund(
            bank_tran_id=bank_tran_id,
            amount=amount,
            reason=reason,
        )

    def verify_webhook(self, payload: dict) -> bool:
        """Verify callback signature with the configured gateway."""
        return self.get_gateway().verify_webhook(payload)


# Singleton instance
gateway_service = GatewayService()
