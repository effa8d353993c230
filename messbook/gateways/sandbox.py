"""Sandbox payment gateway adapter for local development and tests."""

from messbook.config import settings
from messbook.domain.payment_state import GatewayStatus
from messbook.gateways.base import (
    GatewayType,
    PaymentGateway,
    RefundResult,
    SessionRequest,
    SessionResult,
    ValidationResult,
    parse_amount,
)


class SandboxGateway(PaymentGateway):
    """In-process gateway that never leaves the machine.

    Callbacks are trusted as posted; ``query_status`` controls what a
    transaction lookup reports.
    """

    def __init__(self, query_status: GatewayStatus = GatewayStatus.VALID):
        self.query_status = query_status
        self.sessions: dict[str, SessionRequest] = {}
        self.refunds: list[dict] = []

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.SANDBOX

    async def create_session(self, request: SessionRequest) -> SessionResult:
        """Create sandbox session (always succeeds)."""
        self.sessions[request.transaction_id] = request
        return SessionResult(
            success=True,
            redirect_url=f"{settings.backend_url}/sandbox/pay/{request.transaction_id}",
            session_key=f"sandbox_{request.transaction_id}",
            raw_response={"status": "SUCCESS", "sandbox": True},
        )

    async def validate_callback(self, payload: dict) -> ValidationResult:
        status = str(payload.get("status") or "").upper()
        return ValidationResult(
            status=GatewayStatus.VALID if status in ("VALID", "VALIDATED") else GatewayStatus.FAILED,
            transaction_id=payload.get("tran_id"),
            amount=parse_amount(payload.get("amount")),
            currency=payload.get("currency"),
            validation_id=payload.get("val_id"),
            bank_tran_id=payload.get("bank_tran_id"),
            raw_response=payload,
        )

    async def query_transaction(self, transaction_id: str) -> ValidationResult:
        return ValidationResult(
            status=self.query_status,
            transaction_id=transaction_id,
            validation_id=f"sandbox_val_{transaction_id}",
            bank_tran_id=f"sandbox_bank_{transaction_id}",
            raw_response={"sandbox": True, "status": self.query_status.value},
        )

    async def process_refund(
        self,
        bank_tran_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process sandbox refund (always succeeds)."""
        self.refunds.append({"bank_tran_id": bank_tran_id, "amount": amount, "reason": reason})
        return RefundResult(
            success=True,
            refund_id=f"refund_{bank_tran_id}",
            raw_response={"type": "sandbox_refund", "amount": amount, "reason": reason},
        )

    def verify_webhook(self, payload: dict) -> bool:
        return bool(payload.get("tran_id"))
