"""Administrative audit trail service."""

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from messbook.models.admin import AuditLog


class AuditService:
    """Service for append-only audit logging of privileged actions."""

    async def log_admin_action(
        self,
        db: AsyncSession,
        user_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Record a privileged action in the caller's transaction.

        Args:
            db: Database session
            user_id: Administrator performing the action
            action: Action name (e.g., "payment_refund")
            resource_type: Resource type (e.g., "booking")
            resource_id: Resource ID
            old_values: Previous state
            new_values: New state

        Returns:
            Created audit log entry
        """
        audit = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
        )
        db.add(audit)
        return audit

    async def log_booking_action(
        self,
        db: AsyncSession,
        user_id: UUID,
        action: str,
        booking_id: UUID,
        old_state: dict[str, Any],
        new_state: dict[str, Any],
        notes: str | None = None,
    ) -> AuditLog:
        """Log an override of booking or payment status."""
        new_values = dict(new_state)
        if notes:
            new_values["notes"] = notes

        return await self.log_admin_action(
            db=db,
            user_id=user_id,
            action=action,
            resource_type="booking",
            resource_id=booking_id,
            old_values=old_state,
            new_values=new_values,
        )

    async def log_refund_action(
        self,
        db: AsyncSession,
        user_id: UUID,
        booking_id: UUID,
        amount: int,
        reason: str,
        refund_id: str | None = None,
    ) -> AuditLog:
        """Log refund of a paid booking."""
        return await self.log_admin_action(
            db=db,
            user_id=user_id,
            action="payment_refund",
            resource_type="booking",
            resource_id=booking_id,
            old_values={"payment_status": "paid"},
            new_values={
                "payment_status": "refunded",
                "amount": amount,
                "reason": reason,
                "refund_id": refund_id,
            },
        )


audit_service = AuditService()
