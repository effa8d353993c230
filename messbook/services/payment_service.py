"""Payment tracker.

Owns the payment side of a booking: opening gateway sessions, settling them
from webhooks or the client fallback, failures, cancellations and refunds.
Every settlement path funnels through one conditional write on the booking's
payment status, so whichever caller gets there first is the only one that
changes anything or emits a notification.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from messbook.config import settings
from messbook.core.exceptions import (
    ConflictError,
    ForbiddenError,
    GatewayUnavailable,
    NotFoundError,
    ValidationError,
)
from messbook.domain.availability import AvailabilityCause
from messbook.domain.booking_state import (
    BookingStatus,
    assert_booking_transition,
    is_terminal,
)
from messbook.domain.payment_state import (
    GatewayStatus,
    PaymentStatus,
    SessionStatus,
    assert_payment_transition,
)
from messbook.gateways.base import SessionRequest, ValidationResult
from messbook.models.booking import Booking
from messbook.models.listing import Listing
from messbook.models.payment import PaymentSession
from messbook.models.user import User
from messbook.services.booking_service import (
    get_booking,
    refresh_booking,
    update_booking_if,
)
from messbook.services.coordinator import coordinator, listing_state
from messbook.services.gateway_service import gateway_service
from messbook.services.notification_service import notification_service
from messbook.utils.transaction_id import generate_transaction_id

logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_SETTLED = "already_settled"
    IGNORED = "ignored"


@dataclass
class SettlementResult:
    """What a settle, fail or cancel call did."""

    outcome: SettlementOutcome
    booking: Booking
    transaction_id: str | None = None
    reason: str | None = None

    @property
    def changed(self) -> bool:
        return self.outcome is SettlementOutcome.APPLIED


class PaymentService:
    """Service for payment sessions and settlement."""

    async def get_session(self, db: AsyncSession, transaction_id: str) -> PaymentSession:
        result = await db.execute(
            select(PaymentSession).where(PaymentSession.transaction_id == transaction_id)
        )
        payment_session = result.scalar_one_or_none()
        if not payment_session:
            raise NotFoundError("Payment session", transaction_id)
        return payment_session

    # ==================== INITIATION ====================

    async def initiate(
        self,
        db: AsyncSession,
        booking_id: UUID,
        requester: User | None = None,
        customer_info: dict | None = None,
    ) -> PaymentSession:
        """Persist a payment session and open it at the gateway.

        The session row is flushed before the gateway is contacted; if the
        gateway call fails the caller's rollback removes it again.

        Raises:
            NotFoundError: Unknown booking
            ForbiddenError: Requester is not the booking's renter
            ConflictError: Booking is terminal, already settled, or the
                listing is held by another booking
            GatewayUnavailable: Gateway unreachable or declined the session
        """
        booking = await get_booking(db, booking_id)
        if requester is not None and booking.renter_id != requester.id:
            raise ForbiddenError("You can only pay for your own bookings")

        if is_terminal(booking.booking_status):
            raise ConflictError(
                f"Cannot pay for a {booking.booking_status} booking",
                current_state=booking.snapshot(),
            )
        if booking.payment_status != PaymentStatus.PENDING.value:
            raise ConflictError(
                f"Booking payment is already {booking.payment_status}",
                current_state=booking.snapshot(),
            )

        listing = await db.get(Listing, booking.listing_id, populate_existing=True)
        if listing.active_booking_id != booking.id:
            raise ConflictError(
                "This listing is no longer held for your booking",
                current_state=listing_state(listing),
            )

        gateway = gateway_service.get_gateway()
        transaction_id = await generate_transaction_id(db, booking.id)
        customer = {
            "name": booking.tenant_name,
            "email": booking.tenant_email,
            "phone": booking.tenant_phone,
            "address": listing.address or "",
            **(customer_info or {}),
        }
        callback_base = f"{settings.backend_url}{settings.api_prefix}/webhooks/payment"

        payment_session = PaymentSession(
            transaction_id=transaction_id,
            booking_id=booking.id,
            amount=booking.payable_amount,
            currency=settings.currency,
            customer=customer,
            success_url=f"{callback_base}/success",
            fail_url=f"{callback_base}/failure",
            cancel_url=f"{callback_base}/cancel",
            ipn_url=f"{callback_base}/ipn",
            gateway=gateway.gateway_type.value,
            status=SessionStatus.OPEN.value,
        )
        db.add(payment_session)
        booking.transaction_id = transaction_id
        booking.payment_method = gateway.gateway_type.value
        booking.payment_initiated_at = datetime.now(UTC)
        await db.flush()

        result = await gateway_service.create_session(
            SessionRequest(
                transaction_id=transaction_id,
                amount=payment_session.amount,
                currency=payment_session.currency,
                product_name=f"Mess Booking - {listing.title}",
                success_url=payment_session.success_url,
                fail_url=payment_session.fail_url,
                cancel_url=payment_session.cancel_url,
                ipn_url=payment_session.ipn_url,
                customer=customer,
                metadata={
                    "booking_id": booking.id,
                    "renter_id": booking.renter_id,
                    "listing_id": booking.listing_id,
                },
            )
        )
        if not result.success:
            raise GatewayUnavailable(gateway.gateway_type.value, result.error_message)

        payment_session.redirect_url = result.redirect_url
        payment_session.gateway_session_key = result.session_key
        payment_session.gateway_response = result.raw_response
        await db.flush()

        logger.info("Payment session %s opened for booking %s", transaction_id, booking.id)
        return payment_session

    # ==================== SETTLEMENT ====================

    async def confirm_from_webhook(
        self,
        db: AsyncSession,
        transaction_id: str,
        gateway_status: GatewayStatus,
        raw_payload: dict | None = None,
        validation: ValidationResult | None = None,
    ) -> SettlementResult:
        """Apply a gateway callback that has already been authenticated.

        Replays and callbacks that lose a race against another settlement
        path return ``ALREADY_SETTLED`` without side effects.
        """
        payment_session = await self.get_session(db, transaction_id)
        booking = await get_booking(db, payment_session.booking_id)

        if gateway_status is GatewayStatus.VALID:
            return await self._settle_paid(
                db, booking, payment_session, via="webhook", details=raw_payload, validation=validation
            )
        if gateway_status is GatewayStatus.FAILED:
            return await self._mark_failed(db, booking, payment_session, details=raw_payload)
        if gateway_status is GatewayStatus.CANCELLED:
            return await self.mark_cancelled(db, transaction_id, raw_payload)

        raise ValidationError(f"Unsupported gateway status: {gateway_status.value}")

    async def confirm_from_fallback(
        self,
        db: AsyncSession,
        transaction_id: str,
        requester: User | None = None,
    ) -> SettlementResult:
        """Settle a payment the client says succeeded but no webhook confirmed.

        Unless disabled, the gateway is asked first; the fallback never marks
        a payment paid on the client's word alone.
        """
        payment_session = await self.get_session(db, transaction_id)
        booking = await get_booking(db, payment_session.booking_id)
        if requester is not None and not requester.is_admin and booking.renter_id != requester.id:
            raise ForbiddenError("You can only confirm your own payments")

        # Paid through another session: still ask the gateway, it may be a second charge
        if booking.payment_status == PaymentStatus.PAID.value and booking.transaction_id == transaction_id:
            return SettlementResult(
                SettlementOutcome.ALREADY_SETTLED, booking, transaction_id, "already paid"
            )

        validation = None
        if settings.verify_fallback_with_gateway:
            validation = await gateway_service.query_transaction(transaction_id)
            if not validation.is_valid:
                raise ConflictError(
                    f"Payment is not confirmed by the gateway ({validation.status.value})",
                    current_state=booking.snapshot(),
                )

        details = {
            "auto_confirmed": True,
            "reason": "Webhook did not arrive; confirmed via client fallback",
            "tran_id": transaction_id,
            "status": GatewayStatus.VALID.value,
            "amount": payment_session.amount,
            "currency": payment_session.currency,
            "confirmed_at": datetime.now(UTC).isoformat(),
        }
        return await self._settle_paid(
            db, booking, payment_session, via="fallback", details=details, validation=validation
        )

    async def settle_by_admin(self, db: AsyncSession, booking: Booking, admin: User) -> SettlementResult:
        """Mark a booking paid outside the gateway (e.g. cash received)."""
        payment_session = None
        if booking.transaction_id:
            result = await db.execute(
                select(PaymentSession).where(PaymentSession.transaction_id == booking.transaction_id)
            )
            payment_session = result.scalar_one_or_none()

        details = {
            "manual": True,
            "confirmed_by": str(admin.id),
            "confirmed_at": datetime.now(UTC).isoformat(),
        }
        return await self._settle_paid(db, booking, payment_session, via="admin", details=details)

    async def _settle_paid(
        self,
        db: AsyncSession,
        booking: Booking,
        payment_session: PaymentSession | None,
        via: str,
        details: dict | None,
        validation: ValidationResult | None = None,
    ) -> SettlementResult:
        transaction_id = payment_session.transaction_id if payment_session else booking.transaction_id

        if booking.payment_status == PaymentStatus.PAID.value:
            return await self._already_paid(db, booking, payment_session, via, validation)
        if booking.payment_status != PaymentStatus.PENDING.value or is_terminal(booking.booking_status):
            return self._needs_reconciliation(booking, transaction_id, via)

        mismatch = self._amount_mismatch(payment_session, validation)
        if mismatch:
            logger.warning("Gateway reports %s for payment %s", mismatch, transaction_id)
            return self._needs_reconciliation(booking, transaction_id, via, reason="amount mismatch")

        old_booking_status = booking.booking_status
        now = datetime.now(UTC)
        values: dict[str, Any] = {
            "payment_status": PaymentStatus.PAID.value,
            "paid_at": now,
            "payment_details": details,
        }
        if transaction_id:
            values["transaction_id"] = transaction_id
        if old_booking_status == BookingStatus.PENDING.value:
            assert_booking_transition(old_booking_status, BookingStatus.CONFIRMED, "system")
            values["booking_status"] = BookingStatus.CONFIRMED.value

        won = await update_booking_if(
            db,
            booking,
            values,
            payment_status=PaymentStatus.PENDING.value,
            booking_status=old_booking_status,
        )
        if not won:
            booking = await refresh_booking(db, booking.id)
            if booking.payment_status == PaymentStatus.PAID.value:
                logger.info("Payment %s already settled by a concurrent request", transaction_id)
                return await self._already_paid(db, booking, payment_session, via, validation)
            return self._needs_reconciliation(booking, transaction_id, via)

        await coordinator.apply(
            db, booking.listing_id, AvailabilityCause.PAYMENT_PAID, booking_id=booking.id
        )

        if payment_session is not None:
            await self._record_settlement(db, payment_session, SessionStatus.CONSUMED, via, validation)

        booking = await refresh_booking(db, booking.id)
        notification_service.queue(
            db,
            notification_service.PAYMENT_PAID,
            booking,
            old_status=PaymentStatus.PENDING.value,
            new_status=PaymentStatus.PAID.value,
            transaction_id=transaction_id,
        )
        logger.info(
            "Payment %s settled via %s; booking %s %s -> %s",
            transaction_id, via, booking.id, old_booking_status, booking.booking_status,
        )
        return SettlementResult(SettlementOutcome.APPLIED, booking, transaction_id)

    async def _already_paid(
        self,
        db: AsyncSession,
        booking: Booking,
        payment_session: PaymentSession | None,
        via: str,
        validation: ValidationResult | None,
    ) -> SettlementResult:
        if payment_session is None or payment_session.transaction_id == booking.transaction_id:
            return SettlementResult(
                SettlementOutcome.ALREADY_SETTLED, booking, booking.transaction_id, "already paid"
            )

        # The booking was paid through another session, so this is a second charge
        transaction_id = payment_session.transaction_id
        if await self._record_settlement(db, payment_session, SessionStatus.DUPLICATE, via, validation):
            logger.warning(
                "Duplicate payment %s via %s for booking %s already paid by %s; manual reconciliation required",
                transaction_id, via, booking.id, booking.transaction_id,
            )
        return SettlementResult(SettlementOutcome.IGNORED, booking, transaction_id, "duplicate payment")

    @staticmethod
    def _amount_mismatch(
        payment_session: PaymentSession | None,
        validation: ValidationResult | None,
    ) -> str | None:
        """Describe how the gateway-confirmed charge differs from the session, if it does."""
        if payment_session is None or validation is None:
            return None
        if validation.amount is not None and abs(validation.amount - payment_session.amount) >= 0.01:
            return f"amount {validation.amount:.2f}, expected {payment_session.amount}"
        if validation.currency and str(validation.currency).upper() != payment_session.currency.upper():
            return f"currency {validation.currency}, expected {payment_session.currency}"
        return None

    async def _record_settlement(
        self,
        db: AsyncSession,
        payment_session: PaymentSession,
        status: SessionStatus,
        via: str,
        validation: ValidationResult | None,
    ) -> bool:
        values: dict[str, Any] = {
            "status": status.value,
            "consumed_at": datetime.now(UTC),
            "settled_via": via,
        }
        if validation is not None:
            values["gateway_validation_id"] = validation.validation_id
            values["gateway_bank_tran_id"] = validation.bank_tran_id
            values["gateway_response"] = validation.raw_response

        result = await db.execute(
            update(PaymentSession)
            .where(
                PaymentSession.id == payment_session.id,
                PaymentSession.status.not_in(
                    [SessionStatus.CONSUMED.value, SessionStatus.DUPLICATE.value]
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        for key, value in values.items():
            set_committed_value(payment_session, key, value)
        return True

    def _needs_reconciliation(
        self,
        booking: Booking,
        transaction_id: str | None,
        via: str,
        reason: str = "booking no longer payable",
    ) -> SettlementResult:
        logger.warning(
            "Successful payment %s via %s for booking %s not applied (%s, state %s/%s); "
            "manual reconciliation required",
            transaction_id, via, booking.id, reason, booking.booking_status, booking.payment_status,
        )
        return SettlementResult(SettlementOutcome.IGNORED, booking, transaction_id, reason)

    # ==================== FAILURE / CANCELLATION ====================

    async def _mark_failed(
        self,
        db: AsyncSession,
        booking: Booking,
        payment_session: PaymentSession,
        details: dict | None,
    ) -> SettlementResult:
        transaction_id = payment_session.transaction_id
        await self._close_session(db, payment_session, SessionStatus.FAILED, details)

        if booking.transaction_id != transaction_id:
            # A newer session is in flight for this booking
            return SettlementResult(
                SettlementOutcome.IGNORED, booking, transaction_id, "superseded session"
            )
        if booking.payment_status != PaymentStatus.PENDING.value:
            return SettlementResult(
                SettlementOutcome.ALREADY_SETTLED, booking, transaction_id, f"payment {booking.payment_status}"
            )

        won = await update_booking_if(
            db,
            booking,
            {"payment_status": PaymentStatus.FAILED.value, "payment_details": details},
            payment_status=PaymentStatus.PENDING.value,
            transaction_id=transaction_id,
        )
        booking = await refresh_booking(db, booking.id)
        if not won:
            return SettlementResult(
                SettlementOutcome.ALREADY_SETTLED, booking, transaction_id, f"payment {booking.payment_status}"
            )

        notification_service.queue(
            db,
            notification_service.PAYMENT_FAILED,
            booking,
            old_status=PaymentStatus.PENDING.value,
            new_status=PaymentStatus.FAILED.value,
            transaction_id=transaction_id,
        )
        logger.info("Payment %s failed for booking %s", transaction_id, booking.id)
        return SettlementResult(SettlementOutcome.APPLIED, booking, transaction_id)

    async def mark_failed_by_admin(self, db: AsyncSession, booking: Booking) -> Booking:
        assert_payment_transition(booking.payment_status, PaymentStatus.FAILED)
        won = await update_booking_if(
            db,
            booking,
            {"payment_status": PaymentStatus.FAILED.value},
            payment_status=booking.payment_status,
        )
        if not won:
            fresh = await refresh_booking(db, booking.id)
            raise ConflictError("Payment was changed by another request", current_state=fresh.snapshot())

        booking = await refresh_booking(db, booking.id)
        notification_service.queue(
            db,
            notification_service.PAYMENT_FAILED,
            booking,
            old_status=PaymentStatus.PENDING.value,
            new_status=PaymentStatus.FAILED.value,
            transaction_id=booking.transaction_id,
        )
        return booking

    async def mark_cancelled(
        self,
        db: AsyncSession,
        transaction_id: str,
        details: dict | None = None,
    ) -> SettlementResult:
        """The renter abandoned checkout. Only the session closes; they may pay again."""
        payment_session = await self.get_session(db, transaction_id)
        booking = await get_booking(db, payment_session.booking_id)
        closed = await self._close_session(db, payment_session, SessionStatus.CANCELLED, details)

        logger.info("Payment session %s cancelled by the renter", transaction_id)
        return SettlementResult(
            SettlementOutcome.APPLIED if closed else SettlementOutcome.ALREADY_SETTLED,
            booking,
            transaction_id,
        )

    async def _close_session(
        self,
        db: AsyncSession,
        payment_session: PaymentSession,
        status: SessionStatus,
        details: dict | None,
    ) -> bool:
        result = await db.execute(
            update(PaymentSession)
            .where(
                PaymentSession.id == payment_session.id,
                PaymentSession.status == SessionStatus.OPEN.value,
            )
            .values(status=status.value, gateway_response=details)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        set_committed_value(payment_session, "status", status.value)
        set_committed_value(payment_session, "gateway_response", details)
        return True

    # ==================== QUERIES ====================

    async def get_status(
        self,
        db: AsyncSession,
        transaction_id: str,
        requester: User | None = None,
    ) -> dict:
        payment_session = await self.get_session(db, transaction_id)
        booking = await get_booking(db, payment_session.booking_id)
        if requester is not None and not requester.is_admin and requester.id not in (
            booking.renter_id,
            booking.owner_id,
        ):
            raise ForbiddenError("You do not have access to this payment")

        listing = await db.get(Listing, booking.listing_id, populate_existing=True)
        return {
            "transaction_id": transaction_id,
            "session_status": payment_session.status,
            "amount": payment_session.amount,
            "currency": payment_session.currency,
            **booking.snapshot(),
            "listing_availability": listing.availability,
        }

    # ==================== REFUNDS ====================

    async def refund(
        self,
        db: AsyncSession,
        booking_id: UUID,
        requester: User,
        amount: int | None = None,
        reason: str = "",
        cancel_booking: bool = False,
    ) -> Booking:
        """Refund a paid booking and release its listing.

        Nothing is written unless the payment is currently ``paid``. When the
        gateway refund fails the whole operation raises and the caller's
        rollback undoes the status change.

        Raises:
            ForbiddenError: Requester is not an administrator
            ConflictError: Payment is not paid
            ValidationError: Refund amount out of range
            InvalidTransition: ``cancel_booking`` from a status that cannot be cancelled
            GatewayUnavailable: Gateway refund failed
        """
        if not requester.is_admin:
            raise ForbiddenError("Only administrators can issue refunds")

        booking = await get_booking(db, booking_id)
        if booking.payment_status != PaymentStatus.PAID.value:
            raise ConflictError(
                "Only paid payments can be refunded",
                current_state=booking.snapshot(),
            )

        amount = booking.payable_amount if amount is None else amount
        if amount <= 0 or amount > booking.payable_amount:
            raise ValidationError(
                f"Refund amount must be between 1 and {booking.payable_amount}"
            )

        old_booking_status = booking.booking_status
        now = datetime.now(UTC)
        values: dict[str, Any] = {
            "payment_status": PaymentStatus.REFUNDED.value,
            "refund_amount": amount,
            "refund_reason": reason,
            "refunded_at": now,
            "refunded_by": requester.id,
        }
        if cancel_booking:
            target = assert_booking_transition(old_booking_status, BookingStatus.CANCELLED, "admin")
            values.update(booking_status=target.value, cancelled_at=now, cancelled_by="admin")

        won = await update_booking_if(
            db,
            booking,
            values,
            payment_status=PaymentStatus.PAID.value,
            booking_status=old_booking_status,
        )
        if not won:
            fresh = await refresh_booking(db, booking.id)
            raise ConflictError(
                "Payment was changed by another request, please retry",
                current_state=fresh.snapshot(),
            )

        await coordinator.apply(
            db, booking.listing_id, AvailabilityCause.PAYMENT_REFUNDED, booking_id=booking.id
        )

        refund_id = await self._refund_at_gateway(db, booking, amount, reason)

        booking = await refresh_booking(db, booking.id)
        if refund_id:
            booking.payment_details = {**(booking.payment_details or {}), "refund_id": refund_id}

        notification_service.queue(
            db,
            notification_service.PAYMENT_REFUNDED,
            booking,
            old_status=PaymentStatus.PAID.value,
            new_status=PaymentStatus.REFUNDED.value,
            transaction_id=booking.transaction_id,
        )
        logger.info(
            "Refunded %s on booking %s (booking %s -> %s)",
            amount, booking.id, old_booking_status, booking.booking_status,
        )
        return booking

    async def _refund_at_gateway(
        self,
        db: AsyncSession,
        booking: Booking,
        amount: int,
        reason: str,
    ) -> str | None:
        if not settings.refund_via_gateway or not booking.transaction_id:
            return None

        result = await db.execute(
            select(PaymentSession).where(PaymentSession.transaction_id == booking.transaction_id)
        )
        payment_session = result.scalar_one_or_none()
        if payment_session is None or not payment_session.gateway_bank_tran_id:
            logger.info("Booking %s has no gateway charge to refund; recorded locally", booking.id)
            return None

        refund = await gateway_service.process_refund(
            payment_session.gateway,
            bank_tran_id=payment_session.gateway_bank_tran_id,
            amount=amount,
            reason=reason or "Refund",
        )
        if not refund.success:
            raise GatewayUnavailable(payment_session.gateway, refund.error_message or "refund rejected")
        return refund.refund_id


payment_service = PaymentService()
