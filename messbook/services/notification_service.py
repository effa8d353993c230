"""Notification service for booking and payment transitions.

Events are collected on the database session while a transition runs and
handed to the Celery worker only after the transaction commits. A rolled
back transaction discards its events, so nobody hears about a state that
never existed.
"""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx
from pydantic import BaseModel, Field
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from messbook.config import settings
from messbook.database import get_db_context
from messbook.models.booking import Booking
from messbook.models.user import User

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "messbook.pending_events"


class TransitionEvent(BaseModel):
    """A committed booking or payment transition, as seen by the parties."""

    event: str
    booking_id: UUID
    listing_id: UUID
    transaction_id: str | None = None
    old_status: str | None = None
    new_status: str
    # Tenant contact from the booking; other parties are looked up by id
    recipient_email: str | None = None
    recipient_ids: list[UUID] = Field(default_factory=list)
    dedup_key: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class NotificationService:
    """Service for queueing and delivering transition notifications."""

    # Notification types
    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_EXPIRED = "booking_expired"
    PAYMENT_PAID = "payment_paid"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"

    SUBJECTS = {
        BOOKING_CREATED: "New booking request",
        BOOKING_CONFIRMED: "Booking confirmed",
        BOOKING_REJECTED: "Booking rejected",
        BOOKING_CANCELLED: "Booking cancelled",
        BOOKING_COMPLETED: "Booking completed",
        BOOKING_EXPIRED: "Booking expired",
        PAYMENT_PAID: "Payment received",
        PAYMENT_FAILED: "Payment failed",
        PAYMENT_REFUNDED: "Payment refunded",
    }

    def __init__(self) -> None:
        """Initialize notification service."""
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== QUEUEING ====================

    def queue(
        self,
        db: AsyncSession,
        notification_type: str,
        booking: Booking,
        old_status: str | None,
        new_status: str,
        transaction_id: str | None = None,
    ) -> TransitionEvent:
        """Attach a transition event to the session's pending list.

        The dedup key identifies the transition itself, so a receiver that
        sees it twice (at-least-once delivery) can drop the repeat.
        """
        key_source = transaction_id or str(booking.id)
        transition_event = TransitionEvent(
            event=notification_type,
            booking_id=booking.id,
            listing_id=booking.listing_id,
            transaction_id=transaction_id,
            old_status=old_status,
            new_status=new_status,
            recipient_email=booking.tenant_email,
            recipient_ids=[booking.owner_id],
            dedup_key=f"{key_source}:{notification_type}",
        )
        db.sync_session.info.setdefault(PENDING_EVENTS_KEY, []).append(transition_event)
        return transition_event

    def dispatch(self, transition_event: TransitionEvent) -> None:
        """Hand a committed event to the worker. Failures never reach the caller."""
        from messbook.tasks import deliver_transition_event

        try:
            deliver_transition_event.delay(transition_event.model_dump(mode="json"))
        except Exception:
            logger.exception("Failed to enqueue notification %s", transition_event.dedup_key)

    # ==================== DELIVERY ====================

    async def deliver(self, transition_event: TransitionEvent) -> int:
        """Email the tenant and every other party of an event. Returns the number sent."""
        addresses = [transition_event.recipient_email] if transition_event.recipient_email else []
        if transition_event.recipient_ids:
            async with get_db_context() as db:
                result = await db.execute(
                    select(User.email).where(User.id.in_(transition_event.recipient_ids))
                )
                addresses.extend(result.scalars().all())

        recipients: list[str] = []
        seen: set[str] = set()
        for address in addresses:
            if address.lower() not in seen:
                seen.add(address.lower())
                recipients.append(address)

        subject = self.SUBJECTS.get(transition_event.event, "Booking update")
        body = self._describe(transition_event)
        html_content = self._render_html(transition_event, subject, body)

        sent = 0
        for address in recipients:
            if await self.send_email(
                to_email=address,
                subject=subject,
                html_content=html_content,
                text_content=body,
                dedup_key=transition_event.dedup_key,
            ):
                sent += 1

        logger.info(
            "Delivered %s to %d/%d recipients",
            transition_event.dedup_key, sent, len(recipients),
        )
        return sent

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        dedup_key: str | None = None,
    ) -> bool:
        """Send an email via SendGrid.

        Args:
            to_email: Recipient email
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body
            dedup_key: Forwarded as a custom arg so repeats can be spotted

        Returns:
            bool: True if sent successfully
        """
        if not settings.sendgrid_api_key:
            logger.debug("SendGrid not configured; skipping email to %s", to_email)
            return False

        headers = {
            "Authorization": f"Bearer {settings.sendgrid_api_key}",
            "Content-Type": "application/json",
        }

        payload: dict[str, Any] = {
            "personalizations": [
                {
                    "to": [{"email": to_email}],
                }
            ],
            "from": {
                "email": settings.email_from_address,
                "name": settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})
        if dedup_key:
            payload["custom_args"] = {"dedup_key": dedup_key}

        try:
            response = await self.http_client.post(
                "https://api.sendgrid.com/v3/mail/send",
                headers=headers,
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning("SendGrid request failed for %s: %s", to_email, e)
            return False

        if response.status_code not in (200, 202):
            logger.warning("SendGrid rejected email to %s: %s", to_email, response.status_code)
            return False
        return True

    @staticmethod
    def _describe(transition_event: TransitionEvent) -> str:
        if transition_event.old_status:
            return (
                f"Booking {transition_event.booking_id} moved from "
                f"{transition_event.old_status} to {transition_event.new_status}."
            )
        return f"Booking {transition_event.booking_id} is now {transition_event.new_status}."

    def _render_html(self, transition_event: TransitionEvent, subject: str, body: str) -> str:
        rows = [("Booking", str(transition_event.booking_id))]
        if transition_event.transaction_id:
            rows.append(("Transaction", transition_event.transaction_id))
        if transition_event.old_status:
            rows.append(("Previous status", transition_event.old_status))
        rows.append(("Current status", transition_event.new_status))
        table = "".join(
            f"<tr><td style=\"padding:4px 12px 4px 0;color:#6b7280\">{label}</td>"
            f"<td style=\"padding:4px 0\"><strong>{value}</strong></td></tr>"
            for label, value in rows
        )
        link = f"{settings.frontend_url}/bookings/{transition_event.booking_id}"

        return (
            "<html><body style=\"font-family:Arial,Helvetica,sans-serif;color:#1f2937\">"
            f"<h2 style=\"color:#0F766E\">{subject}</h2>"
            f"<p>{body}</p>"
            f"<table>{table}</table>"
            f"<p><a href=\"{link}\">Open booking</a></p>"
            f"<p style=\"font-size:12px;color:#9ca3af\">{settings.app_name}</p>"
            "</body></html>"
        )


notification_service = NotificationService()


@event.listens_for(Session, "after_commit")
def _dispatch_after_commit(session: Session) -> None:
    for transition_event in session.info.pop(PENDING_EVENTS_KEY, []):
        notification_service.dispatch(transition_event)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    discarded = session.info.pop(PENDING_EVENTS_KEY, [])
    if discarded:
        logger.debug("Discarded %d notification(s) from rolled back transaction", len(discarded))
