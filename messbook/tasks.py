"""Celery background tasks.

- Notification delivery for committed booking/payment transitions
- Expiry of bookings that were never paid
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from celery import shared_task

from messbook import database
from messbook.config import settings
from messbook.core.exceptions import ConflictError
from messbook.database import get_db_context
from messbook.services.booking_service import booking_service
from messbook.services.notification_service import TransitionEvent, notification_service
from messbook.worker import celery_app  # noqa: F401  (makes it the current app for shared_task)

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context.

    Each task gets a fresh event loop, so pooled connections from the
    previous loop are disposed of afterwards.
    """

    async def runner():
        try:
            return await coro
        finally:
            await database.engine.dispose()

    return asyncio.run(runner())


# ==================== NOTIFICATION TASKS ====================


@shared_task(bind=True, max_retries=3, acks_late=True)
def deliver_transition_event(self, payload: dict):
    """Email the parties of one committed transition.

    Delivery is at-least-once; recipients dedupe on ``dedup_key``.
    """
    transition_event = TransitionEvent.model_validate(payload)
    try:
        sent = run_async(notification_service.deliver(transition_event))
        return {"status": "success", "dedup_key": transition_event.dedup_key, "sent": sent}
    except Exception as exc:
        logger.exception("Delivery of %s failed", transition_event.dedup_key)
        raise self.retry(exc=exc, countdown=60)


# ==================== BOOKING TASKS ====================


@shared_task(bind=True, max_retries=3)
def expire_unpaid_bookings(self):
    """Cancel pending bookings whose payment never completed.

    Runs every ``settings.expiry_sweep_minutes`` minutes.
    """
    try:
        expired = run_async(_expire_unpaid_bookings())
        return {"status": "success", "expired": len(expired)}
    except Exception as exc:
        raise self.retry(exc=exc, countdown=60)


async def _expire_unpaid_bookings(now: datetime | None = None) -> list[str]:
    """Async implementation of unpaid booking expiry.

    Each booking is expired in its own transaction so one conflict does not
    hold back the rest of the sweep.
    """
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(minutes=settings.unpaid_booking_timeout_minutes)

    async with get_db_context() as db:
        booking_ids = await booking_service.find_expired(db, cutoff)

    expired = []
    for booking_id in booking_ids:
        try:
            async with get_db_context() as db:
                if await booking_service.expire_unpaid(db, booking_id):
                    expired.append(str(booking_id))
        except ConflictError as e:
            logger.info("Skipped expiring booking %s: %s", booking_id, e.detail)

    if expired:
        logger.info("Expired %d unpaid booking(s) older than %s", len(expired), cutoff.isoformat())
    return expired
