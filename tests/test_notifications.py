"""Transition events are released only by a committed transaction."""

import asyncio
import uuid

import httpx
import pytest

from messbook import tasks
from messbook.services import notification_service as notification_module
from messbook.services.notification_service import (
    NotificationService,
    TransitionEvent,
    notification_service,
)


def _event(**overrides):
    values = dict(
        event="booking_confirmed",
        booking_id=uuid.uuid4(),
        listing_id=uuid.uuid4(),
        old_status="pending",
        new_status="confirmed",
        recipient_email="tenant@example.com",
        recipient_ids=[uuid.uuid4()],
        dedup_key="B1:booking_confirmed",
    )
    values.update(overrides)
    return TransitionEvent(**values)


class TestCommitBoundary:
    async def test_dispatched_after_commit(self, db, create_booking, dispatched):
        booking = await create_booking()
        dispatched.clear()

        notification_service.queue(db, "booking_confirmed", booking, "pending", "confirmed")
        assert dispatched == []

        await db.commit()

        assert len(dispatched) == 1
        assert dispatched[0].dedup_key == f"{booking.id}:booking_confirmed"

    async def test_discarded_on_rollback(self, db, create_booking, dispatched):
        booking = await create_booking()
        dispatched.clear()
        await db.refresh(booking)

        notification_service.queue(db, "booking_cancelled", booking, "pending", "cancelled")
        await db.rollback()
        await db.commit()

        assert dispatched == []

    async def test_transaction_id_keys_payment_events(self, db, create_booking):
        booking = await create_booking()

        queued = notification_service.queue(
            db, "payment_paid", booking, "pending", "paid", transaction_id="BOOKING-1"
        )

        assert queued.dedup_key == "BOOKING-1:payment_paid"
        assert queued.recipient_email == "renter@example.com"
        assert queued.recipient_ids == [booking.owner_id]


class TestDispatch:
    def test_enqueue_failure_is_logged_not_raised(self, monkeypatch, caplog):
        def broker_down(payload):
            raise ConnectionError("redis unreachable")

        monkeypatch.setattr(tasks.deliver_transition_event, "delay", broker_down)

        NotificationService().dispatch(_event())

        assert "Failed to enqueue notification B1:booking_confirmed" in caplog.text

    def test_task_delivers_payload(self, monkeypatch):
        delivered = []

        async def deliver(transition_event):
            delivered.append(transition_event)
            return 2

        monkeypatch.setattr(notification_service, "deliver", deliver)
        monkeypatch.setattr(tasks, "run_async", asyncio.run)

        result = tasks.deliver_transition_event.apply(args=(_event().model_dump(mode="json"),)).get()

        assert result == {"status": "success", "dedup_key": "B1:booking_confirmed", "sent": 2}
        assert delivered[0].new_status == "confirmed"


class TestDelivery:
    async def test_emails_each_recipient(self, users, monkeypatch):
        sent = []

        async def send_email(to_email, subject, html_content, text_content=None, dedup_key=None):
            sent.append((to_email, subject, dedup_key))
            return True

        service = NotificationService()
        monkeypatch.setattr(service, "send_email", send_email)

        count = await service.deliver(_event(recipient_ids=[users.owner.id]))

        assert count == 2
        assert sent == [
            ("tenant@example.com", "Booking confirmed", "B1:booking_confirmed"),
            ("owner@example.com", "Booking confirmed", "B1:booking_confirmed"),
        ]

    async def test_tenant_address_is_not_emailed_twice(self, users, monkeypatch):
        sent = []

        async def send_email(to_email, subject, html_content, text_content=None, dedup_key=None):
            sent.append(to_email)
            return True

        service = NotificationService()
        monkeypatch.setattr(service, "send_email", send_email)

        await service.deliver(
            _event(recipient_email="Renter@example.com", recipient_ids=[users.renter.id, users.owner.id])
        )

        assert sent == ["Renter@example.com", "owner@example.com"]

    async def test_tenant_only_event_needs_no_lookup(self, monkeypatch):
        sent = []

        async def send_email(to_email, subject, html_content, text_content=None, dedup_key=None):
            sent.append(to_email)
            return True

        service = NotificationService()
        monkeypatch.setattr(service, "send_email", send_email)

        assert await service.deliver(_event(recipient_ids=[])) == 1
        assert sent == ["tenant@example.com"]

    async def test_unconfigured_sendgrid_skips(self, monkeypatch):
        monkeypatch.setattr(notification_module.settings, "sendgrid_api_key", None)
        assert not await NotificationService().send_email("a@example.com", "s", "<p>x</p>")

    @pytest.mark.parametrize("status_code, expected", [(202, True), (400, False)])
    async def test_sendgrid_response(self, monkeypatch, status_code, expected):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(status_code)

        monkeypatch.setattr(notification_module.settings, "sendgrid_api_key", "SG.test")
        service = NotificationService()
        service._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        assert await service.send_email("a@example.com", "s", "<p>x</p>", "x", dedup_key="K") is expected
        assert requests[0].headers["Authorization"] == "Bearer SG.test"
        await service.close()

    async def test_sendgrid_outage_is_not_fatal(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        monkeypatch.setattr(notification_module.settings, "sendgrid_api_key", "SG.test")
        service = NotificationService()
        service._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        assert not await service.send_email("a@example.com", "s", "<p>x</p>")
        await service.close()
