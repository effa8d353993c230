"""HTTP surface: envelopes, status codes and webhook acknowledgements."""

from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest

from messbook.core.security import create_access_token
from messbook.models.booking import Booking
from messbook.models.listing import Listing
from messbook.services.payment_service import payment_service


def auth_headers(user):
    token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def _booking_body(listing, **overrides):
    body = {
        "listing_id": str(listing.id),
        "check_in_date": (datetime.now(UTC) + timedelta(days=5)).date().isoformat(),
        "payable_amount": 9000,
        "tenant_name": "Rahim Renter",
        "tenant_phone": "01711111111",
        "tenant_email": "renter@example.com",
    }
    body.update(overrides)
    return body


@pytest.fixture
def book(client, listing, users):
    async def _book(user=None):
        return await client.post(
            "/api/v1/bookings",
            json=_booking_body(listing),
            headers=auth_headers(user or users.renter),
        )

    return _book


@pytest.fixture
def book_and_initiate(client, book, users):
    async def _run():
        booking_id = (await book()).json()["data"]["id"]
        response = await client.post(
            "/api/v1/payments/initiate",
            json={"booking_id": booking_id},
            headers=auth_headers(users.renter),
        )
        assert response.status_code == 201
        return booking_id, response.json()["data"]["transaction_id"]

    return _run


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestBookings:
    async def test_create(self, book, db, listing):
        response = await book()

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Booking created successfully"
        assert body["data"]["booking_status"] == "pending"
        assert body["data"]["total_amount"] == 9000

        fresh = await db.get(Listing, listing.id, populate_existing=True)
        assert fresh.availability == "reserved_for_booking"

    async def test_conflict_carries_current_state(self, book, users):
        await book()

        response = await book(users.other_renter)

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "conflict"
        assert body["current_state"]["availability"] == "reserved_for_booking"

    async def test_unauthenticated(self, client, listing):
        response = await client.post("/api/v1/bookings", json=_booking_body(listing))

        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    async def test_suspended_user_cannot_book(self, book, users):
        response = await book(users.suspended)

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_request_validation_envelope(self, client, listing, users):
        response = await client.post(
            "/api/v1/bookings",
            json=_booking_body(listing, payable_amount=0),
            headers=auth_headers(users.renter),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "validation_error"
        assert body["errors"][0]["loc"][-1] == "payable_amount"

    async def test_confirmed_booking_cannot_be_rejected(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.patch(
            f"/api/v1/bookings/{booking_id}/status",
            json={"booking_status": "confirmed"},
            headers=auth_headers(users.owner),
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Booking confirmed successfully"

        response = await client.patch(
            f"/api/v1/bookings/{booking_id}/status",
            json={"booking_status": "rejected"},
            headers=auth_headers(users.owner),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_transition"

    async def test_renter_cancel(self, client, book, users, db, listing):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.post(
            f"/api/v1/bookings/{booking_id}/cancel", headers=auth_headers(users.renter)
        )

        assert response.status_code == 200
        assert response.json()["data"]["cancelled_by"] == "renter"
        fresh = await db.get(Listing, listing.id, populate_existing=True)
        assert fresh.availability == "free"

    async def test_strangers_cannot_read(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers(users.other_renter))

        assert response.status_code == 403

    async def test_renter_lists_own_bookings(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        mine = await client.get("/api/v1/bookings/mine", headers=auth_headers(users.renter))
        theirs = await client.get("/api/v1/bookings/mine", headers=auth_headers(users.other_renter))

        assert mine.status_code == 200
        assert [b["id"] for b in mine.json()["data"]["bookings"]] == [booking_id]
        assert theirs.json()["data"] == {
            "bookings": [],
            "total": 0,
            "page": 1,
            "page_size": 10,
            "total_pages": 0,
        }

    async def test_owner_lists_bookings_on_their_listings(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.get(
            "/api/v1/bookings/owner", params={"period": "upcoming"}, headers=auth_headers(users.owner)
        )

        assert response.status_code == 200
        assert [b["id"] for b in response.json()["data"]["bookings"]] == [booking_id]

    async def test_renters_cannot_list_owner_bookings(self, client, users):
        response = await client.get("/api/v1/bookings/owner", headers=auth_headers(users.renter))

        assert response.status_code == 403


class TestPayments:
    async def test_initiate_returns_payment_url(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.post(
            "/api/v1/payments/initiate",
            json={"booking_id": booking_id},
            headers=auth_headers(users.renter),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["payment_url"].endswith(data["transaction_id"])
        assert data["gateway"] == "sandbox"

    async def test_fallback_then_status(self, client, book_and_initiate, users):
        _, tran_id = await book_and_initiate()

        response = await client.post(
            "/api/v1/payments/fallback-confirm",
            json={"transaction_id": tran_id},
            headers=auth_headers(users.renter),
        )
        assert response.status_code == 200
        assert response.json()["data"]["outcome"] == "applied"

        response = await client.post(
            "/api/v1/payments/fallback-confirm",
            json={"transaction_id": tran_id},
            headers=auth_headers(users.renter),
        )
        assert response.json()["message"] == "Payment already confirmed"

        response = await client.get(f"/api/v1/payments/{tran_id}", headers=auth_headers(users.owner))
        data = response.json()["data"]
        assert data["payment_status"] == "paid"
        assert data["listing_availability"] == "booked"

    async def test_unknown_transaction(self, client, users):
        response = await client.get("/api/v1/payments/BOOKING-NOPE", headers=auth_headers(users.renter))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestWebhooks:
    async def test_ipn_settles_once(self, client, book_and_initiate, db, dispatched):
        booking_id, tran_id = await book_and_initiate()
        form = {"tran_id": tran_id, "status": "VALID", "val_id": "V1", "amount": "9000.00"}

        first = await client.post("/api/v1/webhooks/payment/ipn", data=form)
        replay = await client.post("/api/v1/webhooks/payment/ipn", data=form)

        assert first.status_code == replay.status_code == 200
        assert first.json()["processed"] is True
        assert replay.json()["processed"] is False
        assert replay.json()["reason"] == "already paid"
        assert len([event for event in dispatched if event.event == "payment_paid"]) == 1

        booking = await db.get(Booking, UUID(booking_id), populate_existing=True)
        assert booking.payment_status == "paid"

    async def test_ipn_accepts_json(self, client, book_and_initiate):
        _, tran_id = await book_and_initiate()

        response = await client.post(
            "/api/v1/webhooks/payment/ipn", json={"tran_id": tran_id, "status": "FAILED"}
        )

        assert response.json()["processed"] is True

    async def test_success_redirects_to_frontend(self, client, book_and_initiate):
        _, tran_id = await book_and_initiate()

        response = await client.post(
            "/api/v1/webhooks/payment/success", data={"tran_id": tran_id, "status": "VALID"}
        )

        assert response.status_code == 303
        assert response.headers["location"].endswith(f"/payment/success?tran_id={tran_id}")

    async def test_cancel_without_redirect(self, client, book_and_initiate, db):
        booking_id, tran_id = await book_and_initiate()

        response = await client.post(
            "/api/v1/webhooks/payment/cancel?redirect=false", data={"tran_id": tran_id, "status": "CANCELLED"}
        )

        assert response.status_code == 200
        assert response.json()["processed"] is True
        booking = await db.get(Booking, UUID(booking_id), populate_existing=True)
        assert booking.payment_status == "pending"

    async def test_unknown_transaction_is_still_acknowledged(self, client):
        response = await client.post(
            "/api/v1/webhooks/payment/ipn", data={"tran_id": "BOOKING-NOPE", "status": "VALID"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "processed": False,
            "transaction_id": "BOOKING-NOPE",
            "reason": "not_found",
        }

    async def test_missing_tran_id(self, client):
        response = await client.post("/api/v1/webhooks/payment/ipn", data={"status": "VALID"})

        assert response.status_code == 200
        assert response.json()["reason"] == "missing tran_id"

    async def test_non_string_tran_id_is_acknowledged(self, client):
        response = await client.post(
            "/api/v1/webhooks/payment/ipn", json={"tran_id": {"x": 1}, "status": "VALID"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "processed": False,
            "transaction_id": None,
            "reason": "malformed payload",
        }

    async def test_unreadable_amount_does_not_break_ipn(self, client, book_and_initiate):
        _, tran_id = await book_and_initiate()

        response = await client.post(
            "/api/v1/webhooks/payment/ipn", data={"tran_id": tran_id, "status": "VALID", "amount": "abc"}
        )

        assert response.status_code == 200
        assert response.json()["transaction_id"] == tran_id

    async def test_mismatched_amount_is_not_applied(self, client, book_and_initiate, db):
        booking_id, tran_id = await book_and_initiate()

        response = await client.post(
            "/api/v1/webhooks/payment/ipn", data={"tran_id": tran_id, "status": "VALID", "amount": "10.00"}
        )

        assert response.status_code == 200
        assert response.json()["processed"] is False
        assert response.json()["reason"] == "amount mismatch"
        booking = await db.get(Booking, UUID(booking_id), populate_existing=True)
        assert booking.payment_status == "pending"

    async def test_unexpected_error_is_acknowledged(self, client, book_and_initiate, monkeypatch, caplog):
        _, tran_id = await book_and_initiate()

        async def _explode(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(payment_service, "confirm_from_webhook", _explode)
        response = await client.post(
            "/api/v1/webhooks/payment/ipn", data={"tran_id": tran_id, "status": "VALID"}
        )

        assert response.status_code == 200
        assert response.json()["processed"] is False
        assert response.json()["reason"] == "processing_error"
        assert "could not be processed" in caplog.text


class TestAdmin:
    async def test_refund_requires_admin(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.post(
            f"/api/v1/admin/bookings/{booking_id}/refund",
            json={"reason": "test"},
            headers=auth_headers(users.owner),
        )

        assert response.status_code == 403

    async def test_mark_paid_then_refund(self, client, book, users, db, listing):
        booking_id = (await book()).json()["data"]["id"]
        admin = auth_headers(users.admin)

        response = await client.patch(
            f"/api/v1/admin/bookings/{booking_id}/payment-status", json={"status": "paid"}, headers=admin
        )
        assert response.json()["data"]["payment_status"] == "paid"

        response = await client.post(
            f"/api/v1/admin/bookings/{booking_id}/refund",
            json={"reason": "Room unavailable", "cancel_booking": True},
            headers=admin,
        )
        assert response.status_code == 200
        assert response.json()["data"]["booking_status"] == "cancelled"

        fresh = await db.get(Listing, listing.id, populate_existing=True)
        assert fresh.availability == "free"

        response = await client.get(
            "/api/v1/admin/audit-logs", params={"resource_id": booking_id}, headers=admin
        )
        actions = {log["action"] for log in response.json()["data"]}
        assert actions == {"payment_status_override", "payment_refund"}

    async def test_delete(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.delete(
            f"/api/v1/admin/bookings/{booking_id}", headers=auth_headers(users.admin)
        )

        assert response.status_code == 200
        response = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers(users.admin))
        assert response.status_code == 404

    async def test_lists_all_bookings(self, client, book, users):
        booking_id = (await book()).json()["data"]["id"]

        response = await client.get(
            "/api/v1/admin/bookings", params={"status": "pending"}, headers=auth_headers(users.admin)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [b["id"] for b in data["bookings"]] == [booking_id]
        assert (data["total"], data["page"], data["total_pages"]) == (1, 1, 1)

    async def test_lists_payments(self, client, book_and_initiate, users):
        admin = auth_headers(users.admin)
        response = await client.get("/api/v1/admin/payments", headers=admin)
        assert response.json()["data"]["total"] == 0

        booking_id, tran_id = await book_and_initiate()

        response = await client.get("/api/v1/admin/payments", params={"status": "pending"}, headers=admin)

        data = response.json()["data"]
        assert data["total"] == 1
        payment = data["payments"][0]
        assert (payment["booking_id"], payment["transaction_id"]) == (booking_id, tran_id)
        assert (payment["amount"], payment["payment_method"]) == (9000, "sandbox")

    async def test_lists_require_admin(self, client, users):
        for path in ("/api/v1/admin/bookings", "/api/v1/admin/payments"):
            response = await client.get(path, headers=auth_headers(users.owner))
            assert response.status_code == 403
