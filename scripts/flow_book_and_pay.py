#!/usr/bin/env python3
"""
Booking and payment flow script against a running server.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/seed_dev_data.py            # prints tokens and a listing id
    RENTER_TOKEN=... ADMIN_TOKEN=... python scripts/flow_book_and_pay.py \
        --listing-id <UUID> --check-in 2026-11-01 --amount 9000 [--refund]

Flow:
    1. Create booking (listing -> reserved_for_booking)
    2. Initiate payment (sandbox gateway)
    3. Confirm via the client fallback (listing -> booked)
    4. Check payment status
    5. Optionally refund and cancel as admin (listing -> free)
"""

import argparse
import json
import os
import sys

import httpx

BASE_URL = os.environ.get("MESSBOOK_URL", "http://localhost:8000")


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None) -> bool:
    """Print result, optionally filtering fields of the envelope's data."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    data = result["data"].get("data") or {}
    print(f"Status: {result['status']} - {result['data'].get('message')}")
    if fields:
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Booking and payment flow")
    parser.add_argument("--listing-id", required=True, help="Listing UUID")
    parser.add_argument("--check-in", required=True, help="Check-in date (YYYY-MM-DD)")
    parser.add_argument("--amount", type=int, required=True, help="Payable amount")
    parser.add_argument("--refund", action="store_true", help="Refund and cancel as admin at the end")
    args = parser.parse_args()

    renter_token = os.environ.get("RENTER_TOKEN")
    admin_token = os.environ.get("ADMIN_TOKEN")
    if not renter_token or (args.refund and not admin_token):
        print("ERROR: set RENTER_TOKEN (and ADMIN_TOKEN with --refund)")
        sys.exit(1)

    # Step 1: Create booking
    print_step(1, "Create booking")
    booking_result = api_request(renter_token, "POST", "/api/v1/bookings", {
        "listing_id": args.listing_id,
        "check_in_date": args.check_in,
        "payable_amount": args.amount,
        "tenant_name": "Dev Renter",
        "tenant_phone": "01700000000",
        "tenant_email": "renter@messbook.dev",
    })
    if not print_result(booking_result, ["id", "total_amount", "payable_amount", "booking_status", "payment_status"]):
        sys.exit(1)
    booking_id = booking_result["data"]["data"]["id"]

    # Step 2: Initiate payment
    print_step(2, "Initiate payment")
    payment_result = api_request(renter_token, "POST", "/api/v1/payments/initiate", {
        "booking_id": booking_id,
    })
    if not print_result(payment_result):
        sys.exit(1)
    transaction_id = payment_result["data"]["data"]["transaction_id"]

    # Step 3: Fallback confirmation
    print_step(3, "Confirm via client fallback")
    confirm_result = api_request(renter_token, "POST", "/api/v1/payments/fallback-confirm", {
        "transaction_id": transaction_id,
    })
    if not print_result(confirm_result):
        sys.exit(1)

    # Step 4: Status
    print_step(4, "Payment status")
    if not print_result(api_request(renter_token, "GET", f"/api/v1/payments/{transaction_id}")):
        sys.exit(1)

    if args.refund:
        # Step 5: Refund and cancel
        print_step(5, "Refund and cancel (admin)")
        refund_result = api_request(admin_token, "POST", f"/api/v1/admin/bookings/{booking_id}/refund", {
            "reason": "Flow script refund",
            "cancel_booking": True,
        })
        if not print_result(refund_result, ["id", "booking_status", "payment_status", "refund_amount"]):
            sys.exit(1)

    print("\n" + "="*60)
    print("FLOW COMPLETE")
    print("="*60)
    print(f"Booking:     {booking_id}")
    print(f"Transaction: {transaction_id}")


if __name__ == "__main__":
    main()
