"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from messbook.api.v1 import (
    admin,
    bookings,
    payments,
    viewing_requests,
    webhooks,
)

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Viewing requests
api_router.include_router(
    viewing_requests.router, prefix="/viewing-requests", tags=["Viewing Requests"]
)

# Admin
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
