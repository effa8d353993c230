"""Payment endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.api.deps import get_current_user, get_db
from messbook.models.user import User
from messbook.schemas.common import ok
from messbook.schemas.payment import (
    FallbackConfirm,
    PaymentInitiate,
    PaymentSessionResponse,
    SettlementResponse,
)
from messbook.services.payment_service import SettlementOutcome, payment_service

router = APIRouter()


@router.post("/initiate", status_code=status.HTTP_201_CREATED)
async def initiate_payment(
    request: PaymentInitiate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Open a gateway checkout session for a pending booking."""
    payment_session = await payment_service.initiate(
        db,
        request.booking_id,
        requester=current_user,
        customer_info=(
            request.customer_info.model_dump(exclude_none=True) if request.customer_info else None
        ),
    )
    data = PaymentSessionResponse.model_validate(payment_session).model_dump(mode="json")
    return ok("Payment initiated successfully", data)


@router.post("/fallback-confirm")
async def fallback_confirm(
    request: FallbackConfirm,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Confirm a payment from the client's success page when no webhook arrived."""
    result = await payment_service.confirm_from_fallback(
        db, request.transaction_id, requester=current_user
    )
    data = SettlementResponse(
        outcome=result.outcome.value,
        transaction_id=result.transaction_id,
        booking_id=result.booking.id,
        booking_status=result.booking.booking_status,
        payment_status=result.booking.payment_status,
    ).model_dump(mode="json")

    if result.outcome is SettlementOutcome.ALREADY_SETTLED:
        return ok("Payment already confirmed", data)
    if result.outcome is SettlementOutcome.IGNORED:
        return ok("Payment recorded for manual reconciliation", data)
    return ok("Payment confirmed successfully", data)


@router.get("/{transaction_id}")
async def get_payment_status(
    transaction_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Current payment, booking and listing state for a transaction."""
    data = await payment_service.get_status(db, transaction_id, requester=current_user)
    return ok("Payment status fetched successfully", data)
