"""Webhook endpoints for the payment gateway.

Gateway callbacks are always acknowledged with 200 so the gateway stops
retrying; anything that could not be applied is logged for reconciliation
instead of surfacing as an error.
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Request, status
from fastapi.responses import RedirectResponse

from messbook.config import settings
from messbook.core.exceptions import AppException
from messbook.database import get_db_context
from messbook.domain.payment_state import GatewayStatus
from messbook.gateways.base import ValidationResult
from messbook.services.gateway_service import gateway_service
from messbook.services.payment_service import SettlementOutcome, payment_service

logger = logging.getLogger(__name__)

router = APIRouter()

IPN_STATUSES = {
    "VALID": GatewayStatus.VALID,
    "VALIDATED": GatewayStatus.VALID,
    "FAILED": GatewayStatus.FAILED,
    "CANCELLED": GatewayStatus.CANCELLED,
}


async def _read_payload(request: Request) -> dict:
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


def _transaction_id(payload: dict) -> str | None:
    value = payload.get("tran_id")
    return value if isinstance(value, str) else None


def _ack(transaction_id: str | None, processed: bool, reason: str | None = None) -> dict:
    return {
        "received": True,
        "processed": processed,
        "transaction_id": transaction_id,
        "reason": reason,
    }


async def process_gateway_callback(payload: dict, claimed: GatewayStatus) -> dict:
    """Authenticate a callback, validate success claims, and apply it."""
    raw_id = payload.get("tran_id")
    logger.info("Gateway callback received: tran_id=%r status=%s", raw_id, claimed.value)
    if raw_id is not None and not isinstance(raw_id, str):
        logger.warning("Gateway callback with malformed tran_id %r", raw_id)
        return _ack(None, False, "malformed payload")
    transaction_id = raw_id
    if not transaction_id:
        logger.warning("Gateway callback without tran_id: %s", sorted(payload))
        return _ack(None, False, "missing tran_id")

    validation: ValidationResult | None = None
    gateway_status = claimed
    try:
        if not gateway_service.verify_webhook(payload):
            logger.warning("Gateway callback for %s failed signature verification", transaction_id)
            return _ack(transaction_id, False, "invalid signature")

        if claimed is GatewayStatus.VALID:
            validation = await gateway_service.validate_callback(payload)
            gateway_status = validation.status

        if gateway_status is GatewayStatus.UNKNOWN:
            logger.warning("Gateway could not confirm callback for %s", transaction_id)
            return _ack(transaction_id, False, "unconfirmed by gateway")

        async with get_db_context() as db:
            result = await payment_service.confirm_from_webhook(
                db,
                transaction_id,
                gateway_status,
                raw_payload=payload,
                validation=validation,
            )
    except AppException as e:
        logger.warning(
            "Gateway callback for %s not applied: %s (%s)", transaction_id, e.detail, e.code
        )
        return _ack(transaction_id, False, e.code)
    except Exception:
        logger.exception("Gateway callback for %s could not be processed", transaction_id)
        return _ack(transaction_id, False, "processing_error")

    return _ack(
        transaction_id,
        result.outcome is SettlementOutcome.APPLIED,
        result.reason,
    )


def _redirect(outcome: str, ack: dict) -> RedirectResponse:
    url = f"{settings.frontend_url}/payment/{outcome}"
    if ack.get("transaction_id"):
        url = f"{url}?{urlencode({'tran_id': ack['transaction_id']})}"
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/payment/ipn", status_code=status.HTTP_200_OK)
async def payment_ipn(request: Request) -> dict:
    """Server-to-server instant payment notification."""
    payload = await _read_payload(request)
    claimed = IPN_STATUSES.get(str(payload.get("status", "")).upper())
    if claimed is None:
        logger.warning("IPN for %r with unsupported status %r", payload.get("tran_id"), payload.get("status"))
        return _ack(_transaction_id(payload), False, "unsupported status")
    return await process_gateway_callback(payload, claimed)


@router.post("/payment/success")
async def payment_success(request: Request, redirect: bool = True):
    """Browser return after a successful checkout."""
    ack = await process_gateway_callback(await _read_payload(request), GatewayStatus.VALID)
    return _redirect("success", ack) if redirect else ack


@router.post("/payment/failure")
async def payment_failure(request: Request, redirect: bool = True):
    """Browser return after a failed checkout."""
    ack = await process_gateway_callback(await _read_payload(request), GatewayStatus.FAILED)
    return _redirect("failed", ack) if redirect else ack


@router.post("/payment/cancel")
async def payment_cancel(request: Request, redirect: bool = True):
    """Browser return after the renter abandoned checkout."""
    ack = await process_gateway_callback(await _read_payload(request), GatewayStatus.CANCELLED)
    return _redirect("cancelled", ack) if redirect else ack
