"""SSLCommerz payment gateway adapter.

Hosted checkout for the Bangladesh market.
Documentation: https://developer.sslcommerz.com/doc/v4/
"""

import hashlib
import hmac
import logging

import httpx

from messbook.config import settings
from messbook.core.exceptions import GatewayUnavailable
from messbook.domain.payment_state import GatewayStatus
from messbook.gateways.base import (
    GatewayType,
    PaymentGateway,
    RefundResult,
    SessionRequest,
    SessionResult,
    ValidationResult,
    parse_amount,
)

logger = logging.getLogger(__name__)

VALID_STATUSES = {"VALID", "VALIDATED"}
FAILED_STATUSES = {"FAILED", "INVALID_TRANSACTION", "EXPIRED"}


def _md5(value: str) -> str:
    return hashlib.md5(value.encode()).hexdigest()


def _map_status(status: str | None) -> GatewayStatus:
    status = str(status or "").upper()
    if status in VALID_STATUSES:
        return GatewayStatus.VALID
    if status in FAILED_STATUSES:
        return GatewayStatus.FAILED
    if status in ("CANCELLED", "UNATTEMPTED"):
        return GatewayStatus.CANCELLED
    return GatewayStatus.UNKNOWN


class SSLCommerzGateway(PaymentGateway):
    """SSLCommerz payment gateway implementation."""

    def __init__(
        self,
        store_id: str | None = None,
        store_password: str | None = None,
        is_live: bool | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store_id = store_id or settings.sslcommerz_store_id
        self.store_password = store_password or settings.sslcommerz_store_password
        self.is_live = settings.sslcommerz_is_live if is_live is None else is_live
        self.timeout = timeout or settings.gateway_timeout_seconds
        self._transport = transport

        # Environment safety: force sandbox in non-production
        if settings.environment != "production":
            self.is_live = False

        self.base_url = (
            "https://securepay.sslcommerz.com"
            if self.is_live
            else "https://sandbox.sslcommerz.com"
        )

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.SSLCOMMERZ

    def _credentials(self) -> dict:
        if not self.store_id or not self.store_password:
            raise GatewayUnavailable(self.gateway_type.value, "SSLCommerz credentials not configured")
        return {"store_id": self.store_id, "store_passwd": self.store_password}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error("SSLCommerz request to %s timed out", path)
            raise GatewayUnavailable(self.gateway_type.value, "request timed out") from e
        except httpx.HTTPError as e:
            logger.error("SSLCommerz request to %s failed: %s", path, e)
            raise GatewayUnavailable(self.gateway_type.value, str(e)) from e

        try:
            return response.json()
        except ValueError as e:
            raise GatewayUnavailable(self.gateway_type.value, "malformed response") from e

    async def create_session(self, request: SessionRequest) -> SessionResult:
        """Create SSLCommerz checkout session."""
        customer = request.customer
        data = {
            **self._credentials(),
            "total_amount": request.amount,
            "currency": request.currency,
            "tran_id": request.transaction_id,
            "success_url": request.success_url,
            "fail_url": request.fail_url,
            "cancel_url": request.cancel_url,
            "ipn_url": request.ipn_url,
            "shipping_method": "NO",
            "product_name": request.product_name[:255],
            "product_category": "Mess Service",
            "product_profile": "service",
            "cus_name": customer.get("name", ""),
            "cus_email": customer.get("email", ""),
            "cus_add1": customer.get("address", ""),
            "cus_city": customer.get("city", "Dhaka"),
            "cus_postcode": customer.get("postcode", "1000"),
            "cus_country": customer.get("country", "Bangladesh"),
            "cus_phone": customer.get("phone", ""),
            "value_a": str(request.metadata.get("booking_id", "")),
            "value_b": "mess_booking",
            "value_c": str(request.metadata.get("renter_id", "")),
            "value_d": str(request.metadata.get("listing_id", "")),
        }

        response = await self._request("POST", "/gwprocess/v4/api.php", data=data)

        redirect_url = response.get("GatewayPageURL")
        if response.get("status") != "SUCCESS" or not redirect_url:
            return SessionResult(
                success=False,
                error_message=response.get("failedreason") or "No payment URL received from SSLCommerz",
                raw_response=response,
            )

        return SessionResult(
            success=True,
            redirect_url=redirect_url,
            session_key=response.get("sessionkey"),
            raw_response=response,
        )

    async def validate_callback(self, payload: dict) -> ValidationResult:
        """Validate a callback through the order validation API."""
        val_id = payload.get("val_id")
        if not val_id:
            # A success claim without val_id cannot be checked server-side
            status = _map_status(payload.get("status"))
            return ValidationResult(
                status=GatewayStatus.UNKNOWN if status is GatewayStatus.VALID else status,
                transaction_id=payload.get("tran_id"),
                raw_response=payload,
            )

        response = await self._request(
            "GET",
            "/validator/api/validationserverAPI.php",
            params={**self._credentials(), "val_id": val_id, "format": "json"},
        )

        return ValidationResult(
            status=_map_status(response.get("status")),
            transaction_id=response.get("tran_id"),
            amount=parse_amount(response.get("currency_amount") or response.get("amount")),
            currency=response.get("currency_type") or response.get("currency"),
            validation_id=response.get("val_id", val_id),
            bank_tran_id=response.get("bank_tran_id"),
            raw_response=response,
        )

    async def query_transaction(self, transaction_id: str) -> ValidationResult:
        """Query transaction status by merchant transaction id."""
        response = await self._request(
            "GET",
            "/validator/api/merchantTransIDvalidationAPI.php",
            params={**self._credentials(), "tran_id": transaction_id, "format": "json"},
        )

        elements = response.get("element") or []
        for element in elements:
            if _map_status(element.get("status")) is GatewayStatus.VALID:
                return ValidationResult(
                    status=GatewayStatus.VALID,
                    transaction_id=transaction_id,
                    amount=parse_amount(element.get("currency_amount") or element.get("amount")),
                    currency=element.get("currency_type") or element.get("currency"),
                    validation_id=element.get("val_id"),
                    bank_tran_id=element.get("bank_tran_id"),
                    raw_response=response,
                )

        status = _map_status(elements[0].get("status")) if elements else GatewayStatus.UNKNOWN
        return ValidationResult(status=status, transaction_id=transaction_id, raw_response=response)

    async def process_refund(
        self,
        bank_tran_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Initiate a refund through the merchant refund API."""
        response = await self._request(
            "GET",
            "/validator/api/merchantTransIDvalidationAPI.php",
            params={
                **self._credentials(),
                "bank_tran_id": bank_tran_id,
                "refund_amount": f"{amount:.2f}",
                "refund_remarks": reason[:255],
                "format": "json",
            },
        )

        if response.get("APIConnect") == "DONE" and response.get("status") in ("success", "processing"):
            return RefundResult(
                success=True,
                refund_id=response.get("refund_ref_id"),
                raw_response=response,
            )

        return RefundResult(
            success=False,
            error_message=response.get("errorReason") or f"Refund {response.get('status', 'rejected')}",
            raw_response=response,
        )

    def verify_webhook(self, payload: dict) -> bool:
        """Verify ``verify_sign`` over the fields listed in ``verify_key``."""
        verify_sign = payload.get("verify_sign")
        verify_key = payload.get("verify_key")
        if not (isinstance(verify_sign, str) and isinstance(verify_key, str)):
            return False
        if not verify_sign or not verify_key or not self.store_password:
            return False

        data = {key: str(payload.get(key, "")) for key in verify_key.split(",") if key}
        data["store_passwd"] = _md5(self.store_password)
        message = "&".join(f"{key}={data[key]}" for key in sorted(data))

        return hmac.compare_digest(_md5(message).encode(), verify_sign.encode())
