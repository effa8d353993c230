"""HTTP middleware: request timing and response hardening."""

import logging
import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from messbook.config import settings

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0
WEBHOOK_PATH = f"{settings.api_prefix}/webhooks/"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log how long it took.

    Gateway callbacks are always logged at INFO so they can be matched up
    with the gateway's own delivery log during reconciliation.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())
        request.state.request_id = request_id

        response = await call_next(request)
        elapsed = time.perf_counter() - started

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"

        path = request.url.path
        if elapsed > SLOW_REQUEST_SECONDS:
            level = logging.WARNING
        elif path.startswith(WEBHOOK_PATH):
            level = logging.INFO
        else:
            level = logging.DEBUG
        logger.log(
            level,
            "[%s] %s %s -> %d in %.3fs",
            request_id, request.method, path, response.status_code, elapsed,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
