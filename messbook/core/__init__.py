"""Core utilities and security modules."""

from messbook.core.exceptions import (
    AppException,
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    GatewayUnavailable,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from messbook.core.security import (
    create_access_token,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "ConflictError",
    "ForbiddenError",
    "GatewayUnavailable",
    "InvalidTransition",
    "NotFoundError",
    "ValidationError",
    "create_access_token",
    "verify_token",
]
