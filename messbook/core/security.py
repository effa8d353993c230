"""Bearer token handling.

Tokens are issued by the account service; this engine only verifies them.
``create_access_token`` exists for service-to-service calls, scripts and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from messbook.config import settings
from messbook.core.exceptions import AuthenticationError


def create_access_token(claims: dict[str, Any], expires_in: timedelta | None = None) -> str:
    issued_at = datetime.now(UTC)
    lifetime = expires_in or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {**claims, "iat": issued_at, "exp": issued_at + lifetime, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, token_type: str = "access") -> dict[str, Any]:
    """Decode a token and check its type and subject.

    Raises:
        AuthenticationError: Bad signature, expired, wrong type or no subject
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}")

    if claims.get("type") != token_type:
        raise AuthenticationError("Invalid token type")
    if not claims.get("sub"):
        raise AuthenticationError("Token has no subject")
    return claims
