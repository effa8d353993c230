"""API dependencies for authentication and common operations."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from messbook.core.exceptions import AuthenticationError, ForbiddenError
from messbook.core.security import verify_token
from messbook.database import get_db
from messbook.models.user import User

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token.

    Suspended accounts are returned as-is; services decide what a suspended
    user may still do.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")
    try:
        user_uuid = UUID(str(user_id))
    except ValueError:
        raise AuthenticationError("Invalid token payload")

    user = await db.get(User, user_uuid)
    if not user:
        raise AuthenticationError("User not found")
    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are active."""
    if not current_user.is_active:
        raise ForbiddenError("User account is suspended")
    return current_user


async def get_current_owner(
    current_user: Annotated[User, Depends(get_current_active_user)],
) -> User:
    """Get current user and verify they own listings."""
    if current_user.role not in ("owner", "admin"):
        raise ForbiddenError("Owner access required")
    return current_user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_active_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user

