"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code = "internal_error"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        """Render the error envelope."""
        return {"success": False, "error": self.code, "detail": self.detail}


class ValidationError(AppException):
    """Malformed input."""

    code = "validation_error"

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(AppException):
    """Resource not found exception."""

    code = "not_found"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    code = "unauthenticated"

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(AppException):
    """Caller lacks rights over the entity."""

    code = "forbidden"

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(AppException):
    """A precondition on current state failed.

    ``current_state`` is returned to the caller so the client can show what the
    entity looks like now.
    """

    code = "conflict"

    def __init__(self, detail: str = "The resource changed state", current_state: dict[str, Any] | None = None) -> None:
        self.current_state = current_state or {}
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["current_state"] = self.current_state
        return body


class InvalidTransition(AppException):
    """Requested status change is not in the legal transition table."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str, entity: str = "booking") -> None:
        self.current = current
        self.target = target
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {entity} transition: {current} → {target}",
        )


class GatewayUnavailable(AppException):
    """External payment provider unreachable or timed out."""

    code = "gateway_unavailable"

    def __init__(self, gateway: str, detail: str | None = None) -> None:
        message = f"Payment gateway '{gateway}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)
