"""
Base exception classes for application-wide error handling.

Every domain error carries a human-readable message, a stable
machine-readable error code and optional details. Each class also declares
the HTTP status the API layer answers with, so views never translate
errors by hand (see core.exception_handlers).

Exception Hierarchy:
    BaseApplicationError (base)                     500
    ├── ValidationError - Input validation failures 400
    ├── UnauthorizedError - Authenticity failures   401
    ├── PermissionDeniedError - Ownership failures  403
    ├── NotFoundError - Missing records             404
    ├── ConflictError - State conflicts             409
    ├── RateLimitError - Rate limit exceeded        429
    └── ExternalServiceError - Upstream failures    502

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        f"Order {order_id} not found",
        error_code="ORDER_NOT_FOUND",
        details={"order_id": str(order_id)},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, current status, etc.)
        http_status: Status code used when the error reaches the API layer
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Order 7159 not found",
                "error_code": "ORDER_NOT_FOUND",
                "details": {"order_id": "7159"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails in the service layer.

    Serializer-level validation stays with DRF; use this for rules that need
    database or configuration state (amount limits, destination formats).
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class UnauthorizedError(BaseApplicationError):
    """
    Raised when a request cannot prove where it came from.

    Used for webhook signature mismatches. Caller authentication itself is
    handled by DRF authentication classes.
    """

    default_error_code: str = "UNAUTHORIZED"
    http_status: int = 401


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller is authenticated but does not own the record.

    Example:
        if order.buyer_id != user.id and not user.is_staff:
            raise PermissionDeniedError("Order belongs to another user")
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class NotFoundError(BaseApplicationError):
    """Raised when a requested record does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current state.

    Use for:
    - Duplicate entries (repeat purchase, duplicate payout destination)
    - Operations not valid for the current status
    - Concurrent modification conflicts
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class RateLimitError(BaseApplicationError):
    """
    Raised when rate limit is exceeded.

    Include retry_after in details when possible to help clients.
    """

    default_error_code: str = "RATE_LIMIT_EXCEEDED"
    http_status: int = 429


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose internal
    details to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
