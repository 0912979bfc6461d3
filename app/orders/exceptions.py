"""
Order-specific exceptions.

Exception Hierarchy:
    NotFoundError
    └── OrderNotFoundError - Order lookup failures (404)
    PermissionDeniedError
    └── OrderAccessDeniedError - Caller is not the buyer (403)
    ConflictError
    ├── InvalidOrderStateError - Operation not valid for current status (409)
    └── DuplicatePurchaseError - Buyer already owns the resource (409)

Usage:
    from orders.exceptions import InvalidOrderStateError

    if order.status != OrderStatus.PENDING:
        raise InvalidOrderStateError(
            f"Cannot cancel order in '{order.status}' state",
            details={"order_id": str(order.id), "current_status": order.status},
        )
"""

from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError


class OrderNotFoundError(NotFoundError):
    """Raised when an order id does not exist."""

    default_error_code: str = "ORDER_NOT_FOUND"


class OrderAccessDeniedError(PermissionDeniedError):
    """Raised when a non-admin caller touches another buyer's order."""

    default_error_code: str = "ORDER_ACCESS_DENIED"


class InvalidOrderStateError(ConflictError):
    """
    Raised when an operation is not valid for the order's status.

    Wraps django-fsm's TransitionNotAllowed and lost ConcurrentTransition
    races at the service boundary.
    """

    default_error_code: str = "INVALID_ORDER_STATE"


class DuplicatePurchaseError(ConflictError):
    """Raised when the buyer already holds a paid or completed order for the resource."""

    default_error_code: str = "DUPLICATE_PURCHASE"


__all__ = [
    "OrderNotFoundError",
    "OrderAccessDeniedError",
    "InvalidOrderStateError",
    "DuplicatePurchaseError",
]
