"""
Payment-specific exceptions for payment and settlement operations.

Each class maps one entry of the error taxonomy onto the core hierarchy, so
the DRF exception handler renders it with a stable error code and status.

Exception Hierarchy:
    NotFoundError
    └── PaymentNotFoundError - Transaction lookup failures           404
    PermissionDeniedError
    └── PaymentAccessDeniedError - Transaction owned by someone else 403
    ConflictError
    └── InvalidTransactionStateError - FSM transition not allowed    409
    ValidationError
    └── RefundUnsupportedError - Rail cannot refund                 400
    UnauthorizedError
    └── WebhookSignatureError - Webhook authenticity failure         401
    ConfigMissingError - No active provider configuration            503
    └── PayoutConfigMissingError - Payee has no payout destination
    InvalidCommissionConfigError - Commission rule misconfigured     500
    ExternalServiceError
    └── ExternalProviderError - Payment rail failures                502
        ├── ProviderRequestError - Rejected request (permanent)
        └── ProviderUnavailableError - Network/5xx (transient)      503

Usage:
    from payments.exceptions import ExternalProviderError, PaymentNotFoundError

    try:
        result = client.verify_payment(ref)
    except ExternalProviderError as e:
        if e.is_retryable:
            raise self.retry(exc=e)
        raise
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    UnauthorizedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentNotFoundError(NotFoundError):
    """
    Raised when a payment transaction cannot be found.

    Example:
        transaction = PaymentTransaction.objects.filter(payment_ref=ref).first()
        if transaction is None:
            raise PaymentNotFoundError(
                f"Payment {ref} not found",
                details={"payment_ref": ref},
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentAccessDeniedError(PermissionDeniedError):
    """Raised when the caller neither paid for the transaction nor is admin."""

    default_error_code: str = "PAYMENT_ACCESS_DENIED"


class InvalidTransactionStateError(ConflictError):
    """
    Raised when a transaction transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with our standard error format.

    Example:
        try:
            transaction.refund()
        except TransitionNotAllowed:
            raise InvalidTransactionStateError(
                f"Cannot refund payment in '{transaction.status}' state",
                details={"current_status": transaction.status},
            )
    """

    default_error_code: str = "INVALID_TRANSACTION_STATE"


class RefundUnsupportedError(ValidationError):
    """Raised when the payment rail has no refund operation (on-chain)."""

    default_error_code: str = "REFUND_UNSUPPORTED"


class WebhookSignatureError(UnauthorizedError):
    """
    Raised when a webhook's signature does not match its payload.

    The event is still stored, as REJECTED, so the attempt is auditable.
    """

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigMissingError(BaseApplicationError):
    """
    Raised when a payment method has no active provider configuration.

    Example:
        config = cache.get_chain_config(ChainNetwork.TRON)
        if config is None:
            raise ConfigMissingError(
                "USDT (Tron) is not configured",
                details={"payment_method": "usdt_tron"},
            )
    """

    default_error_code: str = "CONFIG_MISSING"
    http_status: int = 503


class PayoutConfigMissingError(ConfigMissingError):
    """
    Raised when a payee has no active payout destination for a method.

    The settlement coordinator never lets this escape: it records the
    transaction as awaiting payee config and reports SETTLEMENT_PENDING.
    """

    default_error_code: str = "PAYOUT_CONFIG_MISSING"


class InvalidCommissionConfigError(BaseApplicationError):
    """
    Raised when a commission rule would take more than the gross amount.

    This is an operator configuration bug, not a caller error.
    """

    default_error_code: str = "INVALID_COMMISSION_CONFIG"
    http_status: int = 500


# =============================================================================
# Provider Exceptions
# =============================================================================


class ExternalProviderError(ExternalServiceError):
    """
    Base exception for payment rail failures.

    Attributes:
        provider: Rail that failed (paypal, stripe, tron, ethereum)
        is_retryable: Whether the same call may succeed later

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent error, do not retry
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider


class ProviderRequestError(ExternalProviderError):
    """
    The provider rejected the request (4xx, invalid parameters, declined).

    This is a permanent error - retrying the same request will fail again.
    """

    default_error_code: str = "PROVIDER_REQUEST_REJECTED"
    is_retryable: bool = False


class ProviderUnavailableError(ExternalProviderError):
    """
    The provider could not be reached or answered with a server error.

    This is a transient error - retry with exponential backoff.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True
    http_status: int = 503


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentNotFoundError",
    "PaymentAccessDeniedError",
    "InvalidTransactionStateError",
    "RefundUnsupportedError",
    "WebhookSignatureError",
    # Configuration
    "ConfigMissingError",
    "PayoutConfigMissingError",
    "InvalidCommissionConfigError",
    # Providers
    "ExternalProviderError",
    "ProviderRequestError",
    "ProviderUnavailableError",
]
