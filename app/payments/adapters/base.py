"""
Provider client contract shared by every payment rail.

A provider client starts a payment, checks on it, and (where the rail
allows it) refunds it. Clients never touch the database: they receive a
PaymentHandle describing the transaction and return plain result objects.
Status values are TransactionStatus members.

Usage:
    client = registry.client_for(PaymentMethod.PAYPAL)
    started = client.start_payment(StartPaymentRequest(...))
    check = client.verify_payment(handle)
    if check.status == TransactionStatus.COMPLETED:
        coordinator.finalize_payment(handle.transaction_id, check.status, check.external_ref)
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.conf import settings

from payments.exceptions import RefundUnsupportedError
from payments.state_machines import TransactionStatus


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class StartPaymentRequest:
    """
    What a provider needs to start collecting a payment.

    Attributes:
        transaction_id: Our transaction id (idempotency and metadata)
        order_id: Order being paid
        amount/currency: Amount to collect
        return_url/cancel_url: Where hosted checkout sends the buyer back
    """

    transaction_id: int
    order_id: int
    amount: Decimal
    currency: str
    return_url: str | None = None
    cancel_url: str | None = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("amount must be positive")


@dataclass
class PaymentStart:
    """
    Result of starting a payment.

    Attributes:
        provider_ref: Provider's id for the payment (empty for on-chain)
        status: Initial TransactionStatus
        payment_url: Hosted page to redirect the buyer to
        qr_code: data: URI of a QR code the buyer scans
        deposit_address: Wallet the buyer must send to
        raw_response: Provider payload for gateway_response
    """

    provider_ref: str = ""
    status: str = TransactionStatus.PENDING
    payment_url: str = ""
    qr_code: str = ""
    deposit_address: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentHandle:
    """
    Everything a provider needs to look a payment up again.

    Attributes:
        transaction_id: Our transaction id
        provider_ref: Provider's payment id
        amount/currency: Expected amount
        deposit_address: Wallet assigned to an on-chain payment
        created_at: When the attempt started
        claimed_refs: External refs already matched to other transactions
    """

    transaction_id: int
    provider_ref: str
    amount: Decimal
    currency: str
    deposit_address: str = ""
    created_at: datetime | None = None
    claimed_refs: frozenset[str] = frozenset()


@dataclass
class PaymentCheck:
    """
    Result of asking the provider where a payment stands.

    Attributes:
        status: TransactionStatus the provider reports
        external_ref: Capture id / payment intent id / txid once final
        confirmed_amount: Amount the provider says arrived, when known
        failure_reason: Provider explanation when status is failed
        raw_response: Provider payload for gateway_response
    """

    status: str
    external_ref: str = ""
    confirmed_amount: Decimal | None = None
    failure_reason: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """Result of a refund request."""

    refund_ref: str
    status: str
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Provider Client Interface
# =============================================================================


class ProviderClient(ABC):
    """
    Capability interface implemented by every payment rail.

    Implementations translate their SDK or HTTP errors into
    payments.exceptions.ExternalProviderError subclasses.
    """

    provider: str = ""

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this client."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @abstractmethod
    def start_payment(self, request: StartPaymentRequest) -> PaymentStart:
        """Create the payment on the provider side."""

    @abstractmethod
    def verify_payment(self, handle: PaymentHandle) -> PaymentCheck:
        """Report the provider's current view of a payment."""

    def refund(self, handle: PaymentHandle, external_ref: str, amount: Decimal) -> RefundResult:
        """Refund a completed payment. Rails without refunds keep this default."""
        raise RefundUnsupportedError(
            f"{self.provider or self.__class__.__name__} payments cannot be refunded",
            details={"provider": self.provider},
        )

    def release_payment(self, handle: PaymentHandle) -> None:
        """
        Stop the provider from accepting money for an abandoned attempt.

        Rails whose payments cannot complete without this service (PayPal
        orders need our capture, deposit addresses are matched by amount)
        keep this no-op.
        """

    def amount_limits(self) -> tuple[Decimal, Decimal] | None:
        """(min, max) accepted by this rail, or None when unlimited."""
        return None


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for provider API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The hash component ties the key to this deployment's SECRET_KEY while
    the structured format aids debugging and correlation.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="capture",
            entity_id=transaction.id,
        )
        # Result: "capture:7061993827409920001:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: int | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate a unique idempotency key.

        Args:
            operation: The provider operation (create_order, capture, refund, etc.)
            entity_id: The domain entity ID (transaction id)
            attempt: Attempt number for retries (default: 1)

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"

