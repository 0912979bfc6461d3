"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PaymentTransaction States:
    pending → processing → completed
    pending/processing → failed
    pending/processing → cancelled (superseded, or order cancelled)
    cancelled → completed (provider captured an abandoned attempt)
    completed → refunded

Settlement States (PaymentTransaction.settlement_status):
    unsettled → settled
    unsettled → awaiting_payee_config → settled (after payee configures)
    unsettled → blocked (commission misconfiguration or a payment for an
                         order that is no longer payable; operator action)

WebhookEvent States:
    pending → processing → processed
    pending → processing → failed → processing (retry)
    pending → rejected (bad signature)
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    States for the PaymentTransaction model lifecycle.

    Terminal states: COMPLETED, FAILED, CANCELLED, REFUNDED
    At most one non-terminal transaction exists per order.

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING → COMPLETED (provider reports final capture directly)
        PENDING/PROCESSING → FAILED
        PENDING/PROCESSING → CANCELLED
        CANCELLED → COMPLETED (capture arrived after the attempt was abandoned)

    Refund Flow:
        COMPLETED → REFUNDED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


OPEN_TRANSACTION_STATUSES = (
    TransactionStatus.PENDING,
    TransactionStatus.PROCESSING,
)


class SettlementStatus(models.TextChoices):
    """
    Where a completed transaction stands in settlement.

    AWAITING_PAYEE_CONFIG and BLOCKED are retried by the
    retry_pending_settlements task; the order stays paid meanwhile.
    """

    UNSETTLED = "unsettled", "Unsettled"
    SETTLED = "settled", "Settled"
    AWAITING_PAYEE_CONFIG = "awaiting_payee_config", "Awaiting Payee Config"
    BLOCKED = "blocked", "Blocked"


RETRYABLE_SETTLEMENT_STATUSES = (
    SettlementStatus.UNSETTLED,
    SettlementStatus.AWAITING_PAYEE_CONFIG,
    SettlementStatus.BLOCKED,
)


class Provider(models.TextChoices):
    """Payment rails the service talks to."""

    PAYPAL = "paypal", "PayPal"
    STRIPE = "stripe", "Stripe"
    TRON = "tron", "Tron"
    ETHEREUM = "ethereum", "Ethereum"


class CommissionRuleType(models.TextChoices):
    """
    How a commission rule computes the platform's cut.

    PERCENTAGE: commission = gross * rate / 100
    FIXED: commission = rate, never more than gross
    """

    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed"


class CommissionStatus(models.TextChoices):
    """
    Status of a CommissionRecord.

    State Flow:
        PENDING → PAID (settlement intents recorded)
        PENDING/PAID → CANCELLED (order refunded)
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


class SettlementRecipient(models.TextChoices):
    """Who a settlement entry is owed to."""

    PLATFORM = "platform", "Platform Receipt"
    PAYEE = "payee", "Payee Transfer"
    COMMISSION = "commission", "Platform Commission"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
        PENDING → PROCESSING → IGNORED (unknown event type)
        PENDING → REJECTED (signature mismatch, never retried)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
    IGNORED = "ignored", "Ignored"
    REJECTED = "rejected", "Rejected"


__all__ = [
    "TransactionStatus",
    "OPEN_TRANSACTION_STATUSES",
    "SettlementStatus",
    "RETRYABLE_SETTLEMENT_STATUSES",
    "Provider",
    "CommissionRuleType",
    "CommissionStatus",
    "SettlementRecipient",
    "WebhookEventStatus",
]
