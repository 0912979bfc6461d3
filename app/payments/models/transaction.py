"""
PaymentTransaction model: one attempt to pay an order via one provider.

An order may collect several transactions over time (the buyer retries or
switches method), but a partial unique constraint keeps at most one of them
open (pending or processing) at any moment.

Status changes are django-fsm transitions saved through
ConcurrentTransitionMixin, so the UPDATE only matches while the row still
has the status this instance loaded. The settlement coordinator relies on
that compare-and-set to decide which caller settles a payment.

Usage:
    from payments.models import PaymentTransaction
    from payments.state_machines import TransactionStatus

    transaction = PaymentTransaction.objects.get(id=ref)
    transaction.complete(external_ref="CAPTURE-123")
    transaction.save()  # raises ConcurrentTransition if someone got there first
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.models import BaseModel
from core.model_mixins import SequenceIdPrimaryKeyMixin
from orders.models import PaymentMethod

from payments.state_machines import (
    OPEN_TRANSACTION_STATUSES,
    Provider,
    SettlementStatus,
    TransactionStatus,
)

# Fields that may not change once a transaction is completed
IMMUTABLE_WHEN_COMPLETED = ("amount", "currency", "external_ref", "order_id", "provider")


class PaymentTransaction(ConcurrentTransitionMixin, SequenceIdPrimaryKeyMixin, BaseModel):
    """
    A single payment attempt against an order.

    Fields:
        order: Order being paid
        buyer: User paying (copied from the order)
        payment_method: paypal, card, usdt_tron, usdt_eth
        provider: Rail handling the attempt
        provider_ref: Reference the provider returned when the payment
            started (PayPal order id, Stripe session id)
        external_ref: Provider reference of the final money movement
            (capture id, payment intent id, on-chain txid)
        deposit_address: Receiving address for on-chain payments
        amount/currency: Copied from the order
        status: Current FSM state
        settlement_status: Progress of commission split and payout records
        payment_url/qr_code: What the buyer was sent to pay
        gateway_response: Last raw provider payload
        *_at timestamps: Transition times

    Note:
        Completed transactions are immutable apart from settlement and
        refund bookkeeping; save() refuses to change the money fields.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Order being paid",
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_transactions",
        help_text="User paying for the order",
    )

    # ==========================================================================
    # Provider
    # ==========================================================================

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        help_text="Method the buyer chose",
    )
    provider = models.CharField(
        max_length=20,
        choices=Provider.choices,
        help_text="Payment rail handling this attempt",
    )
    provider_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider reference returned when the payment started",
    )
    external_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider reference of the captured payment or on-chain txid",
    )
    deposit_address = models.CharField(
        max_length=128,
        blank=True,
        default="",
        db_index=True,
        help_text="Receiving wallet address for on-chain payments",
    )

    # ==========================================================================
    # Amount & State
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount to collect (the order amount)",
    )
    currency = models.CharField(
        max_length=3,
        default="USD",
        help_text="ISO 4217 currency code",
    )
    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        help_text="Current state of the transaction (managed by FSM)",
    )
    settlement_status = models.CharField(
        max_length=30,
        choices=SettlementStatus.choices,
        default=SettlementStatus.UNSETTLED,
        db_index=True,
        help_text="Settlement progress once the payment completed",
    )
    settlement_error = models.TextField(
        blank=True,
        default="",
        help_text="Why settlement is waiting, if it is",
    )

    # ==========================================================================
    # Buyer-facing payment details
    # ==========================================================================

    payment_url = models.URLField(
        max_length=2048,
        blank=True,
        default="",
        help_text="Hosted checkout page the buyer is redirected to",
    )
    qr_code = models.TextField(
        blank=True,
        default="",
        help_text="data: URI of the on-chain payment QR code",
    )
    gateway_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Last raw payload received from the provider",
    )
    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Provider reason when the payment failed",
    )
    refund_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Provider refund reference",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider confirmed the payment",
    )
    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment failed",
    )
    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the attempt was abandoned",
    )
    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was refunded",
    )
    settled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When settlement records were written",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Transaction"
        verbose_name_plural = "Payment Transactions"
        indexes = [
            models.Index(fields=["order", "status"], name="payment_tx_order_status_idx"),
            models.Index(fields=["status", "created_at"], name="payment_tx_status_created_idx"),
            models.Index(
                fields=["status", "settlement_status"],
                name="payment_tx_settlement_idx",
            ),
            models.Index(
                fields=["provider", "deposit_address", "status"],
                name="payment_tx_deposit_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status__in=["pending", "processing"]),
                name="payment_tx_one_open_per_order",
            ),
            models.UniqueConstraint(
                fields=["provider", "external_ref"],
                condition=~models.Q(external_ref=""),
                name="payment_tx_unique_external_ref",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="payment_tx_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentTransaction({self.id}, {self.provider}, {self.status})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_values = {
            name: instance.__dict__.get(name) for name in IMMUTABLE_WHEN_COMPLETED
        }
        instance._loaded_status = instance.__dict__.get("status")
        return instance

    def save(self, *args, **kwargs):
        """Save, refusing to rewrite the money fields of a completed payment."""
        if getattr(self, "_loaded_status", None) == TransactionStatus.COMPLETED:
            changed = [
                name
                for name, value in self._loaded_values.items()
                if getattr(self, name) != value
            ]
            if changed:
                raise ValueError(
                    f"PaymentTransaction {self.id} is completed; "
                    f"cannot change {', '.join(changed)}"
                )
        super().save(*args, **kwargs)
        self._loaded_values = {name: getattr(self, name) for name in IMMUTABLE_WHEN_COMPLETED}
        self._loaded_status = self.status

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_open(self) -> bool:
        """Pending or processing."""
        return self.status in OPEN_TRANSACTION_STATUSES

    @property
    def is_on_chain(self) -> bool:
        return self.provider in (Provider.TRON, Provider.ETHEREUM)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.PROCESSING,
    )
    def start_processing(self):
        """
        Provider accepted the payment and is working on it.

        Transition: PENDING -> PROCESSING
        """

    @transition(
        field=status,
        source=[*OPEN_TRANSACTION_STATUSES, TransactionStatus.CANCELLED],
        target=TransactionStatus.COMPLETED,
    )
    def complete(self, external_ref: str = ""):
        """
        Provider confirmed the money arrived.

        Transition: PENDING/PROCESSING -> COMPLETED
        CANCELLED -> COMPLETED when the provider captured an abandoned attempt
        """
        if external_ref:
            self.external_ref = external_ref
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=list(OPEN_TRANSACTION_STATUSES),
        target=TransactionStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        """
        Provider declined the payment.

        Transition: PENDING/PROCESSING -> FAILED
        """
        self.failure_reason = reason
        self.failed_at = timezone.now()

    @transition(
        field=status,
        source=list(OPEN_TRANSACTION_STATUSES),
        target=TransactionStatus.CANCELLED,
    )
    def cancel(self):
        """
        Attempt abandoned (superseded by a newer attempt or order cancelled).

        Transition: PENDING/PROCESSING -> CANCELLED
        """
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=TransactionStatus.COMPLETED,
        target=TransactionStatus.REFUNDED,
    )
    def refund(self, refund_ref: str = ""):
        """
        Money returned to the buyer.

        Transition: COMPLETED -> REFUNDED
        """
        self.refund_ref = refund_ref
        self.refunded_at = timezone.now()
