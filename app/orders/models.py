"""
Order model and its lifecycle.

An order snapshots the resource price at creation and moves through a
django-fsm state machine. Every transition is persisted with an UPDATE
guarded by the status that was loaded (ConcurrentTransitionMixin), so two
callers racing on the same order cannot both win.

Usage:
    from orders.models import Order, OrderStatus

    order = Order.objects.get(id=order_id)
    order.mark_paid()
    order.save()  # raises ConcurrentTransition if the status moved meanwhile

State Flow:
    PENDING -> PAID -> COMPLETED
    PENDING -> CANCELLED (buyer cancel or expiry)
    PENDING -> FAILED
    PAID/COMPLETED -> REFUNDED
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.models import BaseModel
from core.model_mixins import SequenceIdPrimaryKeyMixin


class OrderStatus(models.TextChoices):
    """
    Order lifecycle states.

    Terminal states: COMPLETED, CANCELLED, REFUNDED, FAILED
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


TERMINAL_ORDER_STATUSES = frozenset(
    {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.FAILED,
    }
)

# Statuses that count as "already bought" for duplicate-purchase checks
PURCHASED_ORDER_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.COMPLETED})


class PaymentMethod(models.TextChoices):
    """Payment methods a buyer can choose at the pay step."""

    PAYPAL = "paypal", "PayPal"
    CARD = "card", "Card"
    USDT_TRON = "usdt_tron", "USDT (Tron)"
    USDT_ETH = "usdt_eth", "USDT (Ethereum)"


class CancelReason(models.TextChoices):
    """Why a pending order was cancelled."""

    BUYER = "buyer", "Cancelled by buyer"
    EXPIRED = "expired", "Expired"


class Order(ConcurrentTransitionMixin, SequenceIdPrimaryKeyMixin, BaseModel):
    """
    A buyer's purchase of one resource at a snapshotted price.

    Fields:
        buyer: User purchasing the resource
        resource: Resource being purchased
        amount: Price at creation time (immutable)
        currency: ISO 4217 code
        status: Current FSM state
        payment_method: Chosen method, empty until the pay step
        expires_at: Pending orders past this time are cancelled
        paid_at/completed_at/cancelled_at/refunded_at: Transition times
        cancel_reason: buyer or expired
    """

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="User purchasing the resource",
    )
    resource = models.ForeignKey(
        "catalog.Resource",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Resource being purchased",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Resource price when the order was created; never changes",
    )
    currency = models.CharField(
        max_length=3,
        default="USD",
        help_text="ISO 4217 currency code",
    )

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        help_text="Current state of the order (managed by FSM)",
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        blank=True,
        default="",
        help_text="Payment method chosen at the pay step",
    )

    expires_at = models.DateTimeField(
        db_index=True,
        help_text="Pending orders past this time are cancelled",
    )
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment for this order was confirmed",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When settlement finished",
    )
    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was cancelled",
    )
    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was refunded",
    )
    cancel_reason = models.CharField(
        max_length=20,
        choices=CancelReason.choices,
        blank=True,
        default="",
        help_text="Why the order was cancelled",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
            models.Index(fields=["buyer", "created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["status", "expires_at"], name="order_status_expires_idx"),
            models.Index(
                fields=["buyer", "resource", "status"],
                name="order_buyer_resource_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="order_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.status}, {self.amount} {self.currency})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_amount = instance.__dict__.get("amount")
        return instance

    def save(self, *args, **kwargs):
        """Save, refusing to change the amount of a stored order."""
        loaded_amount = getattr(self, "_loaded_amount", None)
        if loaded_amount is not None and self.amount != loaded_amount:
            raise ValueError(f"Order {self.id} amount is immutable")
        super().save(*args, **kwargs)
        self._loaded_amount = self.amount

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def is_expired(self) -> bool:
        """Pending and past its expiry time."""
        return self.status == OrderStatus.PENDING and self.expires_at <= timezone.now()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=OrderStatus.PENDING, target=OrderStatus.PAID)
    def mark_paid(self):
        """
        Payment confirmed by the provider.

        Transition: PENDING -> PAID
        """
        self.paid_at = timezone.now()

    @transition(field=status, source=OrderStatus.PAID, target=OrderStatus.COMPLETED)
    def complete(self):
        """
        Settlement recorded.

        Transition: PAID -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(field=status, source=OrderStatus.PENDING, target=OrderStatus.CANCELLED)
    def cancel(self, reason: str = CancelReason.BUYER):
        """
        Cancel before payment.

        Transition: PENDING -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        self.cancel_reason = reason

    @transition(field=status, source=OrderStatus.PENDING, target=OrderStatus.FAILED)
    def fail(self):
        """
        Provider reported the payment as failed.

        Transition: PENDING -> FAILED
        """

    @transition(
        field=status,
        source=[OrderStatus.PAID, OrderStatus.COMPLETED],
        target=OrderStatus.REFUNDED,
    )
    def refund(self):
        """
        Money returned to the buyer.

        Transition: PAID/COMPLETED -> REFUNDED
        """
        self.refunded_at = timezone.now()
