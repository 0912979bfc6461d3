"""
Order lifecycle service.

Creates, cancels, expires and reads orders. Settlement code in the payments
app advances paid orders through OrderService.transition(), which applies
the django-fsm transition and saves it with a status-guarded UPDATE.

Usage:
    from orders.services import OrderService

    service = OrderService()
    order = service.create_order(buyer=user, resource_id=resource_id)
    service.cancel_order(order.id, user)

    # Periodic (celery beat)
    expired_count = service.expire_stale_orders()
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from django_fsm import ConcurrentTransition, TransitionNotAllowed

from catalog.services import ResourceLookup
from core.exceptions import ValidationError
from core.sequence import get_sequence_generator
from core.services import BaseService

from orders.exceptions import (
    DuplicatePurchaseError,
    InvalidOrderStateError,
    OrderAccessDeniedError,
    OrderNotFoundError,
)
from orders.models import (
    PURCHASED_ORDER_STATUSES,
    CancelReason,
    Order,
    OrderStatus,
)
from orders.signals import orders_cancelled

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from django.contrib.auth.models import AbstractBaseUser
    from django.db.models import QuerySet

    from core.sequence import SequenceIdGenerator


EXPIRY_BATCH_SIZE = 500


class OrderService(BaseService):
    """
    Order Manager.

    Collaborators are injected so tests can pin ids and time:
        id_generator: source of order ids (core.sequence)
        resources: resource lookup (catalog.services.ResourceLookup)
        clock: returns the current aware datetime
    """

    def __init__(
        self,
        id_generator: SequenceIdGenerator | None = None,
        resources: type[ResourceLookup] = ResourceLookup,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.id_generator = id_generator or get_sequence_generator()
        self.resources = resources
        self.clock = clock

    # =========================================================================
    # Commands
    # =========================================================================

    def create_order(
        self,
        buyer: AbstractBaseUser,
        resource_id: int,
        payment_method: str = "",
    ) -> Order:
        """
        Create a pending order at the resource's current price.

        Raises:
            NotFoundError: Resource does not exist
            ValidationError: Resource is not for sale
            DuplicatePurchaseError: Buyer already paid for this resource
        """
        logger = self.get_logger()
        snapshot = self.resources.get(resource_id)

        if not snapshot.is_active:
            raise ValidationError(
                f"Resource {resource_id} is not available for purchase",
                error_code="RESOURCE_UNAVAILABLE",
                details={"resource_id": str(resource_id)},
            )

        already_bought = Order.objects.filter(
            buyer=buyer,
            resource_id=snapshot.id,
            status__in=PURCHASED_ORDER_STATUSES,
        ).exists()
        if already_bought:
            raise DuplicatePurchaseError(
                "You have already purchased this resource",
                details={"resource_id": str(snapshot.id)},
            )

        now = self.clock()
        order = Order.objects.create(
            id=self.id_generator.next_id(),
            buyer=buyer,
            resource_id=snapshot.id,
            amount=snapshot.price,
            currency=settings.PAYMENT_CURRENCY,
            payment_method=payment_method or "",
            expires_at=now + timedelta(minutes=settings.ORDER_EXPIRY_MINUTES),
        )

        logger.info(
            "Order created",
            extra={
                "order_id": order.id,
                "buyer_id": buyer.pk,
                "resource_id": snapshot.id,
                "amount": str(order.amount),
            },
        )
        return order

    def cancel_order(self, order_id: int, user: AbstractBaseUser) -> Order:
        """
        Cancel a pending order on behalf of its buyer.

        Raises:
            OrderNotFoundError: Order does not exist
            OrderAccessDeniedError: Caller is not the buyer
            InvalidOrderStateError: Order is not pending
        """
        order = self._load(order_id)
        if order.buyer_id != user.pk:
            raise OrderAccessDeniedError(
                "Only the buyer can cancel this order",
                details={"order_id": str(order_id)},
            )

        self.transition(order, "cancel", CancelReason.BUYER)
        orders_cancelled.send(
            sender=Order,
            order_ids=[order.id],
            reason=CancelReason.BUYER,
        )

        self.get_logger().info(
            "Order cancelled by buyer",
            extra={"order_id": order.id, "buyer_id": user.pk},
        )
        return order

    def expire_stale_orders(self) -> int:
        """
        Cancel every pending order whose expiry time has passed.

        Each batch is one UPDATE conditioned on status=pending, so running
        this concurrently or repeatedly never touches an order twice and
        never touches an order that was paid in the meantime.

        Returns:
            Number of orders this call cancelled
        """
        logger = self.get_logger()
        now = self.clock()
        total = 0

        while True:
            stale_ids = list(
                Order.objects.filter(
                    status=OrderStatus.PENDING,
                    expires_at__lt=now,
                ).values_list("id", flat=True)[:EXPIRY_BATCH_SIZE]
            )
            if not stale_ids:
                break

            with self.atomic():
                updated = Order.objects.filter(
                    id__in=stale_ids,
                    status=OrderStatus.PENDING,
                ).update(
                    status=OrderStatus.CANCELLED,
                    cancel_reason=CancelReason.EXPIRED,
                    cancelled_at=now,
                    updated_at=now,
                )
                expired_ids = list(
                    Order.objects.filter(
                        id__in=stale_ids,
                        status=OrderStatus.CANCELLED,
                        cancel_reason=CancelReason.EXPIRED,
                        cancelled_at=now,
                    ).values_list("id", flat=True)
                )

            if expired_ids:
                orders_cancelled.send(
                    sender=Order,
                    order_ids=expired_ids,
                    reason=CancelReason.EXPIRED,
                )
            total += updated

            if len(stale_ids) < EXPIRY_BATCH_SIZE:
                break

        if total:
            logger.info("Expired stale orders", extra={"expired_count": total})
        return total

    @classmethod
    def transition(cls, order: Order, name: str, *args) -> Order:
        """
        Apply a named FSM transition and persist it.

        The save is an UPDATE guarded by the status the order was loaded
        with. A transition that is not allowed from the current status, or
        a save that loses a race, raises InvalidOrderStateError.
        """
        method = getattr(order, name)
        from_status = order.status
        try:
            method(*args)
            with transaction.atomic():
                order.save()
        except (TransitionNotAllowed, ConcurrentTransition) as e:
            order.refresh_from_db()
            raise InvalidOrderStateError(
                f"Cannot {name} order in '{order.status}' state",
                details={
                    "order_id": str(order.id),
                    "current_status": order.status,
                    "transition": name,
                },
            ) from e

        cls.get_logger().info(
            "Order transitioned",
            extra={
                "order_id": order.id,
                "from_status": from_status,
                "to_status": order.status,
            },
        )
        return order

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: int, user: AbstractBaseUser) -> Order:
        """
        Load an order visible to the caller.

        Raises:
            OrderNotFoundError: Order does not exist
            OrderAccessDeniedError: Caller is neither the buyer nor admin
        """
        order = self._load(order_id)
        if order.buyer_id != user.pk and not user.is_staff:
            raise OrderAccessDeniedError(
                "You do not have access to this order",
                details={"order_id": str(order_id)},
            )
        return order

    def list_orders(
        self,
        user: AbstractBaseUser,
        status: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        buyer_id: int | None = None,
    ) -> QuerySet[Order]:
        """
        Orders visible to the caller, newest first.

        Buyers see their own orders. Admins see all orders and may narrow
        them to one buyer with buyer_id.
        """
        queryset = Order.objects.select_related("resource")

        if user.is_staff:
            if buyer_id is not None:
                queryset = queryset.filter(buyer_id=buyer_id)
        else:
            queryset = queryset.filter(buyer=user)

        if status:
            queryset = queryset.filter(status=status)
        if created_after:
            queryset = queryset.filter(created_at__gte=created_after)
        if created_before:
            queryset = queryset.filter(created_at__lt=created_before)

        return queryset.order_by("-created_at", "-id")

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _load(order_id: int) -> Order:
        order = Order.objects.filter(id=order_id).first()
        if order is None:
            raise OrderNotFoundError(
                f"Order {order_id} not found",
                details={"order_id": str(order_id)},
            )
        return order
