"""
Signals sent by the order lifecycle.

orders_cancelled fires after pending orders are cancelled, either by the
buyer or by the expiry sweep. The payments app listens to it to cancel
payment attempts that can no longer complete.

Usage:
    from django.dispatch import receiver
    from orders.signals import orders_cancelled

    @receiver(orders_cancelled)
    def on_orders_cancelled(sender, order_ids, reason, **kwargs):
        ...
"""

from django.dispatch import Signal

# Arguments: order_ids (list[int]), reason (CancelReason value)
orders_cancelled = Signal()
