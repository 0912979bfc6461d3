"""
Celery tasks for the order lifecycle.

Usage:
    from orders.tasks import expire_stale_orders

    # Scheduled via celery-beat every 5 minutes (orders migration 0002)
    expire_stale_orders.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from orders.services import OrderService

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_orders() -> dict:
    """
    Periodic task to cancel pending orders past their expiry time.

    Open payment attempts of the expired orders are cancelled by the
    payments app's orders_cancelled receiver.

    Returns:
        Dict with count of orders expired
    """
    expired_count = OrderService().expire_stale_orders()
    return {"expired_count": expired_count}
