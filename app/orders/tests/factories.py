"""
Factory Boy factories for order test data.

Usage:
    from orders.tests.factories import OrderFactory

    order = OrderFactory()                              # pending, platform resource
    order = OrderFactory(status=OrderStatus.PAID)       # any status
    order = OrderFactory(resource=ThirdPartyResourceFactory())
"""

from datetime import timedelta

import factory
from django.utils import timezone

from catalog.tests.factories import PlatformResourceFactory, UserFactory
from orders.models import Order, OrderStatus


class OrderFactory(factory.django.DjangoModelFactory):
    """Pending order priced at its resource's current price."""

    class Meta:
        model = Order

    buyer = factory.SubFactory(UserFactory)
    resource = factory.SubFactory(PlatformResourceFactory)
    amount = factory.LazyAttribute(lambda o: o.resource.price)
    currency = "USD"
    status = OrderStatus.PENDING
    expires_at = factory.LazyFunction(lambda: timezone.now() + timedelta(minutes=30))


class PaidOrderFactory(OrderFactory):
    """Order whose payment was confirmed but not yet settled."""

    status = OrderStatus.PAID
    paid_at = factory.LazyFunction(timezone.now)
