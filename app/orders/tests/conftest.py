"""Fixtures for order tests."""

import pytest

from catalog.tests.factories import PlatformResourceFactory
from core.sequence import SequenceIdGenerator
from orders.services import OrderService
from orders.tests.factories import OrderFactory


@pytest.fixture
def resource(db):
    return PlatformResourceFactory()


@pytest.fixture
def pending_order(buyer, resource):
    return OrderFactory(buyer=buyer, resource=resource)


@pytest.fixture
def order_service():
    """OrderService with a dedicated id generator."""
    return OrderService(id_generator=SequenceIdGenerator(node_id=7))
