"""
Pytest fixtures shared by every payments test package
(payments/tests, payments/webhooks/tests, payments/adapters/tests).

Provides orders and payment attempts in the states the settlement tests
start from, payee payout destinations, and provider configuration.

Usage:
    def test_settles(coordinator, paypal_attempt):
        result = coordinator.finalize_payment(paypal_attempt.id, TransactionStatus.COMPLETED, "CAP-1")
        assert result.success
"""

from decimal import Decimal

import pytest
from django.apps import apps

from catalog.tests.factories import (
    PlatformResourceFactory,
    ThirdPartyResourceFactory,
    UserFactory,
)
from core.sequence import SequenceIdGenerator
from orders.tests.factories import OrderFactory
from payments.adapters.base import PaymentStart
from payments.adapters.registry import ProviderRegistry
from payments.services import SettlementCoordinator, TransactionLedger
from payments.state_machines import Provider
from payments.tests.factories import (
    TRON_WALLETS,
    ChainConfigFactory,
    FakeClient,
    HostedCheckoutConfigFactory,
    PaymentTransactionFactory,
    UserPayoutConfigFactory,
)


@pytest.fixture(autouse=True)
def fresh_config_cache():
    """Forget provider configuration cached by earlier tests."""
    cache = apps.get_app_config("payments").config_cache
    cache.invalidate()
    yield cache
    cache.invalidate()


# =============================================================================
# Users and resources
# =============================================================================


@pytest.fixture
def payee(db):
    """Creator selling third-party resources."""
    return UserFactory(username="payee")


@pytest.fixture
def platform_resource(db):
    return PlatformResourceFactory(price=Decimal("100.00"))


@pytest.fixture
def creator_resource(payee):
    """Third-party resource priced 100.00 without its own commission rate."""
    return ThirdPartyResourceFactory(owner=payee, price=Decimal("100.00"))


@pytest.fixture
def payee_paypal(payee):
    return UserPayoutConfigFactory(user=payee, account_address="payee@example.com")


# =============================================================================
# Orders and attempts
# =============================================================================


@pytest.fixture
def platform_order(buyer, platform_resource):
    return OrderFactory(buyer=buyer, resource=platform_resource)


@pytest.fixture
def creator_order(buyer, creator_resource):
    return OrderFactory(buyer=buyer, resource=creator_resource)


@pytest.fixture
def paypal_attempt(platform_order):
    """Open PayPal attempt for a platform-owned order."""
    return PaymentTransactionFactory(order=platform_order)


@pytest.fixture
def creator_attempt(creator_order):
    """Open PayPal attempt for a third-party order."""
    return PaymentTransactionFactory(order=creator_order)


# =============================================================================
# Services and configuration
# =============================================================================


@pytest.fixture
def ledger():
    return TransactionLedger(id_generator=SequenceIdGenerator(node_id=11))


@pytest.fixture
def coordinator(ledger):
    return SettlementCoordinator(ledger=ledger)


@pytest.fixture
def paypal_config(db):
    return HostedCheckoutConfigFactory()


@pytest.fixture
def tron_config(db):
    return ChainConfigFactory()


# =============================================================================
# Provider clients
# =============================================================================


@pytest.fixture
def clients():
    """FakeClient per provider; Ethereum deliberately absent."""
    return {
        Provider.PAYPAL: FakeClient(Provider.PAYPAL),
        Provider.STRIPE: FakeClient(Provider.STRIPE),
        Provider.TRON: FakeClient(
            Provider.TRON,
            start=PaymentStart(deposit_address=TRON_WALLETS[0], qr_code="data:image/png;base64,AAAA"),
            refundable=False,
        ),
    }


@pytest.fixture
def fake_registry(mocker, clients):
    """Make services built without an explicit registry use the fake clients."""
    registry = ProviderRegistry(clients)
    mocker.patch("payments.services.payment_service.default_registry", return_value=registry)
    mocker.patch("payments.webhooks.handlers.default_registry", return_value=registry)
    return registry
