"""
Project-wide pytest configuration and fixtures.

App-specific fixtures are defined in each app's tests/conftest.py.
"""

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache


def pytest_configure():
    """Adjust settings for the test run."""
    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full purchase-to-settlement workflows)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_sequence.py, test_adapters.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_intake.py",
        "test_settlement.py",
        "test_coordinator_races.py",
        "test_handlers.py",
        "test_payout_configs.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_sequence.py",
        "test_signatures.py",
        "test_mappers.py",
        "test_commission.py",
        "test_throttling.py",
        "test_config_cache.py",
        "test_hosted_checkout.py",
        "test_on_chain.py",
        "test_card_checkout.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_cache():
    """Reset the local-memory cache between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def buyer(db):
    """A regular authenticated buyer."""
    return get_user_model().objects.create_user(
        username="buyer",
        email="buyer@example.com",
        password="testpass123",
    )


@pytest.fixture
def other_user(db):
    """A second regular user that does not own the fixtures' orders."""
    return get_user_model().objects.create_user(
        username="someone-else",
        email="other@example.com",
        password="testpass123",
    )


@pytest.fixture
def admin_user(db):
    """A staff user with admin visibility."""
    return get_user_model().objects.create_user(
        username="admin",
        email="admin@example.com",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture
def buyer_client(api_client, buyer):
    """API client authenticated as the buyer."""
    api_client.force_authenticate(user=buyer)
    return api_client
