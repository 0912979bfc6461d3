"""
Tests for ApiKeyRateThrottle.

Tests cover:
- Counting per API key, per user and per IP
- Rejecting requests above the budget
- Sliding expiry on every hit
"""

import pytest
from django.contrib.auth.models import AnonymousUser
from rest_framework.request import Request
from rest_framework.test import APIRequestFactory

from core.throttling import ApiKeyRateThrottle


class TwoPerMinuteThrottle(ApiKeyRateThrottle):
    rate = "2/minute"


@pytest.fixture
def factory():
    return APIRequestFactory()


def make_request(factory, api_key=None, user=None, ip="10.0.0.1"):
    headers = {"REMOTE_ADDR": ip}
    if api_key:
        headers["HTTP_X_API_KEY"] = api_key
    request = Request(factory.get("/api/v1/orders/", **headers))
    request.user = user or AnonymousUser()
    return request


class TestApiKeyRateThrottle:
    """Tests for the counter-based throttle."""

    def test_allows_requests_within_budget(self, factory):
        """Should allow up to the configured number of requests."""
        throttle = TwoPerMinuteThrottle()
        request = make_request(factory, api_key="key-a")

        assert throttle.allow_request(request, None) is True
        assert throttle.allow_request(request, None) is True

    def test_rejects_requests_over_budget(self, factory):
        """Should reject the request that exceeds the budget."""
        throttle = TwoPerMinuteThrottle()
        request = make_request(factory, api_key="key-a")

        throttle.allow_request(request, None)
        throttle.allow_request(request, None)

        assert throttle.allow_request(request, None) is False
        assert throttle.wait() == 60.0

    def test_counts_each_api_key_separately(self, factory):
        """Should keep independent counters per API key."""
        throttle = TwoPerMinuteThrottle()

        for _ in range(2):
            throttle.allow_request(make_request(factory, api_key="key-a"), None)

        assert throttle.allow_request(make_request(factory, api_key="key-b"), None)

    def test_api_key_is_hashed_in_cache_key(self, factory):
        """Should not store raw API keys in cache keys."""
        throttle = TwoPerMinuteThrottle()
        request = make_request(factory, api_key="super-secret")

        key = throttle.get_cache_key(request, None)

        assert "super-secret" not in key
        assert key.startswith("throttle:api_key:key:")

    def test_falls_back_to_user_then_ip(self, factory, buyer):
        """Should identify authenticated users by id and anonymous callers by IP."""
        throttle = TwoPerMinuteThrottle()

        user_key = throttle.get_cache_key(make_request(factory, user=buyer), None)
        ip_key = throttle.get_cache_key(make_request(factory, ip="192.0.2.9"), None)

        assert user_key == f"throttle:api_key:user:{buyer.pk}"
        assert ip_key == "throttle:api_key:ip:192.0.2.9"

    def test_each_hit_slides_the_expiry(self, factory, mocker):
        """Should push the TTL forward on every counted request."""
        throttle = TwoPerMinuteThrottle()
        throttle.cache = mocker.MagicMock()
        throttle.cache.add.side_effect = [True, False]
        throttle.cache.incr.return_value = 2
        request = make_request(factory, api_key="key-a")

        throttle.allow_request(request, None)
        throttle.allow_request(request, None)

        throttle.cache.touch.assert_called_once_with(throttle.key, 60)
