"""
API-key rate limiting backed by the shared cache (Redis in deployments).

Each caller gets one counter. The counter is created with the window's TTL,
incremented atomically on every request, and its TTL is pushed forward on
every hit, so the window slides with traffic.

Identity, in order of preference:
    1. API key header (API_KEY_HEADER, hashed before use as a cache key)
    2. Authenticated user id
    3. Client IP

Configured in settings:
    REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = ["core.throttling.ApiKeyRateThrottle"]
    REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {"api_key": "1000/hour"}
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache as default_cache
from rest_framework.throttling import SimpleRateThrottle

from core.helpers import get_client_ip

if TYPE_CHECKING:
    from rest_framework.request import Request

logger = logging.getLogger(__name__)


class ApiKeyRateThrottle(SimpleRateThrottle):
    """Fixed-budget counter per API key with a sliding expiry."""

    scope = "api_key"
    cache = default_cache
    cache_format = "throttle:%(scope)s:%(ident)s"

    def get_cache_key(self, request: Request, view) -> str:
        header = settings.API_KEY_HEADER
        api_key = request.headers.get(header)
        if api_key:
            digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:32]
            ident = f"key:{digest}"
        elif request.user and request.user.is_authenticated:
            ident = f"user:{request.user.pk}"
        else:
            ident = f"ip:{get_client_ip(request)}"
        return self.cache_format % {"scope": self.scope, "ident": ident}

    def allow_request(self, request: Request, view) -> bool:
        if self.rate is None:
            return True

        self.key = self.get_cache_key(request, view)
        self.count = self._increment(self.key)

        if self.count > self.num_requests:
            logger.warning(
                "Rate limit exceeded",
                extra={"throttle_key": self.key, "count": self.count},
            )
            return False
        return True

    def _increment(self, key: str) -> int:
        if self.cache.add(key, 1, timeout=self.duration):
            return 1
        try:
            count = self.cache.incr(key)
        except ValueError:
            # Expired between add() and incr()
            self.cache.add(key, 1, timeout=self.duration)
            return 1
        self.cache.touch(key, self.duration)
        return count

    def wait(self) -> float | None:
        if getattr(self, "count", 0) > (self.num_requests or 0):
            return float(self.duration)
        return None
