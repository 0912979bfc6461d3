"""
Read-through cache of provider configuration.

Provider configuration rows are read on every pay and verify call but change
rarely. ProviderConfigCache keeps frozen copies in memory for
PAYMENT_CONFIG_CACHE_TTL_SECONDS, guarded by a reader/writer lock, and drops
them when a configuration row is saved (see payments.signals).

The cache is an owned component: PaymentsConfig holds the instance for the
running process and hands it to the provider registry. Tests build their own.

Usage:
    from payments.config_cache import ProviderConfigCache

    cache = ProviderConfigCache(ttl_seconds=60)
    paypal = cache.hosted_checkout()      # HostedCheckoutSettings | None
    tron = cache.chain("tron")            # ChainSettings | None
    cache.invalidate()
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from payments.models import ChainConfig, HostedCheckoutConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

logger = logging.getLogger(__name__)

HOSTED_CHECKOUT_KEY = "hosted_checkout"
CHAIN_KEY_PREFIX = "chain:"


# =============================================================================
# Frozen settings handed to adapters
# =============================================================================


@dataclass(frozen=True)
class HostedCheckoutSettings:
    """Active PayPal configuration."""

    client_id: str
    client_secret: str
    base_url: str
    webhook_secret: str
    return_url: str
    cancel_url: str
    brand_name: str
    min_amount: Decimal
    max_amount: Decimal


@dataclass(frozen=True)
class ChainSettings:
    """Active USDT configuration for one network."""

    network: str
    api_url: str
    api_key: str
    usdt_contract: str
    wallet_addresses: tuple[str, ...]
    min_confirmations: int
    webhook_secret: str
    min_amount: Decimal
    max_amount: Decimal


# =============================================================================
# Reader/writer lock
# =============================================================================


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Writers wait for active readers to drain; new readers wait while a
    writer is waiting, so a steady read load cannot starve invalidation.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# =============================================================================
# Cache
# =============================================================================


class ProviderConfigCache:
    """
    TTL cache of provider configuration, invalidated on write.

    Database reads happen outside the lock; only the dictionary swap is
    done under the write lock.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds is None:
            ttl_seconds = settings.PAYMENT_CONFIG_CACHE_TTL_SECONDS
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = ReadWriteLock()
        self._entries: dict[str, tuple[float, Any]] = {}

    def hosted_checkout(self) -> HostedCheckoutSettings | None:
        """Active PayPal configuration, or None when PayPal is not set up."""
        return self._get(HOSTED_CHECKOUT_KEY, self._load_hosted_checkout)

    def chain(self, network: str) -> ChainSettings | None:
        """Active configuration for a network, or None when not set up."""
        return self._get(
            f"{CHAIN_KEY_PREFIX}{network}",
            lambda: self._load_chain(network),
        )

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or everything when key is None."""
        with self._lock.write():
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
        logger.debug("Provider config cache invalidated", extra={"cache_key": key or "*"})

    # =========================================================================
    # Internals
    # =========================================================================

    def _get(self, key: str, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock.read():
            entry = self._entries.get(key)
        if entry is not None and now - entry[0] < self.ttl_seconds:
            return entry[1]

        value = loader()
        with self._lock.write():
            self._entries[key] = (self._clock(), value)
        return value

    @staticmethod
    def _load_hosted_checkout() -> HostedCheckoutSettings | None:
        row = HostedCheckoutConfig.objects.filter(is_active=True).order_by("-updated_at").first()
        if row is None:
            return None
        return HostedCheckoutSettings(
            client_id=row.client_id,
            client_secret=row.client_secret,
            base_url=row.base_url,
            webhook_secret=row.webhook_secret,
            return_url=row.return_url,
            cancel_url=row.cancel_url,
            brand_name=row.brand_name,
            min_amount=row.min_amount,
            max_amount=row.max_amount,
        )

    @staticmethod
    def _load_chain(network: str) -> ChainSettings | None:
        row = ChainConfig.objects.filter(network=network, is_active=True).first()
        if row is None:
            return None
        return ChainSettings(
            network=row.network,
            api_url=row.api_url.rstrip("/"),
            api_key=row.api_key,
            usdt_contract=row.usdt_contract,
            wallet_addresses=tuple(row.wallet_addresses or ()),
            min_confirmations=row.min_confirmations,
            webhook_secret=row.webhook_secret,
            min_amount=row.min_amount,
            max_amount=row.max_amount,
        )
