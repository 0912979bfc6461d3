"""
Tests for ProviderConfigCache.

Time is driven by a fake monotonic clock so TTL expiry is deterministic.
"""

import threading

import pytest

from payments.config_cache import ChainSettings, ProviderConfigCache, ReadWriteLock
from payments.models import ChainConfig, HostedCheckoutConfig
from payments.tests.factories import TRON_WALLETS, ChainConfigFactory, HostedCheckoutConfigFactory


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ProviderConfigCache(ttl_seconds=60, clock=clock)


@pytest.mark.django_db
class TestReadThrough:
    """Loading and caching configuration rows."""

    def test_missing_config_is_none(self, cache):
        assert cache.hosted_checkout() is None
        assert cache.chain("tron") is None

    def test_chain_settings_are_frozen_copies(self, cache):
        ChainConfigFactory(api_url="https://api.trongrid.io/")

        tron = cache.chain("tron")

        assert isinstance(tron, ChainSettings)
        assert tron.api_url == "https://api.trongrid.io"
        assert tron.wallet_addresses == tuple(TRON_WALLETS)
        assert tron.min_confirmations == 19

    def test_inactive_rows_are_ignored(self, cache):
        ChainConfigFactory(is_active=False)

        assert cache.chain("tron") is None

    def test_reads_within_ttl_hit_memory(self, cache, clock, django_assert_num_queries):
        HostedCheckoutConfigFactory()
        cache.hosted_checkout()
        clock.now += 59

        with django_assert_num_queries(0):
            assert cache.hosted_checkout().client_id == "paypal-client-id"

    def test_entries_expire_after_ttl(self, cache, clock):
        config = HostedCheckoutConfigFactory()
        cache.hosted_checkout()
        HostedCheckoutConfig.objects.filter(id=config.id).update(client_id="rotated")
        clock.now += 61

        assert cache.hosted_checkout().client_id == "rotated"

    def test_networks_are_cached_separately(self, cache):
        ChainConfigFactory()

        assert cache.chain("tron") is not None
        assert cache.chain("ethereum") is None


@pytest.mark.django_db
class TestInvalidation:
    """Explicit and signal-driven invalidation."""

    def test_invalidate_single_key(self, cache):
        config = ChainConfigFactory()
        cache.chain("tron")
        ChainConfig.objects.filter(id=config.id).update(min_confirmations=30)

        cache.invalidate("chain:tron")

        assert cache.chain("tron").min_confirmations == 30

    def test_saving_config_invalidates_app_cache(self, fresh_config_cache):
        """Admin edits are visible on the next read."""
        config = ChainConfigFactory()
        assert fresh_config_cache.chain("tron").min_confirmations == 19

        config.min_confirmations = 25
        config.save()

        assert fresh_config_cache.chain("tron").min_confirmations == 25

    def test_deleting_config_invalidates_app_cache(self, fresh_config_cache):
        config = HostedCheckoutConfigFactory()
        assert fresh_config_cache.hosted_checkout() is not None

        config.delete()

        assert fresh_config_cache.hosted_checkout() is None


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()

        with lock.read(), lock.read():
            pass

    def test_writer_waits_for_reader(self):
        lock = ReadWriteLock()
        events = []
        reader_in = threading.Event()
        release_reader = threading.Event()

        def reader():
            with lock.read():
                reader_in.set()
                release_reader.wait(timeout=5)
                events.append("reader done")

        def writer():
            with lock.write():
                events.append("writer")

        t_reader = threading.Thread(target=reader)
        t_reader.start()
        reader_in.wait(timeout=5)
        t_writer = threading.Thread(target=writer)
        t_writer.start()
        t_writer.join(timeout=0.1)
        assert events == []

        release_reader.set()
        t_reader.join(timeout=5)
        t_writer.join(timeout=5)
        assert events == ["reader done", "writer"]
