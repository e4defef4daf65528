"""
Tests for AccountCache.
"""

import pytest
from conftest import make_account_data

from app.services.cache import AccountCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestAccountCache:
    """TTL, invalidation and capacity behaviour."""

    def test_hit_within_ttl(self, clock):
        cache = AccountCache(ttl_seconds=300, clock=clock)
        account = make_account_data(email="a@example.com")
        cache.set(account)

        clock.now += 299
        assert cache.get("a@example.com") == account

    def test_keys_are_case_insensitive(self, clock):
        cache = AccountCache(clock=clock)
        account = make_account_data(email="a@example.com")
        cache.set(account)

        assert cache.get("  A@Example.com ") == account

    def test_stale_entry_evicted(self, clock):
        cache = AccountCache(ttl_seconds=300, clock=clock)
        cache.set(make_account_data(email="a@example.com"))

        clock.now += 300
        assert cache.get("a@example.com") is None
        assert len(cache) == 0

    def test_invalidate(self, clock):
        cache = AccountCache(clock=clock)
        cache.set(make_account_data(email="a@example.com"))

        cache.invalidate("a@example.com")

        assert cache.get("a@example.com") is None

    def test_invalidate_missing_is_noop(self, clock):
        AccountCache(clock=clock).invalidate("nobody@example.com")

    def test_zero_ttl_disables_caching(self, clock):
        cache = AccountCache(ttl_seconds=0, clock=clock)
        cache.set(make_account_data())
        assert len(cache) == 0

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            AccountCache(ttl_seconds=-1)

    def test_capacity_drops_entry_closest_to_expiry(self, clock):
        cache = AccountCache(ttl_seconds=300, max_entries=2, clock=clock)
        cache.set(make_account_data(email="first@example.com"))
        clock.now += 10
        cache.set(make_account_data(email="second@example.com"))
        clock.now += 10
        cache.set(make_account_data(email="third@example.com"))

        assert len(cache) == 2
        assert cache.get("first@example.com") is None
        assert cache.get("third@example.com") is not None

    def test_capacity_prefers_expired_entries(self, clock):
        cache = AccountCache(ttl_seconds=100, max_entries=2, clock=clock)
        cache.set(make_account_data(email="old@example.com"))
        clock.now += 150
        cache.set(make_account_data(email="fresh@example.com"))
        cache.set(make_account_data(email="newer@example.com"))

        assert cache.get("fresh@example.com") is not None
        assert cache.get("newer@example.com") is not None

    def test_clear(self, clock):
        cache = AccountCache(clock=clock)
        cache.set(make_account_data(email="a@example.com"))
        cache.set(make_account_data(email="b@example.com"))

        cache.clear()

        assert len(cache) == 0
