"""
Tests for the TTL metrics cache
"""
from obraledger.core.metrics_cache import (
    CacheKeys, MetricsCache, organization_key, organization_scope
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_cache(default_ttl=60):
    clock = FakeClock()
    return MetricsCache(default_ttl=default_ttl, clock=clock), clock


def test_entry_expires_after_ttl():
    cache, clock = make_cache()
    cache.set("stats", {"checks": 3})

    clock.advance(60)
    assert cache.get("stats") == {"checks": 3}

    clock.advance(1)
    assert cache.get("stats") is None


def test_per_entry_ttl_overrides_default():
    cache, clock = make_cache(default_ttl=600)
    cache.set("short", 1, ttl_seconds=5)
    cache.set("long", 2)

    clock.advance(10)
    assert cache.get("short") is None
    assert cache.get("long") == 2


def test_organization_scope_does_not_match_prefixes():
    cache, _ = make_cache()
    cache.set(organization_key(CacheKeys.ORGANIZATION_STATS, 1), "one")
    cache.set(organization_key(CacheKeys.ORGANIZATION_STATS, 10), "ten")

    assert cache.invalidate_pattern(organization_scope(1)) == 1
    assert cache.get(organization_key(CacheKeys.ORGANIZATION_STATS, 1)) is None
    assert cache.get(organization_key(CacheKeys.ORGANIZATION_STATS, 10)) == "ten"


def test_invalidate_single_key():
    cache, _ = make_cache()
    cache.set("a", 1)
    cache.invalidate("a")
    cache.invalidate("missing")
    assert cache.get("a") is None


def test_cleanup_removes_only_expired_entries():
    cache, clock = make_cache()
    cache.set("old", 1, ttl_seconds=10)
    clock.advance(20)
    cache.set("fresh", 2, ttl_seconds=10)

    assert cache.cleanup() == 1
    assert cache.get_stats()["total_entries"] == 1


def test_stats_report_hit_rate_and_entries():
    cache, clock = make_cache()
    cache.set("a", {"value": 1})
    cache.set("b", {"value": 2}, ttl_seconds=1)
    clock.advance(5)

    cache.get("a")
    cache.get("a")
    cache.get("missing")

    stats = cache.get_stats()
    assert stats["total_entries"] == 2
    assert stats["valid_entries"] == 1
    assert stats["expired_entries"] == 1
    assert stats["total_size_bytes"] > 0
    assert stats["hit_rate"] == round(2 / 3, 4)


def test_clear_resets_counters():
    cache, _ = make_cache()
    cache.set("a", 1)
    cache.get("a")
    cache.clear()

    stats = cache.get_stats()
    assert stats["total_entries"] == 0
    assert stats["hit_rate"] == 0.0
