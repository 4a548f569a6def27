"""Response cache: TTL expiry, pattern invalidation, key derivation."""

import threading

from retailpos.services.response_cache import CACHE_PRESETS, ResponseCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_cache(ttl=60):
    clock = FakeClock()
    return ResponseCache(default_ttl_seconds=ttl, clock=clock), clock


class TestResponseCache:
    def test_hit_until_expiry(self):
        cache, clock = make_cache(ttl=60)
        cache.set("/api/products", {"items": []})

        assert cache.get("/api/products") == {"items": []}
        clock.advance(59)
        assert cache.get("/api/products") == {"items": []}
        clock.advance(1)
        assert cache.get("/api/products") is None
        assert cache.stats()["size"] == 0

    def test_per_entry_ttl_override(self):
        cache, clock = make_cache(ttl=60)
        cache.set("/api/sales", {"count": 1}, ttl_seconds=5)
        clock.advance(5)
        assert cache.get("/api/sales") is None

    def test_key_includes_params_and_user(self):
        cache, _ = make_cache()
        cache.set("/api/sales", "mine", params={"page": ["1"]}, user_id=1)

        assert cache.get("/api/sales", params={"page": ["1"]}, user_id=1) == "mine"
        assert cache.get("/api/sales", params={"page": ["1"]}, user_id=2) is None
        assert cache.get("/api/sales", params={"page": ["2"]}, user_id=1) is None

    def test_key_ignores_param_order(self):
        assert ResponseCache.make_key("/x", {"a": 1, "b": 2}) == ResponseCache.make_key("/x", {"b": 2, "a": 1})

    def test_invalidate_by_pattern(self):
        cache, _ = make_cache()
        cache.set("/api/products", 1)
        cache.set("/api/products/7", 2)
        cache.set("/api/sales", 3)

        assert cache.invalidate("/api/products") == 2
        assert cache.get("/api/products/7") is None
        assert cache.get("/api/sales") == 3

    def test_cleanup_drops_only_expired(self):
        cache, clock = make_cache(ttl=10)
        cache.set("/a", 1)
        cache.set("/b", 2, ttl_seconds=100)
        clock.advance(10)

        assert cache.cleanup() == 1
        assert cache.stats() == {"size": 1, "endpoints": ["/b"]}

    def test_writes_sweep_expired_entries_after_interval(self):
        clock = FakeClock()
        cache = ResponseCache(default_ttl_seconds=10, clock=clock, sweep_interval_seconds=60)
        for n in range(50):
            cache.set("/api/products", n, params={"q": [str(n)]})

        clock.advance(30)
        cache.set("/api/sales", "early")
        assert cache.stats()["size"] == 51

        clock.advance(30)
        cache.set("/api/sales", "fresh")
        assert cache.stats() == {"size": 1, "endpoints": ["/api/sales"]}

    def test_sweep_keeps_live_entries(self):
        clock = FakeClock()
        cache = ResponseCache(default_ttl_seconds=10, clock=clock, sweep_interval_seconds=5)
        cache.set("/a", 1)
        cache.set("/b", 2, ttl_seconds=100)

        clock.advance(10)
        cache.set("/c", 3)
        assert cache.stats()["endpoints"] == ["/b", "/c"]

    def test_clear(self):
        cache, _ = make_cache()
        cache.set("/a", 1)
        cache.clear()
        assert cache.stats()["size"] == 0

    def test_concurrent_writers(self):
        cache, _ = make_cache()

        def writer(n):
            for i in range(200):
                cache.set(f"/api/products/{n}", i)
                cache.invalidate("/api/products/")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.stats()["size"] <= 4


class TestPresets:
    def test_preset_ttls(self):
        assert CACHE_PRESETS["products"].ttl_seconds == 600
        assert CACHE_PRESETS["users"].ttl_seconds == 300
        assert CACHE_PRESETS["categories"].ttl_seconds == 1800
        assert CACHE_PRESETS["sales"].ttl_seconds == 120

    def test_sales_writes_invalidate_products(self):
        assert "/api/products" in CACHE_PRESETS["sales"].invalidate_on
