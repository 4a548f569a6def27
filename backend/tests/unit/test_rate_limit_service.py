"""Fixed-window rate limiter."""

import threading

from retailpos.services.rate_limit_service import RATE_LIMIT_RULES, RateLimiter, RateLimitRule


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


RULE = RateLimitRule(window_seconds=60, max_requests=3, message="slow down")


class TestRateLimiter:
    def test_allows_up_to_limit_then_denies(self):
        limiter = RateLimiter(clock=FakeClock())

        results = [limiter.hit("ip:/path", RULE) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].retry_after == 60

    def test_new_window_after_reset_time(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        for _ in range(3):
            limiter.hit("k", RULE)
        assert limiter.hit("k", RULE).allowed is False

        clock.now += 60
        result = limiter.hit("k", RULE)
        assert result.allowed is True
        assert result.remaining == 2

    def test_keys_are_independent(self):
        limiter = RateLimiter(clock=FakeClock())
        for _ in range(3):
            limiter.hit("a", RULE)
        assert limiter.hit("b", RULE).allowed is True

    def test_headers(self):
        limiter = RateLimiter(clock=FakeClock(1000.0))
        for _ in range(3):
            limiter.hit("k", RULE)
        headers = limiter.hit("k", RULE).headers()

        assert headers["X-RateLimit-Limit"] == "3"
        assert headers["X-RateLimit-Remaining"] == "0"
        assert headers["X-RateLimit-Reset"] == "1060"
        assert headers["Retry-After"] == "60"

    def test_allowed_headers_have_no_retry_after(self):
        limiter = RateLimiter(clock=FakeClock())
        assert "Retry-After" not in limiter.hit("k", RULE).headers()

    def test_cleanup_and_reset(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        limiter.hit("a", RULE)
        limiter.hit("b", RateLimitRule(window_seconds=600, max_requests=1))
        clock.now += 60

        assert limiter.cleanup() == 1
        assert limiter.stats() == {"tracked_keys": 1}
        limiter.reset()
        assert limiter.stats() == {"tracked_keys": 0}

    def test_hits_sweep_abandoned_windows_after_interval(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock, sweep_interval_seconds=120)
        for n in range(100):
            limiter.hit(f"API:10.0.0.{n}:/api/products", RULE)

        clock.now += 60
        limiter.hit("fresh", RULE)
        assert limiter.stats() == {"tracked_keys": 101}

        clock.now += 60
        limiter.hit("fresh", RULE)
        assert limiter.stats() == {"tracked_keys": 1}

    def test_sweep_keeps_open_windows(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock, sweep_interval_seconds=30)
        limiter.hit("short", RULE)
        long_rule = RateLimitRule(window_seconds=600, max_requests=1)
        limiter.hit("long", long_rule)

        clock.now += 60
        limiter.hit("other", RULE)
        assert limiter.stats() == {"tracked_keys": 2}
        assert limiter.hit("long", long_rule).allowed is False

    def test_concurrent_hits_never_exceed_limit(self):
        limiter = RateLimiter(clock=FakeClock())
        rule = RateLimitRule(window_seconds=60, max_requests=50)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(25):
                result = limiter.hit("shared", rule)
                with lock:
                    allowed.append(result.allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allowed.count(True) == 50


class TestPresets:
    def test_rule_presets(self):
        assert (RATE_LIMIT_RULES["AUTH"].max_requests, RATE_LIMIT_RULES["AUTH"].window_seconds) == (5, 900)
        assert (RATE_LIMIT_RULES["API"].max_requests, RATE_LIMIT_RULES["API"].window_seconds) == (60, 60)
        assert (RATE_LIMIT_RULES["DATA"].max_requests, RATE_LIMIT_RULES["DATA"].window_seconds) == (100, 60)
        assert (RATE_LIMIT_RULES["ADMIN"].max_requests, RATE_LIMIT_RULES["ADMIN"].window_seconds) == (10, 300)
