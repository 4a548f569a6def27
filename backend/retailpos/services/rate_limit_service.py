# Overview: In-process request rate limiting keyed by client and route.

"""
Request Rate Limiter

WHY: Authentication and admin endpoints are brute-force targets; general
API endpoints need a ceiling so one client cannot starve the others.

DESIGN:
- Counter per key: {count, reset_at}. A window opens on the first hit and
  everything inside it counts against max_requests; an expired window is
  replaced on the next hit
- Hits sweep every expired window at most once per sweep interval, so
  clients that never return do not keep their keys forever
- The read-modify-write of a key happens under one lock, once, at request
  entry. An aborted request never leaves a half-applied count behind
- One RateLimiter per app (app.extensions["rate_limiter"]) so it can be
  replaced by a shared counter service without touching routes
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RateLimitRule:
    window_seconds: int
    max_requests: int
    message: str = "Too many requests. Please slow down."


RATE_LIMIT_RULES = {
    # Strict limits for auth endpoints
    "AUTH": RateLimitRule(
        window_seconds=15 * 60,
        max_requests=5,
        message="Too many authentication attempts. Please try again later.",
    ),
    "API": RateLimitRule(window_seconds=60, max_requests=60),
    # Looser limits for data fetching
    "DATA": RateLimitRule(window_seconds=60, max_requests=100),
    "ADMIN": RateLimitRule(
        window_seconds=5 * 60,
        max_requests=10,
        message="Too many admin actions. Please wait before trying again.",
    ),
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> dict:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval_seconds: float = 60):
        self._clock = clock
        self.sweep_interval_seconds = sweep_interval_seconds
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _drop_expired(self, now: float) -> int:
        # Caller holds self._lock
        doomed = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in doomed:
            del self._windows[key]
        self._last_sweep = now
        return len(doomed)

    def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        """Record one request for key and report whether it may proceed."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval_seconds:
                self._drop_expired(now)
            window = self._windows.get(key)

            if window is None or window.reset_at <= now:
                window = _Window(count=1, reset_at=now + rule.window_seconds)
                self._windows[key] = window
                return RateLimitResult(
                    allowed=True,
                    limit=rule.max_requests,
                    remaining=rule.max_requests - 1,
                    reset_at=window.reset_at,
                    retry_after=0,
                )

            if window.count >= rule.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=rule.max_requests,
                    remaining=0,
                    reset_at=window.reset_at,
                    retry_after=int(math.ceil(window.reset_at - now)),
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                limit=rule.max_requests,
                remaining=rule.max_requests - window.count,
                reset_at=window.reset_at,
                retry_after=0,
            )

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired windows. Returns count removed."""
        with self._lock:
            return self._drop_expired(self._clock())

    def stats(self) -> dict:
        with self._lock:
            return {"tracked_keys": len(self._windows)}
