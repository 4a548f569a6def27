"""
Health endpoint and per-IP rate limiting.
"""

import pytest

from conftest import TEST_PASSWORD


@pytest.fixture
def rate_limits_on(app, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "RATE_LIMIT_ENABLED", True)
    yield
    app.extensions["rate_limiter"].reset()


class TestHealth:
    def test_healthy(self, client, db_session, make_user):
        make_user(status="VERIFIED")
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["awaiting_approval"] == 1
        assert body["checks"]["rate_limiter"]["enabled"] is False
        assert "size" in body["checks"]["response_cache"]


class TestRateLimiting:
    def test_auth_limit_is_five_per_window(self, client, rate_limits_on):
        payload = {"email": "nobody@retailpos.test", "password": TEST_PASSWORD}
        for _ in range(5):
            resp = client.post("/api/auth/login", json=payload)
            assert resp.get_json().get("code") != "RATE_LIMIT_EXCEEDED"

        resp = client.post("/api/auth/login", json=payload)
        assert resp.status_code == 429
        body = resp.get_json()
        assert body["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["retry_after"] > 0
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        assert "Retry-After" in resp.headers

    def test_headers_on_allowed_requests(self, client, rate_limits_on, staff_headers):
        resp = client.get("/api/products", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "100"
        assert resp.headers["X-RateLimit-Remaining"] == "99"

    def test_limits_are_per_client_ip(self, app, client, rate_limits_on, monkeypatch):
        monkeypatch.setitem(app.config, "TRUST_PROXY_HEADERS", True)
        payload = {"email": "nobody@retailpos.test", "password": TEST_PASSWORD}
        first = {"X-Forwarded-For": "203.0.113.10"}
        second = {"X-Forwarded-For": "203.0.113.20"}

        for _ in range(6):
            client.post("/api/auth/login", json=payload, headers=first)
        assert client.post("/api/auth/login", json=payload, headers=first).get_json()["code"] == "RATE_LIMIT_EXCEEDED"

        resp = client.post("/api/auth/login", json=payload, headers=second)
        assert resp.get_json().get("code") != "RATE_LIMIT_EXCEEDED"

    def test_forwarded_header_ignored_without_trusted_proxy(self, client, rate_limits_on):
        payload = {"email": "nobody@retailpos.test", "password": TEST_PASSWORD}

        for n in range(5):
            client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": f"198.51.100.{n}"})
        resp = client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": "198.51.100.99"})

        assert resp.status_code == 429
        assert resp.get_json()["code"] == "RATE_LIMIT_EXCEEDED"

    def test_socket_peers_limited_separately(self, client, rate_limits_on):
        payload = {"email": "nobody@retailpos.test", "password": TEST_PASSWORD}

        for _ in range(5):
            client.post("/api/auth/login", json=payload, environ_base={"REMOTE_ADDR": "192.0.2.1"})
        blocked = client.post("/api/auth/login", json=payload, environ_base={"REMOTE_ADDR": "192.0.2.1"})
        other = client.post("/api/auth/login", json=payload, environ_base={"REMOTE_ADDR": "192.0.2.2"})

        assert blocked.get_json()["code"] == "RATE_LIMIT_EXCEEDED"
        assert other.get_json().get("code") != "RATE_LIMIT_EXCEEDED"

    def test_limits_are_per_path(self, client, rate_limits_on):
        for _ in range(6):
            client.post("/api/auth/login", json={"email": "nobody@retailpos.test", "password": "x"})

        resp = client.post("/api/auth/resend-verification", json={"email": "nobody@retailpos.test"})
        assert resp.status_code == 200
