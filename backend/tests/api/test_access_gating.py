"""
Route-level access gating.

Verifies:
- Protected endpoints answer 401 without a valid token
- Each non-approved status answers 403 with its decision and redirect
- Inactive accounts answer 401
- Role checks deny STAFF on management routes and are audited
- Legacy and unknown stored roles fail closed
"""

import pytest

from retailpos.models import SecurityEvent


PROTECTED = [
    ("GET", "/api/products"),
    ("POST", "/api/products"),
    ("GET", "/api/products/categories"),
    ("POST", "/api/sales"),
    ("POST", "/api/sales/quote"),
    ("GET", "/api/sales"),
    ("GET", "/api/sales/stats"),
    ("GET", "/api/admin/users"),
    ("GET", "/api/admin/users/pending"),
    ("GET", "/api/admin/security-events"),
    ("GET", "/api/auth/me"),
]


class TestUnauthenticated:
    @pytest.mark.parametrize("method,path", PROTECTED)
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_wrong_scheme(self, client, db_session, staff_user):
        resp = client.get("/api/products", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401


class TestStatusGate:
    @pytest.mark.parametrize(
        "status,verified,decision,redirect",
        [
            ("PENDING", False, "DENY_UNVERIFIED", "/verify-email"),
            ("VERIFIED", True, "DENY_PENDING_APPROVAL", "/pending-approval"),
            ("REJECTED", True, "DENY_REJECTED", "/pending-approval"),
            ("SUSPENDED", True, "DENY_SUSPENDED", "/pending-approval"),
        ],
    )
    def test_non_approved_statuses(self, client, make_user, auth_headers, status, verified, decision, redirect):
        user = make_user(status=status, email_verified=verified)
        resp = client.get("/api/products", headers=auth_headers(user))

        assert resp.status_code == 403
        body = resp.get_json()
        assert body["decision"] == decision
        assert body["redirect"] == redirect
        assert body["error"] == body["message"]

    def test_unknown_status_treated_as_pending(self, client, make_user, auth_headers):
        user = make_user(status="ARCHIVED")
        resp = client.get("/api/products", headers=auth_headers(user))
        assert resp.status_code == 403
        assert resp.get_json()["decision"] == "DENY_PENDING_APPROVAL"

    def test_inactive_answers_401(self, client, make_user, auth_headers):
        user = make_user(is_active=False)
        resp = client.get("/api/products", headers=auth_headers(user))
        assert resp.status_code == 401

    def test_me_is_not_gated(self, client, make_user, auth_headers):
        user = make_user(status="SUSPENDED")
        resp = client.get("/api/auth/me", headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.get_json()["access"]["decision"] == "DENY_SUSPENDED"


class TestRoleGate:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("POST", "/api/products/categories"),
            ("GET", "/api/sales/stats"),
            ("GET", "/api/admin/users"),
            ("GET", "/api/admin/security-events"),
        ],
    )
    def test_staff_denied_management_routes(self, client, staff_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=staff_headers, json={})
        assert resp.status_code == 403
        assert resp.get_json()["decision"] == "DENY_ROLE"
        assert resp.get_json()["redirect"] == "/unauthorized"

    def test_manager_denied_admin_routes(self, client, manager_headers):
        resp = client.get("/api/admin/users", headers=manager_headers)
        assert resp.status_code == 403

    def test_manager_allowed_catalog_writes(self, client, manager_headers):
        resp = client.post("/api/products", headers=manager_headers, json={
            "sku": "MGR-1", "name": "Manager Product", "price": "5.00",
        })
        assert resp.status_code == 201

    def test_denial_is_audited(self, client, db_session, staff_user, staff_headers):
        client.get("/api/admin/users", headers=staff_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="ACCESS_DENIED").one()
        assert event.user_id == staff_user.id
        assert event.success is False
        assert event.resource == "/api/admin/users"
        assert event.reason == "DENY_ROLE"

    def test_legacy_employee_role_reads_as_staff(self, client, make_user, auth_headers):
        user = make_user(role="EMPLOYEE")
        headers = auth_headers(user)

        assert client.get("/api/products", headers=headers).status_code == 200
        assert client.get("/api/sales/stats", headers=headers).status_code == 403

    def test_unknown_role_fails_closed(self, client, make_user, auth_headers):
        user = make_user(role="SUPERUSER")
        headers = auth_headers(user)

        resp = client.get("/api/products", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json()["decision"] == "DENY_ROLE"

        resp = client.post("/api/products", headers=headers, json={"sku": "X", "name": "X", "price": "1"})
        assert resp.status_code == 403
        assert resp.get_json()["decision"] == "DENY_ROLE"
