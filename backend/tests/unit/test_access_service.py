"""
Access state machine tests.

Verifies:
- The fixed check order (inactive first, role last)
- Fail-closed handling of malformed role/status values
- Legacy EMPLOYEE role alias
- Status lifecycle transitions
"""

from types import SimpleNamespace

import pytest

from retailpos.services.access_service import (
    AccessDecision,
    AccessPolicy,
    Identity,
    Role,
    StatusTransitionError,
    UserStatus,
    can_transition,
    decide_access,
    describe,
    http_status,
    parse_role,
    redirect_target,
    transition_status,
)


MANAGEMENT = AccessPolicy.for_roles("ADMIN", "MANAGER")


def identity(role="STAFF", status="APPROVED", is_active=True, email_verified=True):
    return Identity(role=role, status=status, is_active=is_active, email_verified=email_verified)


# =============================================================================
# DECISION ORDER
# =============================================================================


class TestDecisionOrder:
    def test_inactive_dominates_everything(self):
        ident = identity(role="ADMIN", status="APPROVED", is_active=False)
        assert decide_access(ident, MANAGEMENT) is AccessDecision.DENY_INACTIVE

    @pytest.mark.parametrize("status", [s.value for s in UserStatus] + ["GARBAGE", None])
    def test_inactive_never_leaks_status(self, status):
        assert decide_access(identity(status=status, is_active=False)) is AccessDecision.DENY_INACTIVE

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("PENDING", AccessDecision.DENY_UNVERIFIED),
            ("VERIFIED", AccessDecision.DENY_PENDING_APPROVAL),
            ("REJECTED", AccessDecision.DENY_REJECTED),
            ("SUSPENDED", AccessDecision.DENY_SUSPENDED),
            ("APPROVED", AccessDecision.ALLOW),
        ],
    )
    def test_status_outcomes(self, status, expected):
        assert decide_access(identity(status=status)) is expected

    def test_status_checked_before_role(self):
        # Wrong role AND unapproved: the status message wins
        ident = identity(role="STAFF", status="SUSPENDED")
        assert decide_access(ident, MANAGEMENT) is AccessDecision.DENY_SUSPENDED

    def test_staff_denied_management_resource(self):
        assert decide_access(identity(role="STAFF"), MANAGEMENT) is AccessDecision.DENY_ROLE

    @pytest.mark.parametrize("role", ["ADMIN", "MANAGER"])
    def test_management_roles_allowed(self, role):
        assert decide_access(identity(role=role), MANAGEMENT) is AccessDecision.ALLOW

    def test_empty_policy_allows_any_approved_role(self):
        for role in Role:
            assert decide_access(identity(role=role.value)) is AccessDecision.ALLOW

    def test_email_verified_flag_not_consulted_after_pending(self):
        # Status is authoritative once past PENDING
        assert decide_access(identity(status="APPROVED", email_verified=False)) is AccessDecision.ALLOW


# =============================================================================
# FAIL CLOSED
# =============================================================================


class TestFailClosed:
    @pytest.mark.parametrize("status", ["ARCHIVED", "", None, 42, "approved-ish"])
    def test_unknown_status_is_pending_approval(self, status):
        assert decide_access(identity(status=status)) is AccessDecision.DENY_PENDING_APPROVAL

    @pytest.mark.parametrize("role", ["OWNER", "", None, 7])
    def test_unknown_role_denied_when_roles_required(self, role):
        assert decide_access(identity(role=role), MANAGEMENT) is AccessDecision.DENY_ROLE

    @pytest.mark.parametrize("role", ["OWNER", "", None, 7])
    def test_unknown_role_denied_on_open_policy(self, role):
        assert decide_access(identity(role=role)) is AccessDecision.DENY_ROLE

    def test_status_denial_wins_over_unknown_role(self):
        assert decide_access(identity(role="OWNER", status="SUSPENDED")) is AccessDecision.DENY_SUSPENDED

    def test_status_parsing_is_case_insensitive(self):
        assert decide_access(identity(status="approved")) is AccessDecision.ALLOW


class TestLegacyRoleAlias:
    def test_employee_parses_as_staff(self):
        assert parse_role("EMPLOYEE") is Role.STAFF
        assert parse_role("employee") is Role.STAFF

    def test_employee_is_not_a_role_member(self):
        assert "EMPLOYEE" not in {r.value for r in Role}

    def test_legacy_employee_denied_management(self):
        assert decide_access(identity(role="EMPLOYEE"), MANAGEMENT) is AccessDecision.DENY_ROLE

    def test_legacy_employee_allowed_staff_resource(self):
        policy = AccessPolicy.for_roles("STAFF")
        assert decide_access(identity(role="EMPLOYEE"), policy) is AccessDecision.ALLOW


# =============================================================================
# PRESENTATION
# =============================================================================


class TestPresentation:
    def test_every_decision_has_redirect_and_status(self):
        for decision in AccessDecision:
            redirect_target(decision)
            assert http_status(decision) in (200, 401, 403)

    def test_redirects(self):
        assert redirect_target(AccessDecision.DENY_UNVERIFIED) == "/verify-email"
        assert redirect_target(AccessDecision.DENY_PENDING_APPROVAL) == "/pending-approval"
        assert redirect_target(AccessDecision.DENY_ROLE) == "/unauthorized"
        assert redirect_target(AccessDecision.ALLOW) is None

    def test_inactive_is_401(self):
        assert http_status(AccessDecision.DENY_INACTIVE) == 401
        assert http_status(AccessDecision.DENY_ROLE) == 403

    def test_describe(self):
        body = describe(AccessDecision.DENY_SUSPENDED)
        assert body["decision"] == "DENY_SUSPENDED"
        assert body["redirect"] == "/pending-approval"
        assert body["message"]


# =============================================================================
# LIFECYCLE
# =============================================================================


def user_row(status, email_verified=True):
    return SimpleNamespace(
        status=status,
        email_verified=email_verified,
        approved_at=None,
        approved_by_user_id=None,
        rejected_at=None,
        suspended_at=None,
        status_reason=None,
    )


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("PENDING", "VERIFIED", True),
            ("PENDING", "APPROVED", False),
            ("PENDING", "REJECTED", True),
            ("VERIFIED", "APPROVED", True),
            ("VERIFIED", "REJECTED", True),
            ("APPROVED", "SUSPENDED", True),
            ("APPROVED", "REJECTED", False),
            ("SUSPENDED", "APPROVED", True),
            ("REJECTED", "APPROVED", False),
            ("GARBAGE", "APPROVED", False),
        ],
    )
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_verified_requires_email_flag(self, app):
        with pytest.raises(StatusTransitionError):
            transition_status(user_row("PENDING", email_verified=False), UserStatus.VERIFIED)

    def test_approval_records_actor(self, app):
        user = transition_status(user_row("VERIFIED"), "APPROVED", actor_user_id=9)
        assert user.status == "APPROVED"
        assert user.approved_by_user_id == 9
        assert user.approved_at is not None

    def test_suspend_then_reinstate_clears_reason(self, app):
        user = transition_status(user_row("APPROVED"), "SUSPENDED", reason="Till shortage")
        assert user.suspended_at is not None
        assert user.status_reason == "Till shortage"

        transition_status(user, "APPROVED", actor_user_id=1)
        assert user.status == "APPROVED"
        assert user.suspended_at is None
        assert user.status_reason is None
        # Reinstatement keeps the earlier approval record
        assert user.approved_by_user_id is None

    def test_illegal_transition_raises(self, app):
        with pytest.raises(StatusTransitionError):
            transition_status(user_row("REJECTED"), "APPROVED")
