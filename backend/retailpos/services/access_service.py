# Overview: Service-layer access decisions; maps account status and role to allow/deny outcomes.

"""
Access State Machine

WHY: Every protected request must be gated on two independent facts about
the caller: where the account is in its onboarding lifecycle (status) and
what authorization tier it holds (role). The outcome is a closed set of
decisions so the caller can pick a distinct response for each one.

DESIGN PRINCIPLES:
- decide_access() is pure: no I/O, no mutation, never raises on bad input
- Evaluation order is fixed; inactivity dominates every other check so a
  deactivated account never learns its status or role
- Unknown/malformed status or role values fail closed
- Status is authoritative once past PENDING; email_verified is informational

LIFECYCLE:
    PENDING -> VERIFIED -> APPROVED -> SUSPENDED -> APPROVED (reinstate)
    PENDING/VERIFIED -> REJECTED

NOTE: email_verified is not re-checked after PENDING. An APPROVED account
keeps access even if its email flag is later cleared. This mirrors the
existing behaviour and is tracked as an open question in DESIGN.md.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from flask import current_app, has_app_context

from retailpos.time_utils import utcnow


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"


class UserStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class AccessDecision(str, Enum):
    ALLOW = "ALLOW"
    DENY_INACTIVE = "DENY_INACTIVE"
    DENY_UNVERIFIED = "DENY_UNVERIFIED"
    DENY_PENDING_APPROVAL = "DENY_PENDING_APPROVAL"
    DENY_REJECTED = "DENY_REJECTED"
    DENY_SUSPENDED = "DENY_SUSPENDED"
    DENY_ROLE = "DENY_ROLE"


class StatusTransitionError(Exception):
    """Raised when a status change is not a legal lifecycle step."""
    pass


# Deprecated stored values accepted at the deserialization boundary.
# EMPLOYEE was renamed to STAFF; `flask users migrate-legacy-roles` rewrites rows.
LEGACY_ROLE_ALIASES = {
    "EMPLOYEE": Role.STAFF,
}

MANAGEMENT_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


# =============================================================================
# PARSING (fail closed)
# =============================================================================

def parse_role(raw) -> Role | None:
    """
    Parse a stored/incoming role value.

    Returns None for anything unrecognized; callers treat None as the most
    restrictive role (DENY_ROLE on every resource, open or gated).
    """
    if isinstance(raw, Role):
        return raw
    if not isinstance(raw, str):
        return None

    value = raw.strip().upper()
    try:
        return Role(value)
    except ValueError:
        pass

    alias = LEGACY_ROLE_ALIASES.get(value)
    if alias is not None and has_app_context():
        current_app.logger.warning("Legacy role value %r read as %s", raw, alias.value)
    return alias


def parse_status(raw) -> UserStatus | None:
    """Parse a stored/incoming status value; None for anything unrecognized."""
    if isinstance(raw, UserStatus):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        return UserStatus(raw.strip().upper())
    except ValueError:
        return None


# =============================================================================
# IDENTITY & POLICY
# =============================================================================

@dataclass(frozen=True)
class Identity:
    """
    Resolved, already-authenticated caller as seen by the access gate.

    role/status hold whatever was stored; they are parsed during the
    decision so malformed values degrade to a denial instead of an error.
    """
    role: object
    status: object
    is_active: bool
    email_verified: bool = False

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(
            role=user.role,
            status=user.status,
            is_active=bool(user.is_active),
            email_verified=bool(user.email_verified),
        )


@dataclass(frozen=True)
class AccessPolicy:
    """
    Static access declaration for a protected resource.

    An empty required_roles set means any APPROVED, active identity with a
    recognized role.
    """
    required_roles: frozenset = field(default_factory=frozenset)

    @classmethod
    def for_roles(cls, *roles) -> "AccessPolicy":
        return cls(required_roles=frozenset(Role(r) for r in roles))


OPEN_POLICY = AccessPolicy()


# =============================================================================
# DECISION
# =============================================================================

_STATUS_DENIALS = {
    UserStatus.PENDING: AccessDecision.DENY_UNVERIFIED,
    UserStatus.VERIFIED: AccessDecision.DENY_PENDING_APPROVAL,
    UserStatus.REJECTED: AccessDecision.DENY_REJECTED,
    UserStatus.SUSPENDED: AccessDecision.DENY_SUSPENDED,
}


def decide_access(identity: Identity, policy: AccessPolicy = OPEN_POLICY) -> AccessDecision:
    """
    Decide whether an identity may reach a resource.

    Order (each step short-circuits):
    1. inactive                       -> DENY_INACTIVE
    2. PENDING                        -> DENY_UNVERIFIED
    3. VERIFIED                       -> DENY_PENDING_APPROVAL
    4. REJECTED                       -> DENY_REJECTED
    5. SUSPENDED                      -> DENY_SUSPENDED
    6. anything else but APPROVED     -> DENY_PENDING_APPROVAL
    7. unrecognized role              -> DENY_ROLE (even on open policies)
    8. role outside required_roles    -> DENY_ROLE
    9.                                -> ALLOW
    """
    if not identity.is_active:
        return AccessDecision.DENY_INACTIVE

    status = parse_status(identity.status)
    if status in _STATUS_DENIALS:
        return _STATUS_DENIALS[status]
    if status is not UserStatus.APPROVED:
        # Unknown status from legacy storage
        return AccessDecision.DENY_PENDING_APPROVAL

    role = parse_role(identity.role)
    if role is None:
        return AccessDecision.DENY_ROLE
    if policy.required_roles and role not in policy.required_roles:
        return AccessDecision.DENY_ROLE

    return AccessDecision.ALLOW


# =============================================================================
# PRESENTATION MAPPING
# =============================================================================

REDIRECT_TARGETS = {
    AccessDecision.ALLOW: None,
    AccessDecision.DENY_INACTIVE: "/login",
    AccessDecision.DENY_UNVERIFIED: "/verify-email",
    AccessDecision.DENY_PENDING_APPROVAL: "/pending-approval",
    AccessDecision.DENY_REJECTED: "/pending-approval",
    AccessDecision.DENY_SUSPENDED: "/pending-approval",
    AccessDecision.DENY_ROLE: "/unauthorized",
}

DECISION_MESSAGES = {
    AccessDecision.ALLOW: None,
    AccessDecision.DENY_INACTIVE: "Account is inactive",
    AccessDecision.DENY_UNVERIFIED: "Please verify your email address",
    AccessDecision.DENY_PENDING_APPROVAL: "Account is awaiting administrator approval",
    AccessDecision.DENY_REJECTED: "Account registration was rejected",
    AccessDecision.DENY_SUSPENDED: "Account is suspended",
    AccessDecision.DENY_ROLE: "You do not have access to this resource",
}


def redirect_target(decision: AccessDecision) -> str | None:
    return REDIRECT_TARGETS[decision]


def http_status(decision: AccessDecision) -> int:
    """HTTP status a route should answer with for a decision."""
    if decision is AccessDecision.ALLOW:
        return 200
    if decision is AccessDecision.DENY_INACTIVE:
        return 401
    return 403


def describe(decision: AccessDecision) -> dict:
    """JSON-ready description of a decision for API responses."""
    return {
        "decision": decision.value,
        "redirect": REDIRECT_TARGETS[decision],
        "message": DECISION_MESSAGES[decision],
    }


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

ALLOWED_TRANSITIONS = {
    UserStatus.PENDING: frozenset({UserStatus.VERIFIED, UserStatus.REJECTED}),
    UserStatus.VERIFIED: frozenset({UserStatus.APPROVED, UserStatus.REJECTED}),
    UserStatus.APPROVED: frozenset({UserStatus.SUSPENDED}),
    UserStatus.SUSPENDED: frozenset({UserStatus.APPROVED}),
    UserStatus.REJECTED: frozenset(),
}


def can_transition(current, target) -> bool:
    current_status = parse_status(current)
    target_status = parse_status(target)
    if current_status is None or target_status is None:
        return False
    return target_status in ALLOWED_TRANSITIONS[current_status]


def transition_status(user, target, actor_user_id: int | None = None, reason: str | None = None):
    """
    Move a user row to a new lifecycle status.

    Records approval/rejection/suspension metadata on the row. The caller
    owns the database transaction (no commit here).

    Raises:
        StatusTransitionError: illegal step, or PENDING -> VERIFIED without
        a verified email
    """
    target_status = parse_status(target)
    if target_status is None:
        raise StatusTransitionError(f"Unknown status: {target!r}")

    if not can_transition(user.status, target_status):
        raise StatusTransitionError(
            f"Cannot change status from {user.status} to {target_status.value}"
        )

    if target_status is UserStatus.VERIFIED and not user.email_verified:
        raise StatusTransitionError("Email must be verified before leaving PENDING")

    now = utcnow()
    previous = parse_status(user.status)
    user.status = target_status.value

    if target_status is UserStatus.APPROVED:
        if previous is UserStatus.VERIFIED:
            user.approved_at = now
            user.approved_by_user_id = actor_user_id
        user.suspended_at = None
        user.status_reason = None
    elif target_status is UserStatus.REJECTED:
        user.rejected_at = now
        user.status_reason = reason
    elif target_status is UserStatus.SUSPENDED:
        user.suspended_at = now
        user.status_reason = reason

    return user
