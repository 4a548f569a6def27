# Overview: Administrator actions on user accounts: approval, rejection, suspension, roles, activation.

"""
User Administration Service

WHY: Self-registered accounts only become useful once an administrator
approves them. Every administrative change is audited as a SecurityEvent
and, where the user needs to know, announced through the outbox.

RULES:
- All status changes go through access_service.transition_status
- An admin cannot suspend, deactivate or demote their own account
- Suspension and deactivation revoke every open session of the target
"""

from flask import current_app

from ..extensions import db
from ..models import User
from . import notification_service
from .access_service import (
    Role,
    UserStatus,
    StatusTransitionError,
    parse_role,
    parse_status,
    transition_status,
)
from .audit_service import log_security_event
from .session_service import revoke_all_user_sessions


class UserAdminError(Exception):
    """Raised for invalid administrative actions (self-targeting, bad input)."""
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserAdminError("User not found", status_code=404)
    return user


def _audit(event_type: str, user: User, actor: User, reason: str | None = None) -> None:
    log_security_event(
        event_type=event_type,
        success=True,
        user_id=user.id,
        actor_user_id=actor.id,
        identifier=user.email,
        resource=f"/api/admin/users/{user.id}",
        action=event_type,
        reason=reason,
        commit=False,
    )


def _change_status(user: User, actor: User, target: UserStatus, event_type: str, reason: str | None = None) -> User:
    try:
        transition_status(user, target, actor_user_id=actor.id, reason=reason)
    except StatusTransitionError as e:
        raise UserAdminError(str(e), status_code=409)
    _audit(event_type, user, actor, reason)
    return user


def list_users(status: str | None = None, role: str | None = None) -> list[User]:
    query = db.session.query(User)
    if status:
        parsed = parse_status(status)
        if parsed is None:
            raise UserAdminError(f"Unknown status: {status}")
        query = query.filter(User.status == parsed.value)
    if role:
        parsed_role = parse_role(role)
        if parsed_role is None:
            raise UserAdminError(f"Unknown role: {role}")
        query = query.filter(User.role == parsed_role.value)
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def list_pending() -> list[User]:
    """Verified accounts waiting on an approval decision, oldest first."""
    return db.session.query(User).filter(
        User.status == UserStatus.VERIFIED.value,
        User.is_active.is_(True),
    ).order_by(User.created_at.asc(), User.id.asc()).all()


def approve_user(user_id: int, actor: User) -> User:
    user = _get_user(user_id)
    _change_status(user, actor, UserStatus.APPROVED, "USER_APPROVED")
    notification_service.notify_user(user, "ACCOUNT_APPROVED", commit=False)
    db.session.commit()

    current_app.logger.info("User %s approved by %s", user.id, actor.id)
    return user


def reject_user(user_id: int, actor: User, reason: str | None = None) -> User:
    user = _get_user(user_id)
    _change_status(user, actor, UserStatus.REJECTED, "USER_REJECTED", reason)
    notification_service.notify_user(user, "ACCOUNT_REJECTED", commit=False, reason=reason or "No reason given")
    db.session.commit()

    current_app.logger.info("User %s rejected by %s", user.id, actor.id)
    return user


def suspend_user(user_id: int, actor: User, reason: str | None = None) -> User:
    if user_id == actor.id:
        raise UserAdminError("You cannot suspend your own account")

    user = _get_user(user_id)
    _change_status(user, actor, UserStatus.SUSPENDED, "USER_SUSPENDED", reason)
    revoke_all_user_sessions(user.id, reason="Account suspended", commit=False)
    notification_service.notify_user(user, "ACCOUNT_SUSPENDED", commit=False, reason=reason or "No reason given")
    db.session.commit()

    current_app.logger.info("User %s suspended by %s", user.id, actor.id)
    return user


def reinstate_user(user_id: int, actor: User) -> User:
    user = _get_user(user_id)
    if user.status != UserStatus.SUSPENDED.value:
        raise UserAdminError("Only suspended accounts can be reinstated", status_code=409)
    _change_status(user, actor, UserStatus.APPROVED, "USER_REINSTATED")
    db.session.commit()

    current_app.logger.info("User %s reinstated by %s", user.id, actor.id)
    return user


def set_role(user_id: int, role: str, actor: User) -> User:
    parsed = parse_role(role)
    if parsed is None:
        raise UserAdminError(f"Unknown role: {role}")

    user = _get_user(user_id)
    if user.id == actor.id and parsed is not Role.ADMIN:
        raise UserAdminError("You cannot remove your own admin role")

    previous = user.role
    user.role = parsed.value
    _audit("USER_ROLE_CHANGED", user, actor, f"{previous} -> {parsed.value}")
    db.session.commit()

    current_app.logger.info("User %s role %s -> %s by %s", user.id, previous, parsed.value, actor.id)
    return user


def set_active(user_id: int, is_active: bool, actor: User) -> User:
    if user_id == actor.id and not is_active:
        raise UserAdminError("You cannot deactivate your own account")

    user = _get_user(user_id)
    user.is_active = is_active
    if not is_active:
        revoke_all_user_sessions(user.id, reason="Account deactivated", commit=False)
    _audit("USER_ACTIVATED" if is_active else "USER_DEACTIVATED", user, actor)
    db.session.commit()

    current_app.logger.info("User %s is_active=%s by %s", user.id, is_active, actor.id)
    return user
