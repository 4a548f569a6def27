# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/retailpos/routes/admin.py
"""
User administration routes.

SECURITY: ADMIN role only, rate limited with the ADMIN preset. Every
mutation is audited by user_admin_service.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import cached_response, rate_limited, require_access, require_auth
from ..services import user_admin_service
from ..services.audit_service import list_security_events
from ..services.user_admin_service import UserAdminError


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _error(e: UserAdminError):
    return jsonify({"error": str(e)}), e.status_code


def _reason() -> str | None:
    data = request.get_json(silent=True) or {}
    reason = data.get("reason")
    return reason.strip() if isinstance(reason, str) and reason.strip() else None


@admin_bp.get("/users")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def list_users_route():
    """
    List users.

    Query params:
    - status: PENDING | VERIFIED | APPROVED | REJECTED | SUSPENDED
    - role: ADMIN | MANAGER | STAFF
    """
    try:
        users = user_admin_service.list_users(
            status=request.args.get("status"),
            role=request.args.get("role"),
        )
    except UserAdminError as e:
        return _error(e)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.get("/users/pending")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def list_pending_route():
    users = user_admin_service.list_pending()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.post("/users/<int:user_id>/approve")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def approve_user_route(user_id: int):
    try:
        user = user_admin_service.approve_user(user_id, g.current_user)
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "User approved"})


@admin_bp.post("/users/<int:user_id>/reject")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def reject_user_route(user_id: int):
    try:
        user = user_admin_service.reject_user(user_id, g.current_user, reason=_reason())
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "User rejected"})


@admin_bp.post("/users/<int:user_id>/suspend")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def suspend_user_route(user_id: int):
    try:
        user = user_admin_service.suspend_user(user_id, g.current_user, reason=_reason())
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "User suspended"})


@admin_bp.post("/users/<int:user_id>/reinstate")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def reinstate_user_route(user_id: int):
    try:
        user = user_admin_service.reinstate_user(user_id, g.current_user)
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "User reinstated"})


@admin_bp.put("/users/<int:user_id>/role")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def set_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return jsonify({"error": "role is required"}), 400

    try:
        user = user_admin_service.set_role(user_id, data["role"], g.current_user)
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "Role updated"})


@admin_bp.post("/users/<int:user_id>/activate")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def activate_user_route(user_id: int):
    try:
        user = user_admin_service.set_active(user_id, True, g.current_user)
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "User activated"})


@admin_bp.post("/users/<int:user_id>/deactivate")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
@cached_response("users")
def deactivate_user_route(user_id: int):
    try:
        user = user_admin_service.set_active(user_id, False, g.current_user)
    except UserAdminError as e:
        return _error(e)
    return jsonify({"user": user.to_dict(), "message": "User deactivated"})


@admin_bp.get("/security-events")
@rate_limited("ADMIN")
@require_auth
@require_access("ADMIN")
def security_events_route():
    """
    Recent security events, newest first.

    Query params: user_id, event_type, limit (default 100, max 500)
    """
    limit = min(request.args.get("limit", default=100, type=int), 500)
    events = list_security_events(
        user_id=request.args.get("user_id", type=int),
        event_type=request.args.get("event_type"),
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)})
