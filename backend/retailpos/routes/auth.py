# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/retailpos/routes/auth.py
"""
Authentication and onboarding API routes

SECURITY FEATURES:
- Password strength validation on registration
- Email verification before an account can be approved
- Progressive account lockout after repeated failed logins
- Per-IP rate limiting on the credential endpoints
- Session management with token-based auth

Login succeeds for any active account regardless of onboarding status; the
response carries the access decision so the UI knows where to send the user.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import verification_service
from ..services.access_service import Identity, UserStatus, decide_access, describe
from ..services.auth_service import AuthError, PasswordValidationError
from ..services.verification_service import VerificationError
from ..decorators import client_ip, invalidate_cached, rate_limited, require_access, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _access_payload(user) -> dict:
    return describe(decide_access(Identity.from_user(user)))


@auth_bp.post("/register")
@rate_limited("AUTH")
def register_route():
    """
    Self-register a staff account.

    The account starts PENDING; a verification code is emailed and must be
    confirmed via /verify-email before an admin can approve it.
    """
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.register_user(
            email=data.get("email"),
            password=data.get("password"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e), "field": "password"}), 400
    except AuthError as e:
        status = 409 if "already exists" in str(e) else 400
        return jsonify({"error": str(e)}), status

    invalidate_cached("users")

    message = "Registration successful. Check your email for a verification code."
    try:
        verification_service.issue_verification_token(user)
    except Exception:
        # The account is already committed; the user can ask for a new code
        db.session.rollback()
        current_app.logger.exception("Failed to issue verification token for user %s", user.id)
        message = (
            "Registration successful, but the verification code could not be sent. "
            "Request a new one via /api/auth/resend-verification."
        )

    return jsonify({
        "user": user.to_dict(),
        "access": _access_payload(user),
        "message": message,
    }), 201


@auth_bp.post("/verify-email")
@rate_limited("AUTH")
def verify_email_route():
    data = request.get_json(silent=True) or {}

    try:
        user = verification_service.verify_email(data.get("token"))
    except VerificationError as e:
        return jsonify({"error": str(e)}), 400

    invalidate_cached("users")

    return jsonify({
        "user": user.to_dict(),
        "access": _access_payload(user),
        "message": "Email verified. Your account is awaiting administrator approval.",
    }), 200


@auth_bp.post("/resend-verification")
@rate_limited("AUTH")
def resend_verification_route():
    """
    Issue a fresh verification code.

    Always answers 200 with the same message so the endpoint cannot be used
    to discover which emails are registered.
    """
    data = request.get_json(silent=True) or {}
    user = auth_service.get_user_by_email(data.get("email") or "")

    if user and user.is_active and not user.email_verified and user.status == UserStatus.PENDING.value:
        verification_service.issue_verification_token(user)

    return jsonify({
        "message": "If the account exists and is unverified, a new code has been sent."
    }), 200


@auth_bp.post("/login")
@rate_limited("AUTH")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, session token and access decision on success.
    Token must be included in Authorization header for protected routes.

    SECURITY:
    - Checks for account lockout before attempting authentication
    - Records failed attempts for throttling
    - Records successful logins for audit trail
    """
    try:
        data = request.get_json(silent=True) or {}
        email = auth_service.normalize_email(data.get("email"))
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = client_ip()

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
        if is_locked:
            current_app.logger.warning("Login attempt for locked account %s", email)
            return jsonify({
                "error": login_throttle_service.lockout_message(seconds_remaining),
                "locked": True,
                "retry_after_seconds": seconds_remaining,
            }), 429

        user = auth_service.authenticate(email, password)

        if not user:
            known = auth_service.get_user_by_email(email)
            failed_count = login_throttle_service.record_failed_attempt(
                identifier=email,
                user_id=known.id if known else None,
                ip_address=ip_address,
                user_agent=user_agent,
                reason="Inactive account" if known and not known.is_active else "Invalid credentials",
            )

            is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
            if is_locked:
                current_app.logger.warning("Account %s locked after %s failed attempts", email, failed_count)
                return jsonify({
                    "error": login_throttle_service.lockout_message(seconds_remaining),
                    "locked": True,
                    "retry_after_seconds": seconds_remaining,
                }), 429

            body = {"error": "Invalid credentials"}
            warning = login_throttle_service.warning_message(failed_count)
            if warning:
                body["warning"] = warning
            return jsonify(body), 401

        login_throttle_service.record_successful_login(
            user_id=user.id,
            identifier=email,
            ip_address=ip_address,
            user_agent=user_agent
        )

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "access": _access_payload(user),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/lockout-status/<identifier>")
def lockout_status_route(identifier: str):
    """
    Check lockout status for an account.

    Public so a locked-out user can see when to retry.
    """
    status = login_throttle_service.get_lockout_status(auth_service.normalize_email(identifier))
    return jsonify(status)


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authorization header required"}), 401

        token = auth_header.split(" ", 1)[1]

        revoked = session_service.revoke_session(token, reason="User logout")

        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Current user plus the access decision for the default policy.

    Not gated: pending, rejected and suspended users need this to render
    their holding page.
    """
    return jsonify({
        "user": g.current_user.to_dict(),
        "access": _access_payload(g.current_user),
    })


@auth_bp.post("/change-password")
@rate_limited("AUTH")
@require_auth
@require_access()
def change_password_route():
    """Change password and sign out every session, including this one."""
    data = request.get_json(silent=True) or {}

    try:
        auth_service.change_password(
            g.current_user,
            data.get("current_password") or "",
            data.get("new_password") or "",
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e), "field": "new_password"}), 400
    except AuthError as e:
        return jsonify({"error": str(e)}), 400

    session_service.revoke_all_user_sessions(g.current_user.id, reason="Password changed")
    return jsonify({"message": "Password changed. Please sign in again."}), 200
