# Overview: Email verification tokens; moves accounts from PENDING to VERIFIED.

"""
Email Verification Service

WHY: An account must prove it owns its email address before an admin is
asked to approve it. Verification is the only way out of PENDING (other
than rejection).

SECURITY NOTES:
- Tokens are secrets.token_urlsafe(32), stored as SHA-256 hashes
- Single use; issuing a new token invalidates older unused ones
- Expiry from EMAIL_VERIFICATION_TTL_HOURS (default 24)
"""

import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import EmailVerificationToken, User
from . import notification_service
from .access_service import UserStatus, transition_status
from .audit_service import log_security_event
from .session_service import hash_token
from retailpos.time_utils import utcnow


class VerificationError(Exception):
    """Raised for invalid, expired or already-used verification tokens."""
    pass


def issue_verification_token(user: User) -> str:
    """
    Create a fresh token for user, queue the verification email, and
    return the plaintext token.
    """
    now = utcnow()
    ttl_hours = current_app.config.get("EMAIL_VERIFICATION_TTL_HOURS", 24)

    db.session.query(EmailVerificationToken).filter(
        EmailVerificationToken.user_id == user.id,
        EmailVerificationToken.used_at.is_(None),
    ).update({"used_at": now}, synchronize_session=False)

    token = secrets.token_urlsafe(32)
    db.session.add(EmailVerificationToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
    ))

    notification_service.notify_user(user, "VERIFY_EMAIL", commit=False, token=token, ttl_hours=ttl_hours)
    db.session.commit()
    return token


def verify_email(token: str) -> User:
    """
    Consume a verification token.

    Marks the email verified and moves PENDING -> VERIFIED. Accounts already
    past PENDING keep their status (the flag is still set).

    Raises:
        VerificationError: unknown, used or expired token
    """
    if not token:
        raise VerificationError("Verification token is required")

    record = db.session.query(EmailVerificationToken).filter_by(token_hash=hash_token(token)).first()
    if not record or record.used_at is not None:
        raise VerificationError("Invalid or already used verification token")

    now = utcnow()
    if record.expires_at < now:
        raise VerificationError("Verification token has expired")

    user = record.user
    record.used_at = now
    user.email_verified = True
    user.email_verified_at = now

    if user.status == UserStatus.PENDING.value:
        transition_status(user, UserStatus.VERIFIED)
        notification_service.notify_admins("NEW_USER_PENDING", commit=False, user_email=user.email)

    log_security_event(
        event_type="EMAIL_VERIFIED",
        success=True,
        user_id=user.id,
        identifier=user.email,
        commit=False,
    )
    db.session.commit()

    current_app.logger.info("User %s verified email; status now %s", user.id, user.status)
    return user
