# Overview: Bearer session tokens for signed-in users; issue, resolve, revoke and prune.

"""
Session Tokens

The client holds a 64-character hex token; only its SHA-256 digest is
stored. A session dies at the first of:
- SESSION_ABSOLUTE_TIMEOUT after sign-in
- SESSION_IDLE_TIMEOUT without a request (revoked on the next lookup)
- logout, password change, suspension or deactivation

NOTE: validate_session() only identifies the caller. Status, role and
is_active are judged by the access gate, so a suspended user who somehow
kept a token still gets a decision instead of a bare 401.
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from retailpos.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Digest used to store session and verification tokens.

    WHY SHA-256 and not bcrypt: the inputs are random 32-byte values, so a
    slow hash buys nothing and every authenticated request pays for it.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _active_session(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()


def _mark_revoked(session: SessionToken, reason: str, when) -> None:
    session.is_revoked = True
    session.revoked_at = when
    session.revoked_reason = reason


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Open a session for user_id. Returns (row, plaintext token)."""
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    issued_at = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user, touching last_used_at.

    Returns None for unknown, revoked, expired or idle sessions.
    """
    session = _active_session(token)
    if session is None or session.user is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _mark_revoked(session, "Idle timeout", now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=session.user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one session. False when the token is unknown or already revoked."""
    session = _active_session(token)
    if session is None:
        return False

    _mark_revoked(session, reason, utcnow())
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", commit: bool = True) -> int:
    """
    Sign a user out everywhere. Returns the number of sessions revoked.

    Pass commit=False to fold the revocation into the caller's transaction
    (suspension and deactivation do).
    """
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _mark_revoked(session, reason, now)

    if commit:
        db.session.commit()
    return len(sessions)


def cleanup_expired_sessions(retention_days: int = 30) -> int:
    """Delete dead sessions created more than retention_days ago. Returns count deleted."""
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < now - timedelta(days=retention_days),
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
