"""
Login Throttling Service

WHY: Prevent brute-force password attacks by locking an account after
repeated failed logins, with lockouts that grow as failures pile up.

SECURITY FEATURES:
- Failed attempts counted per email over the last 24 hours
- Progressive lockout: the more failures, the longer the wait
- Lockout runs from the most recent failure
- A successful login starts the count over
- Uses the security_events table for tracking
"""

import math
from datetime import timedelta

from ..models import SecurityEvent
from ..extensions import db
from .audit_service import log_security_event
from retailpos.time_utils import utcnow


LOOKBACK_WINDOW = timedelta(hours=24)

# (failed attempts, lockout minutes), ascending
LOCKOUT_THRESHOLDS = (
    (3, 5),
    (5, 15),
    (7, 60),
    (10, 240),
    (15, 1440),
)


def _window_start(identifier: str):
    """
    Failures only count after the later of: the lookback cutoff, or the
    most recent successful login.
    """
    cutoff = utcnow() - LOOKBACK_WINDOW
    last_success = db.session.query(db.func.max(SecurityEvent.occurred_at)).filter(
        SecurityEvent.event_type == "LOGIN_SUCCESS",
        SecurityEvent.identifier == identifier,
    ).scalar()
    if last_success and last_success > cutoff:
        return last_success
    return cutoff


def get_recent_failed_attempts(identifier: str) -> int:
    identifier = identifier.lower()
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.identifier == identifier,
        SecurityEvent.occurred_at > _window_start(identifier),
    ).count()


def get_lockout_rule(failed_attempts: int) -> tuple[int, int] | None:
    """Highest threshold reached, or None below the first one."""
    for attempts, minutes in reversed(LOCKOUT_THRESHOLDS):
        if failed_attempts >= attempts:
            return attempts, minutes
    return None


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Check if an account is currently locked due to failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    identifier = identifier.lower()
    failed_count = get_recent_failed_attempts(identifier)
    rule = get_lockout_rule(failed_count)
    if rule is None:
        return False, None

    most_recent = db.session.query(db.func.max(SecurityEvent.occurred_at)).filter(
        SecurityEvent.event_type == "LOGIN_FAILED",
        SecurityEvent.identifier == identifier,
    ).scalar()
    if most_recent is None:
        return False, None

    lockout_end = most_recent + timedelta(minutes=rule[1])
    now = utcnow()
    if now < lockout_end:
        return True, int(math.ceil((lockout_end - now).total_seconds()))

    return False, None


def record_failed_attempt(
    identifier: str,
    user_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    reason: str = "Invalid credentials"
) -> int:
    """
    Record a failed login attempt.

    Returns the total number of recent failed attempts.
    """
    log_security_event(
        event_type="LOGIN_FAILED",
        success=False,
        user_id=user_id,
        identifier=identifier,
        resource="/api/auth/login",
        action="LOGIN",
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return get_recent_failed_attempts(identifier)


def record_successful_login(
    user_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None
) -> None:
    log_security_event(
        event_type="LOGIN_SUCCESS",
        success=True,
        user_id=user_id,
        identifier=identifier,
        resource="/api/auth/login",
        action="LOGIN",
        ip_address=ip_address,
        user_agent=user_agent,
    )


def lockout_message(seconds_remaining: int | None) -> str:
    minutes = max(1, math.ceil((seconds_remaining or 0) / 60))
    if minutes < 60:
        return f"Account temporarily locked. Please try again in {minutes} minute{'s' if minutes != 1 else ''}."
    hours = math.ceil(minutes / 60)
    return f"Account temporarily locked. Please try again in {hours} hour{'s' if hours != 1 else ''}."


def warning_message(failed_attempts: int) -> str | None:
    """Warn users approaching the next lockout step."""
    if failed_attempts <= 0:
        return None

    for attempts, minutes in LOCKOUT_THRESHOLDS:
        if failed_attempts < attempts:
            remaining = attempts - failed_attempts
            duration = f"{minutes}-minute" if minutes < 60 else f"{minutes // 60}-hour"
            return f"{remaining} attempt{'s' if remaining != 1 else ''} remaining before {duration} lockout."

    return "Your account will be locked for 24 hours after the next failed attempt."


def get_lockout_status(identifier: str) -> dict:
    failed_count = get_recent_failed_attempts(identifier)
    locked, seconds_remaining = is_account_locked(identifier)

    return {
        "locked": locked,
        "failed_attempts": failed_count,
        "seconds_until_unlock": seconds_remaining,
        "message": lockout_message(seconds_remaining) if locked else warning_message(failed_count),
    }
