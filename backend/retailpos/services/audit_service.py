# Overview: Append-only security event logging shared by auth, admin and access gating.

from ..extensions import db
from ..models import SecurityEvent
from retailpos.time_utils import utcnow


def log_security_event(
    event_type: str,
    success: bool,
    user_id: int | None = None,
    actor_user_id: int | None = None,
    identifier: str | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Record a security-relevant event.

    WHY: Login failures feed the account lockout; access denials and
    lifecycle changes are needed for compliance review.

    Pass commit=False when the event must land in the caller's transaction.
    """
    event = SecurityEvent(
        user_id=user_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        identifier=identifier.lower() if identifier else None,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return event


def list_security_events(
    user_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent)
    if user_id is not None:
        query = query.filter(SecurityEvent.user_id == user_id)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
