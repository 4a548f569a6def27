from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Track login attempts, access denials and account lifecycle changes.
    Failed logins recorded here drive the progressive account lockout.

    IMMUTABLE: Never update or delete (except retention cleanup). Append-only.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_type_identifier", "event_type", "identifier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # Nullable for anonymous
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # LOGIN_FAILED, LOGIN_SUCCESS, ACCESS_DENIED, USER_APPROVED, ...
    event_type = db.Column(db.String(64), nullable=False, index=True)
    # Email used for login attempts; lockout counts by this
    identifier = db.Column(db.String(255), nullable=True)
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "actor_user_id": self.actor_user_id,
            "event_type": self.event_type,
            "identifier": self.identifier,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class OutboundEmail(db.Model):
    """
    Transactional email outbox.

    WHY: Delivery belongs to an external provider. The app records what it
    wants sent (verification links, approval notices) and a worker or the
    provider integration picks rows up from here.
    """
    __tablename__ = "outbound_emails"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    to_address = db.Column(db.String(255), nullable=False)
    template = db.Column(db.String(64), nullable=False)  # VERIFY_EMAIL, ACCOUNT_APPROVED, ...
    subject = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "to_address": self.to_address,
            "template": self.template,
            "subject": self.subject,
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
        }
