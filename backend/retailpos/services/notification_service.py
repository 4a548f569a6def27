# Overview: Records transactional emails in the outbox; delivery is handled outside the app.

from flask import current_app

from ..extensions import db
from ..models import OutboundEmail, User


TEMPLATES = {
    "VERIFY_EMAIL": (
        "Verify your email address",
        "Hi {first_name},\n\nUse this code to verify your email address:\n\n{token}\n\n"
        "The code expires in {ttl_hours} hours.",
    ),
    "ACCOUNT_APPROVED": (
        "Your account has been approved",
        "Hi {first_name},\n\nAn administrator approved your account. You can now sign in.",
    ),
    "ACCOUNT_REJECTED": (
        "Your registration was not approved",
        "Hi {first_name},\n\nYour registration was not approved.\n\nReason: {reason}",
    ),
    "ACCOUNT_SUSPENDED": (
        "Your account has been suspended",
        "Hi {first_name},\n\nYour account has been suspended.\n\nReason: {reason}",
    ),
    "NEW_USER_PENDING": (
        "New user awaiting approval",
        "{user_email} verified their email and is waiting for approval.",
    ),
}


def queue_email(user: User | None, to_address: str, template: str, commit: bool = True, **context) -> OutboundEmail:
    """
    Render a template and store it in the outbox.

    Raises KeyError for an unknown template.
    """
    subject, body = TEMPLATES[template]
    if user is not None:
        context.setdefault("first_name", user.first_name)
    context.setdefault("reason", "No reason given")

    email = OutboundEmail(
        user_id=user.id if user else None,
        to_address=to_address,
        template=template,
        subject=subject,
        body=body.format(**context),
    )
    db.session.add(email)

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    current_app.logger.info("Queued %s email to %s", template, to_address)
    return email


def notify_user(user: User, template: str, commit: bool = True, **context) -> OutboundEmail:
    return queue_email(user, user.email, template, commit=commit, **context)


def notify_admins(template: str, commit: bool = True, **context) -> list[OutboundEmail]:
    admins = db.session.query(User).filter(
        User.role == "ADMIN",
        User.status == "APPROVED",
        User.is_active.is_(True),
    ).all()
    return [queue_email(admin, admin.email, template, commit=commit, **context) for admin in admins]
