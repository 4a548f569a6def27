# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and Registration Service

WHY: Every action must be attributable. New staff register themselves,
then move through email verification and admin approval before the access
gate lets them in. Uses bcrypt for password hashing and enforces a
password strength policy at registration.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum length from PASSWORD_MIN_LENGTH (default 12)
- Must contain uppercase, lowercase, digit and special char
- Common words/sequences and long character runs rejected
- Emails are stored lower-cased; login is case-insensitive
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from .access_service import Role, UserStatus
from retailpos.time_utils import utcnow


class AuthError(Exception):
    """Raised for registration and credential errors."""
    pass


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


PASSWORD_MAX_LENGTH = 128

FORBIDDEN_PASSWORD_PATTERNS = (
    "password", "admin", "welcome", "qwerty", "abc123", "123456",
    "letmein", "monkey", "dragon", "master", "secret", "inventory",
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> str:
    email = normalize_email(email)
    if not _EMAIL_RE.match(email):
        raise AuthError("A valid email address is required")
    return email


def validate_password_strength(password: str, min_length: int | None = None) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Between min_length and 128 characters
    - At least one uppercase letter, one lowercase letter, one digit
    - At least one special character
    - No common words or sequences, no character repeated 3+ times in a row

    Raises PasswordValidationError if requirements not met.
    """
    if min_length is None:
        min_length = current_app.config.get("PASSWORD_MIN_LENGTH", 12)

    if not password or len(password) < min_length:
        raise PasswordValidationError(f"Password must be at least {min_length} characters long")

    if len(password) > PASSWORD_MAX_LENGTH:
        raise PasswordValidationError(f"Password must be at most {PASSWORD_MAX_LENGTH} characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]", password):
        raise PasswordValidationError("Password must contain at least one special character")

    lowered = password.lower()
    for pattern in FORBIDDEN_PASSWORD_PATTERNS:
        if pattern in lowered:
            raise PasswordValidationError("Password contains a common word or sequence")

    if re.search(r'(.)\1{2,}', password):
        raise PasswordValidationError("Password must not repeat the same character 3 or more times")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in storage
        return False


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(User.email == normalize_email(email)).first()


def register_user(email: str, password: str, first_name: str, last_name: str) -> User:
    """
    Self-register a new staff account.

    New accounts always start as STAFF / PENDING / unverified; role and
    approval are granted by an administrator later.

    Raises:
        AuthError: invalid email, missing names, email already registered
        PasswordValidationError: password doesn't meet requirements
    """
    email = validate_email(email)
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()

    if not first_name or not last_name:
        raise AuthError("first_name and last_name are required")

    if get_user_by_email(email):
        raise AuthError("An account with this email already exists")

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=Role.STAFF.value,
        status=UserStatus.PENDING.value,
        is_active=True,
        email_verified=False,
    )

    db.session.add(user)
    db.session.commit()

    current_app.logger.info("Registered user %s (id=%s) as PENDING", user.email, user.id)
    return user


def create_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = Role.STAFF.value,
    status: str = UserStatus.APPROVED.value,
    approved_by_user_id: int | None = None,
) -> User:
    """
    Create a user directly (CLI bootstrap and admin tooling).

    Accounts created this way skip the email round-trip and are marked
    verified; they start APPROVED unless another status is requested.
    """
    email = validate_email(email)
    if get_user_by_email(email):
        raise AuthError("An account with this email already exists")

    role_value = Role(role.upper()).value
    status_value = UserStatus(status.upper()).value
    now = utcnow()

    user = User(
        email=email,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        password_hash=hash_password(password),
        role=role_value,
        status=status_value,
        is_active=True,
        email_verified=True,
        email_verified_at=now,
        approved_at=now if status_value == UserStatus.APPROVED.value else None,
        approved_by_user_id=approved_by_user_id,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Status is NOT checked here: PENDING/VERIFIED/... users may sign in so the
    UI can show them where they stand; the access gate blocks everything else.

    Updates last_login_at on success.
    """
    user = get_user_by_email(email)
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AuthError("Current password is incorrect")
    if current_password == new_password:
        raise PasswordValidationError("New password must differ from the current password")
    user.password_hash = hash_password(new_password)
    db.session.commit()
