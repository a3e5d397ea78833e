"""
User Service: registration, credential checks, external provisioning.

Transaction policy: functions use flush(), never commit().
The route handler owns db.session.commit().
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from totracker.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from totracker.models import db
from totracker.models.auth import User
from totracker.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
NAME_MAX_LENGTH = 120


def normalize_email(raw) -> str:
    """Validate an email address and return its normalised lowercase form."""
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Invalid request", details={"email": "required"})
    try:
        valid = validate_email(raw.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Invalid request", details={"email": str(e)}) from e
    return valid.normalized.lower()


# ═══════════════════════════════════════════════════════════════
# Local accounts
# ═══════════════════════════════════════════════════════════════
def register_user(data: dict) -> User:
    """Create a local account from a registration payload.

    Body shape: { email, password, name }

    Raises:
        ValidationError: malformed payload.
        ConflictError: email already in use.
    """
    email = normalize_email(data.get("email"))

    password = data.get("password")
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(
            "Invalid request",
            details={"password": f"must be at least {PASSWORD_MIN_LENGTH} characters"},
        )

    name = data.get("name")
    if not isinstance(name, str) or not name.strip() or len(name.strip()) > NAME_MAX_LENGTH:
        raise ValidationError(
            "Invalid request",
            details={"name": f"must be 1-{NAME_MAX_LENGTH} characters"},
        )

    if User.query.filter_by(email=email).first():
        raise ConflictError("User", "email", email)

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
        auth_provider="local",
    )
    db.session.add(user)
    db.session.flush()
    logger.info("Registered user id=%s", user.id)
    return user


def authenticate_user(email, password) -> User:
    """Check email + password and return the user.

    Raises AuthenticationError with the same message for unknown email and
    wrong password.
    """
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationError("Email and password are required")

    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning("Failed login attempt for %s", email.strip().lower()[:64])
        raise AuthenticationError("Invalid email or password")

    user.last_login_at = datetime.now(timezone.utc)
    db.session.flush()
    return user


def get_user(user_id: str) -> User:
    user = db.session.get(User, user_id) if user_id else None
    if not user:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def users_query():
    """All users ordered for assignee pickers (unexecuted query, for pagination)."""
    return User.query.order_by(User.name, User.email)


# ═══════════════════════════════════════════════════════════════
# External identity provider
# ═══════════════════════════════════════════════════════════════
def provision_external_user(claims: dict) -> User:
    """Return the user for verified external token claims, creating it on first sight.

    The subject is taken from ``sub`` (falling back to ``user_id`` / ``id``),
    mirroring common OIDC profile shapes.
    """
    subject = claims.get("sub") or claims.get("user_id") or claims.get("id")
    if not isinstance(subject, str) or not subject:
        raise AuthenticationError("Token has no usable subject")

    user = User.query.filter_by(external_subject=subject).first()
    if user:
        return user

    email = claims.get("email")
    if not email:
        raise AuthenticationError("Token has no email claim")
    email = normalize_email(email)

    user = User.query.filter_by(email=email).first()
    if user:
        # Link an existing account to the provider subject.
        user.external_subject = subject
        db.session.flush()
        return user

    user = User(
        email=email,
        name=claims.get("name"),
        auth_provider="external",
        external_subject=subject,
    )
    db.session.add(user)
    db.session.flush()
    logger.info("Provisioned external user id=%s", user.id)
    return user
