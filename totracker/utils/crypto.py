"""
Crypto utilities: bcrypt password hashing.

Work factor comes from the ``BCRYPT_ROUNDS`` config value (12 by default;
the testing config lowers it to keep the suite fast).
"""

import bcrypt
from flask import current_app, has_app_context

DEFAULT_ROUNDS = 12


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash:
        return False
    if not password_hash.startswith(("$2b$", "$2a$", "$2y$")):
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )
