"""
JWT Service: access token generation and verification.

Access token:  1 hour (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (local):
{
    "sub": <user_id>,
    "email": <email>,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

External identity provider tokens are verified with EXTERNAL_AUTH_SECRET and,
when configured, the EXTERNAL_AUTH_ISSUER / EXTERNAL_AUTH_AUDIENCE claims.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # 1 hour
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: str, email: str | None = None) -> str:
    """Generate a short-lived access token for a local account."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def issue_token_response(user) -> dict:
    """Token envelope returned by the login endpoint."""
    return {
        "access_token": generate_access_token(user.id, user.email),
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify a locally issued access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")
    return payload


def decode_external_token(token: str) -> dict:
    """
    Decode a token minted by the external identity provider.

    Raises jwt.InvalidTokenError when the provider is not configured or the
    token fails verification.
    """
    secret = current_app.config.get("EXTERNAL_AUTH_SECRET")
    if not secret:
        raise jwt.InvalidTokenError("External identity provider is not configured")

    options = {"require": ["sub", "exp"]}
    kwargs = {"algorithms": [ALGORITHM], "options": options}
    issuer = current_app.config.get("EXTERNAL_AUTH_ISSUER")
    audience = current_app.config.get("EXTERNAL_AUTH_AUDIENCE")
    if issuer:
        kwargs["issuer"] = issuer.rstrip("/")
    if audience:
        kwargs["audience"] = audience
    else:
        options["verify_aud"] = False
    return jwt.decode(token, secret, **kwargs)
