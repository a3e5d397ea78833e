"""
totracker
Authentication middleware.

Provides:
    - Bearer token authentication for every /api/v1/* route except the
      public ones (health, login, register)
    - Two provider modes selected by AUTH_PROVIDER:
        local:    tokens issued by /api/v1/auth/login (HS256, JWT_SECRET_KEY)
        external: tokens minted by an external identity provider
                  (EXTERNAL_AUTH_SECRET); users are provisioned on first sight
    - Content-Type enforcement for state-changing requests (lightweight CSRF
      mitigation, HTML forms cannot send application/json)

On success ``g.current_user`` / ``g.current_user_id`` hold the caller.
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from totracker.core.exceptions import AuthenticationError, ValidationError
from totracker.models import db
from totracker.models.auth import User
from totracker.services.jwt_service import decode_access_token, decode_external_token
from totracker.services.user_service import provision_external_user
from totracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths reachable without a bearer token
PUBLIC_PATHS = frozenset({
    "/api/v1/health",
    "/api/v1/auth/login",
    "/api/v1/auth/register",
})


def is_external_provider() -> bool:
    return current_app.config.get("AUTH_PROVIDER", "local") == "external"


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


def resolve_user_from_token(token: str) -> User:
    """Map a bearer token to a user according to the configured provider.

    Raises:
        AuthenticationError: token invalid, expired, or its user is gone.
    """
    try:
        if is_external_provider():
            claims = decode_external_token(token)
            user = provision_external_user(claims)
            db.session.commit()
            return user
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except pyjwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc
    except ValidationError as exc:
        raise AuthenticationError("Token claims rejected") from exc

    user = db.session.get(User, payload["sub"])
    if not user:
        raise AuthenticationError("Unknown user")
    return user


def request_has_valid_session() -> bool:
    """True when the request carries a bearer token that resolves to a user."""
    token = _bearer_token()
    if not token:
        return False
    try:
        resolve_user_from_token(token)
    except AuthenticationError:
        return False
    return True


def _check_content_type():
    """Require application/json for non-empty state-changing requests."""
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return api_error(
                E.VALIDATION_INVALID,
                "Content-Type must be application/json for state-changing requests",
                status=415,
            )
    return None


def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    - Attaches a before_request hook for API routes
    - Skips public routes and CORS pre-flight requests
    """
    @app.before_request
    def _before_request_auth():
        g.current_user = None
        g.current_user_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        if request.path in PUBLIC_PATHS:
            return None

        token = _bearer_token()
        if not token:
            return api_error(E.UNAUTHORIZED, "Unauthorized")

        try:
            user = resolve_user_from_token(token)
        except AuthenticationError as exc:
            logger.info("Rejected bearer token on %s: %s", request.path, exc)
            return api_error(E.UNAUTHORIZED, "Unauthorized")

        g.current_user = user
        g.current_user_id = user.id
        return None

    logger.info("Auth middleware installed (provider=%s)", app.config.get("AUTH_PROVIDER", "local"))
