"""
Auth Blueprint: account endpoints.

  POST /api/v1/auth/register      Email + password + name → local account
  POST /api/v1/auth/login         Email + password → access token
  GET  /api/v1/auth/me            Current user profile

Registration and password login are switched off when AUTH_PROVIDER is
"external"; that provider owns sign-up and sign-in.
"""

import logging

from flask import Blueprint, g, jsonify, request

from totracker.auth import is_external_provider, request_has_valid_session
from totracker.core.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from totracker.models import db
from totracker.services.jwt_service import issue_token_response
from totracker.services.user_service import authenticate_user, get_user, register_user
from totracker.utils.errors import E, api_error
from totracker.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

_EXTERNAL_MESSAGE = "Registration and sign-in are handled by the external identity provider"


@auth_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    db.session.rollback()
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@auth_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    db.session.rollback()
    logger.info("Registration conflict: %s", error)
    return api_error(E.CONFLICT_DUPLICATE, "Email already in use")


@auth_bp.errorhandler(AuthenticationError)
def _handle_auth(error: AuthenticationError):
    return api_error(E.UNAUTHORIZED, str(error))


@auth_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, "User not found")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Create a local account.

    Body: { "email": "...", "password": "...", "name": "..." }
    """
    if request_has_valid_session():
        return api_error(E.VALIDATION_INVALID, "Already signed in")
    if is_external_provider():
        return api_error(E.VALIDATION_INVALID, _EXTERNAL_MESSAGE)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Invalid request")

    register_user(data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"ok": True}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return a bearer token.

    Body: { "email": "...", "password": "..." }
    """
    if is_external_provider():
        return api_error(E.VALIDATION_INVALID, _EXTERNAL_MESSAGE)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Invalid request")

    user = authenticate_user(data.get("email"), data.get("password"))
    err = db_commit_or_error()
    if err:
        return err

    body = issue_token_response(user)
    body["user"] = user.to_dict()
    return jsonify(body), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    """Current user profile."""
    return jsonify({"user": get_user(g.current_user_id).to_dict()}), 200
