"""Standardised API error responses.

Usage
-----
    from totracker.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Story not found")
    return api_error(E.VALIDATION_INVALID, "Invalid request", details={"title": "required"})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication – HTTP 401
    UNAUTHORIZED = "ERR_UNAUTHORIZED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.DATABASE: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build ``(jsonify(body), status)`` for an error.

    ``status`` defaults to the code's entry in _DEFAULT_STATUS, else 400.
    ``details`` carries per-field validation messages.
    """
    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
