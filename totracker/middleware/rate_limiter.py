"""
Rate limiting configuration.

The Limiter instance is created in totracker/__init__.py with no default
limits; this module applies per-blueprint limits.

    auth       10/minute   (password guessing)
    stories    120/minute  (drag-and-drop bursts)
    users      60/minute
    health     exempt

Keys are the authenticated user id when present, else the remote address.
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

BLUEPRINT_LIMITS = {
    "auth": "10/minute",
    "stories": "120/minute",
    "users": "60/minute",
}


def rate_limit_key() -> str:
    user_id = getattr(g, "current_user_id", None)
    if user_id:
        return f"user:{user_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """Apply blueprint limits. Disabled when RATELIMIT_ENABLED is false."""
    if not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiter disabled")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)
            logger.debug("Rate limit %s applied to %s", limit, bp_name)
