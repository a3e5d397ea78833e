"""Shared utility functions for timestamps and database commits.

parse_timestamp:     ISO-8601 text → aware UTC datetime (raises ValueError on bad input)
format_timestamp:    datetime / date / ISO text → canonical ISO-8601 UTC text
db_commit_or_error:  commit the request's session, translating failures to API errors
"""
import logging
from datetime import date, datetime, time, timezone

from totracker.models import db
from totracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def parse_timestamp(value):
    """Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Accepts ``datetime`` / ``date`` objects and strings such as
    ``2025-03-01``, ``2025-03-01T09:30:00`` and ``2025-03-01T09:30:00.000Z``.
    Naive values are taken to be UTC (SQLite hands timestamps back without a
    zone). Returns None for None / empty string.

    Raises:
        ValueError: if the value is not a recognisable ISO-8601 timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}") from exc
    else:
        raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value):
    """Render a timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (UTC), or None.

    Re-formatting an already formatted string yields the same string.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    # four-digit year, also below 1000
    return (
        f"{parsed.year:04d}-{parsed.month:02d}-{parsed.day:02d}"
        f"T{parsed.hour:02d}:{parsed.minute:02d}:{parsed.second:02d}"
        f".{parsed.microsecond // 1000:03d}Z"
    )


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the current SQLAlchemy session, returning an error response on failure.

    Returns:
        None on success.
        (response, status_code) tuple on failure: ready for ``return``.

    Usage::

        err = db_commit_or_error()
        if err:
            return err

    IntegrityError → 409 (duplicate / constraint violation)
    OperationalError → 500 (connection / lock issues)
    Other → 500 (unexpected)
    """
    from sqlalchemy.exc import IntegrityError, OperationalError

    try:
        db.session.commit()
        return None
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except OperationalError:
        db.session.rollback()
        logger.exception("Database operational error on commit")
        return api_error(E.DATABASE, "Database error")
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected database error on commit")
        return api_error(E.DATABASE, "Database error")
