"""
Structured logging configuration.

- Development: human-readable colored format
- Production: JSON lines, one object per record
- Log level: LOG_LEVEL config value (env), falls back per environment
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Request-scoped attributes copied from ``extra=`` into JSON output.
_EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "user_id",
    "story_id",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        rid = getattr(record, "request_id", None)
        suffix = f" [{duration:.0f}ms]" if duration is not None else ""
        if rid:
            suffix += f" rid={rid}"
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{suffix}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Development / testing → ReadableFormatter
    Production            → JSONFormatter
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    level = getattr(logging, str(level_name).upper(), logging.INFO)

    formatter = JSONFormatter() if is_prod else ReadableFormatter()

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
