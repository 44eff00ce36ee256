"""
Logging setup for the API process.

Production writes one JSON object per line to stderr; development and
tests get a short coloured line. ``LOG_LEVEL`` (config or env) picks the
level, defaulting to INFO in production and DEBUG elsewhere.
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes callers pass through ``extra=`` that are worth shipping
REQUEST_FIELDS = (
    "request_id", "method", "path", "status", "duration_ms",
    "remote_addr", "user_id", "issue_id",
)

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3", "botocore", "httpx")


class RequestIdFilter(logging.Filter):
    """Stamp records emitted inside a request with its id."""

    def filter(self, record):
        if not hasattr(record, "request_id") and has_request_context():
            record.request_id = g.get("request_id")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        entry.update({k: v for k in REQUEST_FIELDS
                      if (v := getattr(record, k, None)) is not None})
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    LEVEL_COLOURS = {
        logging.DEBUG: "36", logging.INFO: "32", logging.WARNING: "33",
        logging.ERROR: "31", logging.CRITICAL: "35",
    }

    def __init__(self):
        super().__init__(datefmt="%H:%M:%S")

    def format(self, record):
        colour = self.LEVEL_COLOURS.get(record.levelno, "0")
        line = (f"{self.formatTime(record, self.datefmt)} "
                f"\033[{colour}m{record.levelname[:4]}\033[0m "
                f"{record.name} {record.getMessage()}")
        if getattr(record, "duration_ms", None) is not None:
            line += f" ({record.duration_ms:.0f}ms)"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the root handler for ``app``; safe to call once per create_app()."""
    testing = app.config.get("TESTING", False)
    production = not (testing or app.config.get("DEBUG", False))

    level = (app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL")
             or ("INFO" if production else "DEBUG")).upper()
    if not isinstance(logging.getLevelName(level), int):
        level = "INFO"

    logging.config.dictConfig({
        "version": 1,
        # Module loggers are created at import time, before this runs
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": RequestIdFilter}},
        "formatters": {
            "json": {"()": JSONFormatter},
            "console": {"()": ConsoleFormatter},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "json" if production else "console",
                "filters": ["request_id"],
            },
        },
        "root": {"level": level, "handlers": ["stderr"]},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    })
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (level=%s, %s)", level,
                        "json" if production else "console")
