"""
Logging for the financing portal.

Every record can carry portal context as ``extra`` attributes:

    request_id, actor_id       stamped by PortalContextFilter inside a request
    application_id, event_type passed by the lifecycle, audit and event logs
    method, path, status,      passed by the request timing middleware
    duration_ms, remote_addr

Production writes one JSON object per line with whichever of those are set.
Development and testing write a coloured line with a short ``[app=.. actor=..]``
tag. LOG_LEVEL overrides the level (default INFO in production, DEBUG otherwise).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

CONTEXT_FIELDS = ("request_id", "actor_id", "application_id", "event_type")
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic.runtime.migration")


class PortalContextFilter(logging.Filter):
    """Copy the current request id and actor id onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "actor_id", None) is None:
                actor = g.get("actor")
                record.actor_id = actor.id if actor is not None else None
        return True


def _context(record: logging.LogRecord, fields) -> dict:
    values = {}
    for key in fields:
        value = getattr(record, key, None)
        if value is not None and value != "":
            values[key] = value
    return values


class JSONFormatter(logging.Formatter):
    """One JSON object per record, portal context flattened into the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record, CONTEXT_FIELDS))
        entry.update(_context(record, REQUEST_FIELDS))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line output for a developer terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    _TAGS = (("application_id", "app"), ("actor_id", "actor"), ("request_id", "req"))

    def format(self, record: logging.LogRecord) -> str:
        ctx = _context(record, CONTEXT_FIELDS)
        tags = " ".join(f"{short}={ctx[key]}" for key, short in self._TAGS if key in ctx)
        line = (
            f"{self.COLORS.get(record.levelname, '')}"
            f"{datetime.fromtimestamp(record.created):%H:%M:%S} {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}"
        )
        if tags:
            line += f" [{tags}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for *app*'s environment."""
    testing = app.config.get("TESTING", False)
    json_output = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if json_output else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_output else ReadableFormatter())
    handler.addFilter(PortalContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app may run more than once per process (tests)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured level=%s output=%s", level_name, "json" if json_output else "readable")
