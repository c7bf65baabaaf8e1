"""Structured logging for the ``snapback`` logger tree.

Handlers are installed on the ``snapback`` namespace logger only, so an
embedding host keeps control of the root logger. Level and format come from
``SNAPBACK_LOG_LEVEL`` and ``SNAPBACK_LOG_FORMAT`` (``json`` or ``text``).
"""

from __future__ import annotations

import logging
import os
import sys
import time
from typing import IO, Any

import orjson

NAMESPACE = "snapback"
CONTEXT_PREFIX = "ctx_"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_BASE_FIELDS = frozenset({"timestamp", "level", "logger", "message", "exc_type", "exc_info", "stack"})


class JsonFormatter(logging.Formatter):
    """One orjson line per record.

    ``ctx_*`` attributes (see :func:`log_context`) become top-level fields;
    a field that would shadow a base key is kept under ``ctx`` instead.
    """

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": f"{self.formatTime(record, '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        shadowed: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if not key.startswith(CONTEXT_PREFIX):
                continue
            field = key[len(CONTEXT_PREFIX) :]
            if field in _BASE_FIELDS:
                shadowed[field] = value
            else:
                payload[field] = value
        if shadowed:
            payload["ctx"] = shadowed
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(
    level: str | int | None = None,
    use_json: bool | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """(Re)install the single handler of the ``snapback`` logger and return it."""
    if level is None:
        level = os.environ.get("SNAPBACK_LOG_LEVEL", "INFO").upper()
    if use_json is None:
        use_json = os.environ.get("SNAPBACK_LOG_FORMAT", "json").lower() != "text"
    logging.captureWarnings(True)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if use_json else logging.Formatter(TEXT_FORMAT))
    logger = logging.getLogger(NAMESPACE)
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def get_logger(name: str = NAMESPACE) -> logging.Logger:
    """Logger inside the ``snapback`` tree; configures the tree on first use."""
    if name != NAMESPACE and not name.startswith(f"{NAMESPACE}."):
        name = f"{NAMESPACE}.{name}"
    if not logging.getLogger(NAMESPACE).handlers:
        configure_logging()
    return logging.getLogger(name)


def log_context(**fields: Any) -> dict[str, Any]:
    """Build an ``extra`` mapping whose keys the JSON formatter picks up."""
    return {f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items()}


__all__ = ["JsonFormatter", "NAMESPACE", "configure_logging", "get_logger", "log_context"]
