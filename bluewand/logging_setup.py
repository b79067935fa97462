"""
Centralized logging configuration for bluewand.

Every record carries the static app/version/commit/branch fields. Structured
context is passed with ``extra={...}`` and shows up as JSON keys in JSON mode
or as ``key=value`` pairs in plain mode.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Numeric --log-level values: 0 info, 1 debug, 2 warning.
LOG_LEVELS = {0: logging.INFO, 1: logging.DEBUG, 2: logging.WARNING}

_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}
_STATIC_FIELDS = ("app", "version", "commit", "branch")


def app_version() -> str:
    try:
        return version("bluewand")
    except PackageNotFoundError:
        return "dev"


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED and key not in _STATIC_FIELDS
    }


class StaticFieldsFilter(logging.Filter):
    def __init__(self, app: str) -> None:
        super().__init__()
        commit = os.environ.get("BLUEWAND_COMMIT", "")
        self.fields = {
            "app": app,
            "version": app_version(),
            "commit": commit[-8:],
            "branch": os.environ.get("BLUEWAND_BRANCH", ""),
        }

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.fields.items():
            setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _STATIC_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class FieldsFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _extra_fields(record)
        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


def setup_logging(log_level: int = 0, *, json_format: bool = True, app: str = "bluewand") -> None:
    """
    Configure the root logger.

    Args:
        log_level: 0 for INFO, 1 for DEBUG, 2 for WARNING
        json_format: emit one JSON object per line instead of plain text
        app: value of the static ``app`` field
    """
    level = LOG_LEVELS.get(log_level, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(StaticFieldsFilter(app))
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(FieldsFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)
