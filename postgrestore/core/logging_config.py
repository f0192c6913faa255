"""
Structured logging configuration for postgrestore.

Only the ``postgrestore`` logger hierarchy is configured; the host
application's root logger is left alone. Cookie values, session payloads and
key material must never reach a log line, so extra fields with sensitive names
are redacted unless explicitly allowed.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from postgrestore.core.config import Settings

PACKAGE_LOGGER = "postgrestore"

_RESERVED_RECORD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'exc_info', 'exc_text', 'stack_info',
    'message', 'asctime',
}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; sensitive extras are redacted."""

    SENSITIVE_KEYWORDS = {
        'password', 'secret', 'key', 'token', 'cookie', 'session_data',
        'payload', 'private',
    }

    def __init__(self, include_sensitive: bool = False):
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            key: self._redact(key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_FIELDS and not key.startswith('_')
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=self._json_default)

    def _redact(self, key: str, value: Any) -> Any:
        if self.include_sensitive:
            return value
        key_lower = key.lower()
        if any(keyword in key_lower for keyword in self.SENSITIVE_KEYWORDS):
            return "[REDACTED]"
        return value

    def _json_default(self, obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    include_sensitive: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Attach a single handler to the ``postgrestore`` logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
        include_sensitive: Whether to include sensitive data in logs
        stream: Output stream, stdout by default

    Returns:
        The configured package logger
    """
    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(getattr(logging, log_level.upper()))
    package_logger.propagate = False

    # Statement echo would print sealed payloads
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return package_logger


def init_logging(config: Settings, stream: Optional[TextIO] = None) -> logging.Logger:
    """Configure package logging from store settings."""
    is_dev = config.DEV_MODE
    log_level = "DEBUG" if is_dev else config.LOG_LEVEL
    enable_json = config.LOG_JSON and not is_dev

    package_logger = setup_logging(
        log_level=log_level,
        enable_json=enable_json,
        include_sensitive=is_dev,
        stream=stream,
    )
    package_logger.info(
        "Structured logging initialized",
        extra={
            "dev_mode": is_dev,
            "json_logging": enable_json,
            "log_level": log_level,
        }
    )
    return package_logger
