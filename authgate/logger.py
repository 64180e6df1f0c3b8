"""Structured logging configuration"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


# Attributes copied from `extra={...}` into the JSON line when present
EXTRA_FIELDS = ("action", "user_id", "path", "method", "client", "status_code")


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Configure the package logger; child loggers (authgate.*) inherit it"""
    logger = logging.getLogger("authgate")
    logger.setLevel(log_level.upper())

    # Remove existing handlers so repeated app construction doesn't duplicate lines
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    return logger
