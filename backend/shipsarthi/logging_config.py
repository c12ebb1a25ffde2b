"""
Shipsarthi - Logging configuration

Single stdout handler (plus optional file handler) on the root logger.
LOG_FORMAT=json emits one JSON object per line and merges any
``extra={...}`` fields into it; LOG_FORMAT=text keeps the classic layout.

Usage:
    from shipsarthi.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Tracked shipment", extra={"waybill": waybill})
"""
import json
import logging
import sys
from datetime import datetime, timezone

from shipsarthi.core.settings import settings

# Attributes present on every LogRecord; anything else came in via extra=
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}

_configured = False


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Plain text with extras appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        ]
        if extras:
            line = f"{line} | {' '.join(extras)}"
        return line


def setup_logging(level: str = None, log_format: str = None, log_file: str = None) -> None:
    """Configure the root logger once. Safe to call repeatedly."""
    global _configured
    if _configured:
        return

    level = (level or settings.LOG_LEVEL).upper()
    log_format = (log_format or settings.LOG_FORMAT).lower()
    log_file = log_file or settings.LOG_FILE

    formatter = JSONFormatter() if log_format == "json" else TextFormatter()

    root = logging.getLogger()
    root.setLevel(level)

    # Drop handlers installed by earlier basicConfig calls to avoid duplicates
    for handler in list(root.handlers):
        root.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    quiet_level = logging.INFO if level == "DEBUG" else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(quiet_level)
    logging.getLogger("apscheduler").setLevel(quiet_level)
    logging.getLogger("urllib3").setLevel(quiet_level)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
