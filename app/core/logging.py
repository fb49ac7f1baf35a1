"""IDEMFLOW — Structured JSON Logging.

One JSON object per line on stdout. Ingestion code passes request context via
``extra=``; only the keys in ``CONTEXT_FIELDS`` are emitted.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from enum import Enum
from app.config import settings

SERVICE_NAME = "idemflow"

CONTEXT_FIELDS = ("fingerprint", "client_id", "outcome", "status_code", "duration_ms")


def _utc_millis(created: float) -> str:
    """Record time in the same shape as canonical event timestamps."""
    ts = datetime.fromtimestamp(created, tz=timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float):
        return round(value, 3)
    return value


class JSONFormatter(logging.Formatter):
    """Ingestion log lines, keyed by fingerprint where one is known."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": _utc_millis(record.created),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_entry[key] = _plain(getattr(record, key))
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


def get_logger(name: str) -> logging.Logger:
    """``idemflow.<name>`` logger writing JSON lines to stdout."""
    logger = logging.getLogger(f"{SERVICE_NAME}.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger
