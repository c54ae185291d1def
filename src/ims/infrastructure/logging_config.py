"""Logging setup for the CLI and the relay process.

Either plain text for terminals or one JSON object per line for log
shippers. Structured fields are passed with ``extra={"extra_fields": {...}}``.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per record."""

    def __init__(self, service_name: str = "ims") -> None:
        super().__init__()
        self._service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service_name,
            "thread": record.threadName,
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_obj["custom"] = record.extra_fields

        return json.dumps(log_obj, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Replace root handlers with a single stderr handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        StructuredFormatter() if json_format else logging.Formatter(TEXT_FORMAT)
    )
    root_logger.addHandler(handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
