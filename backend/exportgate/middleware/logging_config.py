"""
Logging configuration.

`configure_logging` installs either the plain text format used in
development or a JSON formatter that emits one object per line with
timestamp, level, logger, message and request_id, plus duration_ms when
a log call passes it via `extra` and the shipment id of the current request.
"""

import json
import logging
from datetime import datetime, timezone

from exportgate.middleware.request_context import get_request_id, get_shipment_id

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
        }

        if hasattr(record, "duration_ms"):
            log_entry["duration_ms"] = record.duration_ms
        shipment_id = getattr(record, "shipment_id", None) or get_shipment_id()
        if shipment_id:
            log_entry["shipment_id"] = shipment_id

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(log_level: str = "INFO", fmt: str = "text") -> None:
    """Replace the root logger's handlers with a single stream handler."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
