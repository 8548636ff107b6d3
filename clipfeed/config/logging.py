"""
Structured logging configuration.

Production logs are one JSON object per line. Feed code attaches its own
fields through `extra={...}` (viewer, degraded signal, exclusion decision);
the request middleware binds a request id that every record picks up.
"""
import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

# Bound by the request middleware for the lifetime of one HTTP request
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

CONTEXT_FIELDS = (
    "request_id",
    "viewer_id",
    "signal",
    "reason",
    "exclusion_decision",
)


class RequestContextFilter(logging.Filter):
    """Stamp the current request id onto every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON with feed context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(debug: bool = False) -> None:
    """Install a single stdout handler on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())

    if debug:
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s | %(message)s")
        )
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # Access lines duplicate the request middleware's own summary
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").handlers = [handler]
