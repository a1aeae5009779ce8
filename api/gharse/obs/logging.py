import json
import logging
import re
from datetime import datetime
from typing import Any

from ..middlewares.request_id import request_id_ctx

EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+", re.I)
PHONE_RE = re.compile(r"(?<!\d)(?:\+?91[\s-]?)?\d{10}(?!\d)")


def _redact_pii(text: str) -> str:
    """Replace emails and phone numbers with ***."""
    text = EMAIL_RE.sub("***", text)
    text = PHONE_RE.sub("***", text)
    return text


class RequestIdFilter(logging.Filter):
    """Attach request id from context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.req_id = request_id_ctx.get(None)
        return True


class JsonFormatter(logging.Formatter):
    """Render logs as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        msg = _redact_pii(record.getMessage())
        data: dict[str, Any] = {
            "ts": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "req_id": getattr(record, "req_id", None),
            "route": getattr(record, "route", None),
            "status": getattr(record, "status", None),
            "latency_ms": getattr(record, "latency_ms", None),
            "order_id": getattr(record, "order_id", None),
            "msg": msg,
        }
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)
        return json.dumps(data)


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logger with JSON formatting."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
