import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger.json import JsonFormatter
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .config import settings

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


class EventJsonFormatter(JsonFormatter):
    """JSON line per record; ``extra`` fields passed to the logger become top-level keys."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["ts"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        request_id = _request_id.get()
        if request_id:
            log_record["request_id"] = request_id


def configure_logging() -> None:
    root = logging.getLogger()
    if getattr(root, "_campsite_configured", False):
        return
    handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        handler.setFormatter(EventJsonFormatter("%(message)s", json_default=str))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root._campsite_configured = True  # type: ignore[attr-defined]


def log_event(event: str, **fields: Any) -> None:
    logging.getLogger("campsite").info(event, extra={"event": event, **fields})


def log_warning(event: str, **fields: Any) -> None:
    logging.getLogger("campsite").warning(event, extra={"event": event, **fields})


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = _request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(token)
        response.headers["X-Request-ID"] = request_id
        return response
