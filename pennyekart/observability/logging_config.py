from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from flask import Flask, g, has_request_context, request, session

from pennyekart.config import Config

_CONTEXT_FIELDS = ("request_id", "path", "method", "user_id", "is_admin")


class RequestContextFilter(logging.Filter):
    """Attach the current request (if any) to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context: Dict[str, Any] = dict.fromkeys(_CONTEXT_FIELDS)
        if has_request_context():
            context.update(
                request_id=getattr(g, "request_id", None),
                path=request.path,
                method=request.method,
                user_id=session.get("user_id"),
                is_admin=bool(session.get("is_admin")),
            )
        for name, value in context.items():
            setattr(record, name, value)
        return True


class JsonFormatter(logging.Formatter):
    # Keys passed through `extra=` that should survive into the JSON line
    passthrough = ("flash_sale_id", "line_item_id", "bucket", "godown_count", "row_count")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS + self.passthrough:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(app: Flask) -> None:
    """Configure global logging once, respecting Config toggles."""

    if not Config.STRUCTURED_LOGS_ENABLED:
        logging.basicConfig(level=Config.LOG_LEVEL)
        app.logger.setLevel(Config.LOG_LEVEL)
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(Config.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())

    # Replace rather than append so reloads do not duplicate lines
    root_logger.handlers = [handler]
    app.logger.handlers = [handler]

    app.logger.debug("Structured logging configured.")


def ensure_request_id() -> str:
    """Return the active request id, generating one if needed."""
    if getattr(g, "request_id", None):
        return g.request_id
    incoming = request.headers.get(Config.REQUEST_ID_HEADER)
    g.request_id = incoming or str(uuid4())
    return g.request_id
