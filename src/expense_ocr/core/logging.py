from __future__ import annotations

import contextvars
import json
import logging
import os
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ROOT_LOGGER = "expense_ocr"

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_user_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("user_id", default=None)
_worker_task_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker_task_id", default=None
)

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `event` and `fields` come from `log_event`."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat().replace("+00:00", "Z")
        payload: dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update({k: v for k, v in fields.items() if v is not None})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelNamesMapping().get(
        os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO
    )
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def set_request_context(*, request_id: str | None) -> tuple[contextvars.Token, contextvars.Token]:
    return _request_id.set(request_id), _user_id.set(None)


def reset_request_context(tokens: tuple[contextvars.Token, contextvars.Token]) -> None:
    request_token, user_token = tokens
    _request_id.reset(request_token)
    _user_id.reset(user_token)


def set_user_context(user_id: str | None) -> None:
    _user_id.set(user_id)


def set_task_context(task_id: str | None) -> contextvars.Token:
    return _worker_task_id.set(task_id)


def reset_task_context(token: contextvars.Token) -> None:
    _worker_task_id.reset(token)


def _context_fields(fields: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {
        "request_id": _request_id.get(),
        "user_id": _user_id.get(),
        "worker_task_id": _worker_task_id.get(),
    }
    merged.update(fields)
    return {k: v for k, v in merged.items() if v is not None}


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _context_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _context_fields(fields)})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        tokens = set_request_context(request_id=request_id)
        try:
            response = await call_next(request)
        except Exception:
            log_exception(
                get_logger(__name__),
                "http.request.error",
                method=request.method,
                path=request.url.path,
            )
            raise
        finally:
            reset_request_context(tokens)
        response.headers["x-request-id"] = request_id
        return response


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
