"""Logging setup for the runtime.

Records are written as ``key=value`` lines. Two context variables are stamped
onto every record: the id of the HTTP request being served and the id of the
bot whose event is being processed. Background processing that outlives the
request keeps the bot id, so per-bot activity can be followed in the output.
"""

from __future__ import annotations

import logging
import logging.config
import os
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
bot_id_ctx_var: ContextVar[str | None] = ContextVar("bot_id", default=None)

# Chatty third-party loggers kept at WARNING unless LOG_LEVEL is DEBUG
_QUIET_LOGGERS = ("urllib3", "httpx", "uvicorn.access")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx_var.get() or "-"
        record.bot_id = bot_id_ctx_var.get() or "-"
        return True


def _build_config(log_level: str) -> dict[str, Any]:
    quiet_level = log_level if log_level == "DEBUG" else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"context": {"()": ContextFilter}},
        "formatters": {
            "kv": {
                "format": (
                    "ts=%(asctime)s level=%(levelname)s logger=%(name)s "
                    "request_id=%(request_id)s bot_id=%(bot_id)s msg=%(message)s"
                ),
            }
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "kv",
                "filters": ["context"],
            }
        },
        "loggers": {name: {"level": quiet_level} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["stdout"], "level": log_level},
    }


def setup_logging(level: str | None = None) -> None:
    """Configure root logging; ``level`` defaults to ``LOG_LEVEL`` (INFO)."""
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(_build_config(log_level))


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of each HTTP request.

    An incoming ``X-Request-ID`` is reused; otherwise a UUID4 is minted. The id
    is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_ctx_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = [
    "ContextFilter",
    "RequestIdMiddleware",
    "bot_id_ctx_var",
    "request_id_ctx_var",
    "setup_logging",
]
