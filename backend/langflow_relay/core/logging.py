"""Relay log setup.

Every record is written to stdout as ``key=value`` pairs and tagged with the
id of the HTTP request it belongs to. Stream threads run in a copy of the
opening request's context, so their records keep that request's id after the
response has been sent.
"""

from __future__ import annotations

import logging
import logging.config
import os
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware  # type: ignore[import-not-found]

REQUEST_ID_HEADER = "X-Request-ID"
NO_REQUEST_ID = "-"

# Record attributes rendered by the formatter, in output order
LOG_FIELDS = (
    ("time", "asctime"),
    ("level", "levelname"),
    ("logger", "name"),
    ("thread", "threadName"),
    ("request_id", "request_id"),
    ("message", "message"),
)

# Third-party loggers that are too chatty at the relay's level
QUIET_LOGGERS = {"urllib3": "WARNING"}

request_id_var: ContextVar[str | None] = ContextVar("relay_request_id", default=None)


def current_request_id() -> str:
    return request_id_var.get() or NO_REQUEST_ID


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id()
        return True


def logging_config(level: str) -> dict[str, Any]:
    line = " ".join(f"{key}=%({attr})s" for key, attr in LOG_FIELDS)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": {"relay": {"format": line}},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "relay",
                "filters": ["request_context"],
                "level": level,
            }
        },
        "loggers": {name: {"level": quiet} for name, quiet in QUIET_LOGGERS.items()},
        "root": {"handlers": ["stdout"], "level": level},
    }


def configure_logging(level: str | None = None, *, debug: bool = False) -> str:
    """Install the relay's logging config and return the level in effect.

    An explicit ``level`` wins, then ``DEBUG`` mode, then ``LOG_LEVEL``.
    """
    if level is None:
        level = "DEBUG" if debug else os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()
    logging.config.dictConfig(logging_config(level))
    return level


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of each request and echo it back.

    A non-blank ``X-Request-ID`` from the caller is reused; otherwise a uuid4
    is generated.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = [
    "REQUEST_ID_HEADER",
    "RequestContextFilter",
    "RequestIdMiddleware",
    "configure_logging",
    "current_request_id",
    "logging_config",
    "request_id_var",
]
