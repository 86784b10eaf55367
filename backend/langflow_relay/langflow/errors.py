from __future__ import annotations

import json
from typing import Any


class LangflowError(Exception):
    """Base exception for Langflow client errors."""


class LangflowConfigError(LangflowError):
    """Raised when required Langflow settings are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing configuration: {', '.join(self.missing)}")


class UpstreamError(LangflowError):
    """Raised when the flow execution API answers with a non-success status."""

    def __init__(self, status_code: int, reason: str, body: Any) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"{status_code} {reason} - {_serialize_body(body)}")


class TransportError(LangflowError):
    """Raised when no HTTP response was received (refused, timed out, bad URL)."""

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Transport error: {cause}")


class ShapeError(LangflowError):
    """Raised when an upstream body does not match the expected response model."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class StreamError(LangflowError):
    """Raised (and reported through ``on_error``) for event channel failures."""


def _serialize_body(body: Any) -> str:
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(body)


__all__ = [
    "LangflowConfigError",
    "LangflowError",
    "ShapeError",
    "StreamError",
    "TransportError",
    "UpstreamError",
]
