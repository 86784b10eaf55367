"""
Langflow flow execution API client.

    from langflow_relay.langflow import LangflowClient, StreamRegistry

    client = LangflowClient(base_url, token, streams=StreamRegistry())
    response = client.run_flow(flow_id, langflow_id, "Hello!")
"""

from __future__ import annotations

from .client import INITIATION_ERROR_MESSAGE, LangflowClient
from .errors import (
    LangflowConfigError,
    LangflowError,
    ShapeError,
    StreamError,
    TransportError,
    UpstreamError,
)
from .models import ComponentOutput, RunOutput, RunResponse
from .streaming import (
    CLOSE_MESSAGE,
    SSEEvent,
    StreamHandle,
    StreamRegistry,
    iter_sse_events,
    iter_sse_lines,
)

__all__ = [
    "CLOSE_MESSAGE",
    "INITIATION_ERROR_MESSAGE",
    "ComponentOutput",
    "LangflowClient",
    "LangflowConfigError",
    "LangflowError",
    "RunOutput",
    "RunResponse",
    "SSEEvent",
    "ShapeError",
    "StreamError",
    "StreamHandle",
    "StreamRegistry",
    "TransportError",
    "UpstreamError",
    "iter_sse_events",
    "iter_sse_lines",
]
