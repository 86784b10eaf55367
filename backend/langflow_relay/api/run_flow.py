"""Run-flow endpoint forwarding chat input to Langflow."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from langflow_relay.core.app_context import get_app_context
from langflow_relay.langflow import LangflowClient, LangflowConfigError, StreamRegistry
from langflow_relay.settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["run-flow"])

INPUT_VALUE_REQUIRED = "inputValue is required"
STREAM_INITIATED = "Stream initiated"

# Component ids of the deployed flow; sent with empty overrides on every run
TWEAK_COMPONENT_IDS = (
    "ChatInput-ak1ID",
    "ParseData-rkrt9",
    "Prompt-I7VVj",
    "ChatOutput-Sq2OG",
    "AstraDB-bSWeq",
    "Agent-mUStn",
    "GroqModel-4QBfY",
    "SplitText-CjTdi",
    "File-iOPsi",
)


def build_tweaks() -> dict[str, dict[str, Any]]:
    return {component_id: {} for component_id in TWEAK_COMPONENT_IDS}


class RunFlowRequest(BaseModel):
    """Inbound chat request; field names follow the JSON the frontend sends.

    Field values are forwarded as sent. Any falsy ``inputValue`` is rejected by
    the handler and ``stream`` is read by truthiness.
    """

    model_config = ConfigDict(populate_by_name=True)

    input_value: Any = Field(default=None, alias="inputValue")
    input_type: Any = Field(default="chat", alias="inputType")
    output_type: Any = Field(default="chat", alias="outputType")
    stream: Any = Field(default=False)


def _on_update(data: Any) -> None:
    chunk = data.get("chunk") if isinstance(data, dict) else data
    logger.info("Received: %s", chunk)


def _on_close(message: str) -> None:
    logger.info("Stream Closed: %s", message)


def _on_error(error: Any) -> None:
    logger.warning("Stream Error: %s", error)


def _build_client(settings: Settings, streams: StreamRegistry) -> LangflowClient:
    missing = settings.missing_langflow_settings()
    if missing:
        raise LangflowConfigError(missing)
    return LangflowClient(
        settings.base_url,
        settings.application_token or "",
        timeout=settings.langflow_timeout_seconds,
        streams=streams,
    )


@router.post("/run-flow", response_model=None)
def run_flow(
    request: Request,
    req: RunFlowRequest | None = None,
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Run the configured flow and return its text output, or acknowledge a stream."""
    if req is None or not req.input_value:
        return JSONResponse(status_code=400, content={"error": INPUT_VALUE_REQUIRED})

    stream = bool(req.stream)
    try:
        client = _build_client(settings, get_app_context(request.app).streams)
        response = client.run_flow(
            settings.flow_id or "",
            settings.langflow_id or "",
            req.input_value,
            req.input_type or "chat",
            req.output_type or "chat",
            build_tweaks(),
            stream,
            on_update=_on_update,
            on_close=_on_close,
            on_error=_on_error,
            suppress_errors=False,
        )

        if not stream and response is not None and response.has_outputs():
            return JSONResponse(content={"success": True, "output": response.message_text()})
        return JSONResponse(content={"success": True, "message": STREAM_INITIATED})
    except Exception as e:
        logger.exception("Error in /run-flow: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})
