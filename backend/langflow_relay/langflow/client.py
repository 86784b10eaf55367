from __future__ import annotations

import logging
from typing import Any

import requests

from .errors import ShapeError, TransportError, UpstreamError
from .models import RunResponse
from .streaming import (
    CloseCallback,
    ErrorCallback,
    StreamHandle,
    StreamRegistry,
    UpdateCallback,
)

logger = logging.getLogger(__name__)

INITIATION_ERROR_MESSAGE = "Error initiating session"


def _noop(_value: Any) -> None:
    return None


class LangflowClient:
    """Client for the Langflow flow execution API.

    Holds no per-call state: every method builds its request from its
    arguments and returns the parsed upstream response.
    """

    def __init__(
        self,
        base_url: str,
        application_token: str,
        *,
        timeout: float = 60.0,
        streams: StreamRegistry | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._application_token = application_token
        self._timeout = timeout
        self._streams = streams

    def send(
        self,
        endpoint_path: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST ``body`` as JSON to ``base_url + endpoint_path`` and return the decoded body."""
        request_headers = dict(headers or {})
        request_headers.setdefault("Content-Type", "application/json")
        # Always our token, whatever the caller passed
        for name in [h for h in request_headers if h.lower() == "authorization"]:
            del request_headers[name]
        request_headers["Authorization"] = f"Bearer {self._application_token}"

        url = f"{self.base_url}{endpoint_path}"
        try:
            response = requests.post(
                url, json=body, headers=request_headers, timeout=self._timeout
            )
        except requests.RequestException as e:
            logger.error("Request Error: %s", e)
            raise TransportError(e) from e

        if not response.ok:
            error = UpstreamError(response.status_code, response.reason, _response_body(response))
            logger.error("Request Error: %s", error)
            raise error

        return _response_body(response)

    def initiate_session(
        self,
        flow_id: str,
        langflow_id: str,
        input_value: str,
        input_type: str = "chat",
        output_type: str = "chat",
        stream: bool = False,
        tweaks: dict[str, dict[str, Any]] | None = None,
    ) -> RunResponse:
        endpoint = f"/lf/{langflow_id}/api/v1/run/{flow_id}?stream={str(bool(stream)).lower()}"
        body = {
            "input_value": input_value,
            "input_type": input_type,
            "output_type": output_type,
            "tweaks": tweaks if tweaks is not None else {},
        }
        return RunResponse.parse(self.send(endpoint, body))

    def open_stream(
        self,
        stream_url: str,
        on_update: UpdateCallback,
        on_close: CloseCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        """Start consuming ``stream_url`` in the background and return its handle."""
        handle = StreamHandle(
            stream_url,
            on_update,
            on_close,
            on_error,
            connect_timeout=self._timeout,
            registry=self._streams,
        )
        return handle.start()

    def run_flow(
        self,
        flow_id_or_name: str,
        langflow_id: str,
        input_value: str,
        input_type: str = "chat",
        output_type: str = "chat",
        tweaks: dict[str, dict[str, Any]] | None = None,
        stream: bool = False,
        on_update: UpdateCallback | None = None,
        on_close: CloseCallback | None = None,
        on_error: ErrorCallback | None = None,
        *,
        suppress_errors: bool = True,
    ) -> RunResponse | None:
        """Initiate a run and, when streaming, attach to the returned stream URL.

        The stream is not awaited. Initiation failures are reported once through
        ``on_error``; they are swallowed (returning ``None``) unless
        ``suppress_errors`` is False, in which case the caught error is re-raised.
        A streamed run whose body cannot be read has no stream to attach to, so
        its ``ShapeError`` is reported and swallowed either way.
        """
        on_update = on_update or _noop
        on_close = on_close or _noop
        on_error = on_error or _noop

        try:
            init_response = self.initiate_session(
                flow_id_or_name,
                langflow_id,
                input_value,
                input_type,
                output_type,
                stream,
                tweaks,
            )
        except Exception as e:
            logger.error("Error running flow: %s", e)
            on_error(INITIATION_ERROR_MESSAGE)
            if suppress_errors or (stream and isinstance(e, ShapeError)):
                return None
            raise

        logger.info("Init Response: %s", init_response.model_dump(exclude_none=True))
        stream_url = init_response.stream_url() if stream else None
        if stream_url:
            logger.info("Streaming from: %s", stream_url)
            self.open_stream(stream_url, on_update, on_close, on_error)
        return init_response


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
