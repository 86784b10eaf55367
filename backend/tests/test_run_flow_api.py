"""Tests for the /run-flow endpoint with the Langflow API faked out."""

from __future__ import annotations

from typing import Any

import pytest
import requests
from fastapi.testclient import TestClient

from langflow_relay.api.run_flow import TWEAK_COMPONENT_IDS
from langflow_relay.langflow import LangflowClient
from langflow_relay.main import app
from langflow_relay.settings import Settings, get_settings
from tests.langflow_test_utils import (
    FakeResponse,
    RecordingPost,
    stream_run_response,
    text_run_response,
)


def _settings(**overrides: Any) -> Settings:
    values = {
        "flow_id": "flow-123",
        "langflow_id": "lf-456",
        "langflow_base_url": "https://api.langflow.example.com/",
        "application_token": "AstraCS:token",
        "langflow_timeout_seconds": 5,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return _settings()


@pytest.fixture
def client(settings: Settings):
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def opened_streams(monkeypatch) -> list[tuple[Any, ...]]:
    """Capture stream openings instead of starting background threads."""
    opened: list[tuple[Any, ...]] = []

    def _open_stream(self: LangflowClient, stream_url: str, *callbacks: Any) -> None:
        opened.append((stream_url, *callbacks))

    monkeypatch.setattr(LangflowClient, "open_stream", _open_stream)
    return opened


def _patch_post(monkeypatch, post: RecordingPost) -> RecordingPost:
    monkeypatch.setattr("langflow_relay.langflow.client.requests.post", post)
    return post


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"inputValue": None},
        {"inputValue": ""},
        {"inputValue": 0},
        {"inputValue": False},
        {"inputValue": []},
        {"stream": True},
    ],
)
def test_missing_input_value_returns_400_without_upstream_call(client, monkeypatch, body):
    post = _patch_post(monkeypatch, RecordingPost())

    resp = client.post("/run-flow", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"error": "inputValue is required"}
    assert post.calls == []


def test_absent_body_returns_400(client, monkeypatch):
    post = _patch_post(monkeypatch, RecordingPost())

    resp = client.post("/run-flow")

    assert resp.status_code == 400
    assert resp.json() == {"error": "inputValue is required"}
    assert post.calls == []


def test_non_streaming_returns_output_text(client, monkeypatch, opened_streams):
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("Hi there!")))
    )

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "output": "Hi there!"}
    assert opened_streams == []
    call = post.calls[0]
    assert call["url"] == (
        "https://api.langflow.example.com/lf/lf-456/api/v1/run/flow-123?stream=false"
    )
    assert call["json"]["input_value"] == "hello"
    assert call["json"]["input_type"] == "chat"
    assert call["json"]["output_type"] == "chat"
    assert call["timeout"] == 5


def test_request_fields_are_forwarded(client, monkeypatch):
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("ok")))
    )

    client.post(
        "/run-flow",
        json={"inputValue": "hello", "inputType": "text", "outputType": "any"},
    )

    assert post.calls[0]["json"]["input_type"] == "text"
    assert post.calls[0]["json"]["output_type"] == "any"


def test_authorization_header_uses_configured_token(client, monkeypatch):
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("ok")))
    )

    client.post(
        "/run-flow",
        json={"inputValue": "hello"},
        headers={"Authorization": "Bearer caller-token"},
    )

    headers = post.calls[0]["headers"]
    assert headers["Authorization"] == "Bearer AstraCS:token"
    assert headers["Content-Type"] == "application/json"


def test_tweaks_are_the_fixed_component_mapping(client, monkeypatch):
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("ok")))
    )

    client.post("/run-flow", json={"inputValue": "hello", "tweaks": {"Other-1": {"x": 1}}})
    client.post("/run-flow", json={"inputValue": "again"})

    expected = {
        "ChatInput-ak1ID": {},
        "ParseData-rkrt9": {},
        "Prompt-I7VVj": {},
        "ChatOutput-Sq2OG": {},
        "AstraDB-bSWeq": {},
        "Agent-mUStn": {},
        "GroqModel-4QBfY": {},
        "SplitText-CjTdi": {},
        "File-iOPsi": {},
    }
    assert len(TWEAK_COMPONENT_IDS) == 9
    assert [call["json"]["tweaks"] for call in post.calls] == [expected, expected]


def test_streaming_returns_stream_initiated_and_opens_stream(client, monkeypatch, opened_streams):
    url = "https://api.langflow.example.com/api/v1/build/run-1/stream"
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=stream_run_response(url)))
    )

    resp = client.post("/run-flow", json={"inputValue": "hello", "stream": True})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Stream initiated"}
    assert post.calls[0]["url"].endswith("?stream=true")
    assert [opened[0] for opened in opened_streams] == [url]


@pytest.mark.parametrize(
    "upstream_body",
    [
        text_run_response("ignored"),
        {"outputs": []},
        {"outputs": [{"outputs": []}]},
        {"outputs": "nope"},
        {"outputs": [{"outputs": [{"artifacts": "x"}]}]},
        ["not", "an", "object"],
    ],
)
def test_streaming_acknowledges_regardless_of_upstream_shape(
    client, monkeypatch, opened_streams, upstream_body
):
    _patch_post(monkeypatch, RecordingPost(FakeResponse(json_body=upstream_body)))

    resp = client.post("/run-flow", json={"inputValue": "hello", "stream": True})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Stream initiated"}
    assert opened_streams == []


def test_streaming_acknowledges_unparseable_upstream_body(client, monkeypatch, opened_streams):
    _patch_post(monkeypatch, RecordingPost(FakeResponse(text="<html>ok</html>")))

    resp = client.post("/run-flow", json={"inputValue": "hello", "stream": True})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Stream initiated"}
    assert opened_streams == []


def test_malformed_sibling_component_still_returns_first_output(client, monkeypatch):
    body = text_run_response("Hello")
    body["outputs"][0]["outputs"].append({"artifacts": "not-an-object", "outputs": [1]})
    _patch_post(monkeypatch, RecordingPost(FakeResponse(json_body=body)))

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "output": "Hello"}


def test_wrongly_typed_outputs_without_stream_returns_500(client, monkeypatch):
    _patch_post(monkeypatch, RecordingPost(FakeResponse(json_body={"outputs": "nope"})))

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Langflow response outputs is not a list"}


def test_empty_outputs_without_stream_is_acknowledged(client, monkeypatch):
    _patch_post(monkeypatch, RecordingPost(FakeResponse(json_body={"outputs": []})))

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Stream initiated"}


def test_broken_output_shape_returns_500(client, monkeypatch):
    _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body={"outputs": [{"outputs": []}]}))
    )

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "First flow output has no component outputs"}


def test_upstream_error_returns_500_with_status_and_body(client, monkeypatch):
    response = FakeResponse(status_code=502, reason="Bad Gateway", json_body={"detail": "bad flow"})
    _patch_post(monkeypatch, RecordingPost(response))

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 500
    error = resp.json()["error"]
    assert "502" in error
    assert '{"detail":"bad flow"}' in error


def test_transport_error_returns_500(client, monkeypatch):
    _patch_post(monkeypatch, RecordingPost(exc=requests.ConnectionError("Connection refused")))

    resp = client.post("/run-flow", json={"inputValue": "hello"})

    assert resp.status_code == 500
    assert resp.json()["error"].startswith("Transport error:")
    assert "Connection refused" in resp.json()["error"]


def test_missing_configuration_returns_500(monkeypatch):
    post = _patch_post(monkeypatch, RecordingPost())
    app.dependency_overrides[get_settings] = lambda: _settings(
        flow_id=None, application_token=""
    )
    try:
        resp = TestClient(app).post("/run-flow", json={"inputValue": "hello"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert resp.json() == {"error": "Missing configuration: FLOW_ID, APPLICATION_TOKEN"}
    assert post.calls == []


def test_malformed_json_returns_400_error_shape(client):
    resp = client.post(
        "/run-flow", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert resp.status_code == 400
    assert "error" in resp.json()


def test_non_object_body_returns_400_error_shape(client, monkeypatch):
    post = _patch_post(monkeypatch, RecordingPost())

    resp = client.post("/run-flow", json=[1, 2])

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert post.calls == []


def test_field_values_are_forwarded_as_sent(client, monkeypatch):
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("ok")))
    )

    resp = client.post("/run-flow", json={"inputValue": "hi", "inputType": 5, "outputType": ""})

    assert resp.status_code == 200
    assert post.calls[0]["json"]["input_type"] == 5
    assert post.calls[0]["json"]["output_type"] == "chat"


def test_truthy_non_boolean_stream_is_treated_as_streaming(client, monkeypatch, opened_streams):
    post = _patch_post(
        monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("ignored")))
    )

    resp = client.post("/run-flow", json={"inputValue": "hi", "stream": "maybe"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Stream initiated"}
    assert post.calls[0]["url"].endswith("?stream=true")


def test_request_id_is_echoed(client, monkeypatch):
    _patch_post(monkeypatch, RecordingPost(FakeResponse(json_body=text_run_response("ok"))))

    resp = client.post(
        "/run-flow", json={"inputValue": "hello"}, headers={"X-Request-ID": "req-42"}
    )

    assert resp.headers["X-Request-ID"] == "req-42"


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.text == "ok"


def test_shutdown_closes_live_streams():
    from langflow_relay.core.app_context import get_app_context

    closed: list[str] = []

    class _Handle:
        stream_url = "https://api.langflow.example.com/stream/1"

        def close(self) -> None:
            closed.append(self.stream_url)

        def join(self, timeout: float | None = None) -> bool:
            return True

    handle = _Handle()
    streams = get_app_context(app).streams
    with TestClient(app):
        streams.add(handle)  # type: ignore[arg-type]
    streams.discard(handle)  # type: ignore[arg-type]

    assert closed == [handle.stream_url]
