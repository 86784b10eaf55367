"""Typed model of the Langflow ``/run`` response.

Both the stream URL and the chat message live on the same component output
object, so one schema covers streaming and non-streaming runs::

    {
      "session_id": "...",
      "outputs": [
        {
          "inputs": {...},
          "outputs": [
            {
              "artifacts": {"stream_url": "..."},
              "outputs": {"message": {"message": {"text": "..."}}},
              "results": {...},
              "messages": [...]
            }
          ]
        }
      ]
    }

Only the path an accessor reads is validated, so a malformed sibling
component does not affect the first one. Unknown fields are kept
(``extra="allow"``) because Langflow adds fields between releases.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ShapeError

COMPONENT_PATH = "outputs[0].outputs[0]"


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="allow")


_M = TypeVar("_M", bound=_UpstreamModel)


def _validate(model: type[_M], data: Any, path: str) -> _M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ShapeError(f"Unexpected Langflow response shape at {path}: {e}", path=path) from e


class MessageBody(_UpstreamModel):
    text: str | None = None


class MessageEnvelope(_UpstreamModel):
    message: MessageBody | None = None


class ComponentOutputs(_UpstreamModel):
    message: MessageEnvelope | None = None


class Artifacts(_UpstreamModel):
    stream_url: str | None = None


class ComponentOutput(_UpstreamModel):
    # Validated into Artifacts / ComponentOutputs by the accessor that reads them
    results: Any = None
    artifacts: Any = None
    outputs: Any = None
    messages: Any = None


class RunOutput(_UpstreamModel):
    inputs: Any = None
    outputs: list[Any] | None = None


class RunResponse(_UpstreamModel):
    session_id: Any = None
    outputs: Any = None

    @classmethod
    def parse(cls, data: Any) -> RunResponse:
        """Wrap a decoded JSON body; only a non-object body is rejected here."""
        if not isinstance(data, dict):
            raise ShapeError(
                f"Expected a JSON object from Langflow, got {type(data).__name__}", path="$"
            )
        return cls.model_validate(data)

    def has_outputs(self) -> bool:
        return bool(self.outputs)

    def first_component(self) -> ComponentOutput:
        if not self.outputs:
            raise ShapeError("Langflow response has no outputs", path="outputs[0]")
        if not isinstance(self.outputs, list):
            raise ShapeError("Langflow response outputs is not a list", path="outputs")
        flow_output = _validate(RunOutput, self.outputs[0], "outputs[0]")
        if not flow_output.outputs:
            raise ShapeError("First flow output has no component outputs", path=COMPONENT_PATH)
        return _validate(ComponentOutput, flow_output.outputs[0], COMPONENT_PATH)

    def stream_url(self) -> str | None:
        """Return the stream URL of the first component output, if any."""
        try:
            component = self.first_component()
            if component.artifacts is None:
                return None
            artifacts = _validate(Artifacts, component.artifacts, f"{COMPONENT_PATH}.artifacts")
        except ShapeError:
            return None
        return artifacts.stream_url or None

    def message_text(self) -> str:
        """Return the chat message text of the first component output."""
        component = self.first_component()
        base = f"{COMPONENT_PATH}.outputs"
        if component.outputs is None:
            raise ShapeError("Component output has no outputs", path=base)
        outputs = _validate(ComponentOutputs, component.outputs, base)
        if outputs.message is None:
            raise ShapeError("Component output has no message", path=f"{base}.message")
        if outputs.message.message is None:
            raise ShapeError("Message envelope has no message", path=f"{base}.message.message")
        text = outputs.message.message.text
        if text is None:
            raise ShapeError("Message has no text", path=f"{base}.message.message.text")
        return text
