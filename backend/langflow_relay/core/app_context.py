from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

from langflow_relay.langflow.streaming import StreamRegistry

if TYPE_CHECKING:
    from fastapi import FastAPI


@dataclass(slots=True)
class AppContext:
    streams: StreamRegistry = field(default_factory=StreamRegistry)


def set_app_context(app: FastAPI, ctx: AppContext) -> None:
    app.state.ctx = ctx


def get_app_context(app: FastAPI) -> AppContext:
    return cast("AppContext", app.state.ctx)
