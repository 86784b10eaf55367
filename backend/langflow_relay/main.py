from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from langflow_relay.core.app_context import AppContext, get_app_context, set_app_context
from langflow_relay.core.logging import RequestIdMiddleware, configure_logging
from langflow_relay.router import api_router
from langflow_relay.settings import get_settings

configure_logging(debug=get_settings().debug)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Report configuration on startup; close live streams on shutdown."""
    settings = get_settings()
    missing = settings.missing_langflow_settings()
    if missing:
        logger.warning("Langflow settings not configured: %s", ", ".join(missing))
    else:
        logger.info(
            "Langflow relay ready: base_url=%s langflow_id=%s flow_id=%s",
            settings.base_url,
            settings.langflow_id,
            settings.flow_id,
        )

    yield

    closed = get_app_context(app).streams.close_all()
    logger.info("Application shutting down, closed %d live stream(s)", closed)


app = FastAPI(
    title="Langflow Relay API",
    version="0.1.0",
    description="Forwards chat input to a Langflow flow and relays its output",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

set_app_context(app, AppContext())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed bodies keep the same {"error": ...} shape as every other failure
    message = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    logger.warning("Invalid request to %s: %s", request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "ok"


app.include_router(api_router)


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "langflow_relay.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )
