from __future__ import annotations

from fastapi import APIRouter

from langflow_relay.api.run_flow import router as run_flow_router

# Routes are served at the root; the frontend posts to /run-flow directly
api_router = APIRouter()

api_router.include_router(run_flow_router)
