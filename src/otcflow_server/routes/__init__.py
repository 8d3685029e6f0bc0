"""Route registration - mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from otcflow_server.routes.evaluate import router as evaluate_router
from otcflow_server.routes.packs import router as packs_router
from otcflow_server.routes.transcripts import router as transcripts_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(packs_router, prefix=API_PREFIX)
    app.include_router(evaluate_router, prefix=API_PREFIX)
    app.include_router(transcripts_router, prefix=API_PREFIX)
