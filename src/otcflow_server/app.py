"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that loads rule packs once and builds the engine/parser
  - CORS middleware
  - Global exception handlers (trust → 503, authoring → 422, KeyError → 404)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness checks

The ``cli()`` function is the ``otcflow-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from otcflow_rules.engine import PathwayEngine
from otcflow_rules.errors import RuleAuthoringError, RulePackTrustError
from otcflow_rules.extraction import TranscriptParser
from otcflow_rules.loader import RulePackLoader
from otcflow_rules.ruleset import RulePackRegistry, find_repo_root

from otcflow_server.config import ServerSettings, load_settings
from otcflow_server.errors import (
    authoring_error_handler,
    generic_error_handler,
    key_error_handler,
    trust_error_handler,
)
from otcflow_server.routes import register_routes

logger = logging.getLogger(__name__)


def default_pack_dir() -> Path:
    return find_repo_root() / "rules" / "packs"


# ------------------------------------------------------------------
# Lifespan - runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup.

    Startup:
      1. Load rule packs, through the signed manifest when a rules base URL
         is configured, otherwise from the local pack directory
      2. Build ``PathwayEngine`` and ``TranscriptParser`` over the registry
      3. Stash them on ``app.state`` for dependency injection

    A trust failure at startup is logged and the server starts with no
    packs; ``POST /api/v1/packs/reload`` retries.
    """
    settings: ServerSettings = app.state.settings
    registry = RulePackRegistry()
    loader: RulePackLoader | None = None
    pack_dir = Path(settings.pack_dir) if settings.pack_dir else default_pack_dir()

    if settings.rules_base_url:
        loader = RulePackLoader(
            registry,
            base_url=settings.rules_base_url,
            manifest_path=settings.manifest_path,
            signature_path=settings.signature_path,
            public_key_path=settings.public_key_path,
        )
        try:
            await loader.load()
        except RulePackTrustError as exc:
            logger.error("Rule packs failed verification at startup: %s", exc)
    else:
        registry.replace(RulePackRegistry.from_directory(pack_dir).packs)
        logger.warning("Serving unsigned rule packs from %s", pack_dir)

    app.state.registry = registry
    app.state.loader = loader
    app.state.pack_dir = str(pack_dir)
    app.state.engine = PathwayEngine(registry)
    app.state.parser = TranscriptParser(registry)

    yield

    logger.info("OTC Flow server shutting down")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="OTC Flow API Server",
        description="REST API for OTC pathway evaluation and transcript extraction",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(RulePackTrustError, trust_error_handler)
    app.add_exception_handler(RuleAuthoringError, authoring_error_handler)
    app.add_exception_handler(KeyError, key_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness check - reports how many verified packs are loaded."""
        registry: RulePackRegistry = app.state.registry
        return {"status": "ok" if len(registry) else "degraded", "packs": len(registry)}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn otcflow_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``otcflow-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "otcflow_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
