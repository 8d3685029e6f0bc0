"""Global exception handlers - map SDK exceptions to HTTP status codes.

  RulePackTrustError   → 503  packs could not be loaded from a verified source
  RuleAuthoringError   → 422  the selected pack contains logic we cannot run
  KeyError             → 404  unknown pack id
  anything else        → 500

The raw exception message is logged server-side; the client receives only a
generic description.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# --- Client-safe messages keyed by HTTP status code ---
_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    422: "Rule pack logic could not be evaluated",
    503: "Rule packs unavailable: verification failed",
}


async def trust_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Trust failures: the load was aborted and no unverified pack is served."""
    logger.error("Rule pack trust failure at %s: %s", request.url, exc)
    return JSONResponse(status_code=503, content={"detail": _SAFE_MESSAGES[503]})


async def authoring_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Rule-authoring errors abort the current evaluation only."""
    logger.error("Rule authoring error at %s: %s", request.url, exc)
    return JSONResponse(status_code=422, content={"detail": _SAFE_MESSAGES[422]})


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    """Map ``KeyError`` (unknown pack id) to 404."""
    logger.warning("KeyError at %s: %s", request.url, exc)
    return JSONResponse(status_code=404, content={"detail": _SAFE_MESSAGES[404]})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions - log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
