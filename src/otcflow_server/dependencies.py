"""FastAPI dependency injection - provides the registry, loader, engine and parser.

All of them are built once in the lifespan handler and stashed on
``app.state``.
"""

import hmac

from fastapi import Header, HTTPException, Request

from otcflow_rules.engine import PathwayEngine
from otcflow_rules.extraction import TranscriptParser
from otcflow_rules.loader import RulePackLoader
from otcflow_rules.ruleset import RulePackRegistry


def get_registry(request: Request) -> RulePackRegistry:
    """Return the RulePackRegistry singleton from ``app.state``."""
    return request.app.state.registry


def get_loader(request: Request) -> RulePackLoader | None:
    """Return the trust-pipeline loader, or None when packs come from a local directory."""
    return request.app.state.loader


def get_engine(request: Request) -> PathwayEngine:
    return request.app.state.engine


def get_parser(request: Request) -> TranscriptParser:
    return request.app.state.parser


async def require_admin_key(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> None:
    """Validate ``X-Admin-Key`` when ``OTCFLOW_ADMIN_API_KEY`` is configured.

    Returns 401 if the header is missing and 403 if it does not match.
    """
    expected: str | None = request.app.state.settings.admin_api_key
    if not expected:
        return
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="X-Admin-Key header is required")
    # Constant-time comparison to prevent timing side-channels.
    if not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
