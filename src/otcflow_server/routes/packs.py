"""Rule pack endpoints - list, inspect and reload verified packs, list complaints.

Packs are read-only; a reload replaces the whole set and only succeeds when
every pack verifies.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, Request

from otcflow_rules.loader import RulePackLoader
from otcflow_rules.models import RulePack
from otcflow_rules.ruleset import RulePackRegistry

from otcflow_server.dependencies import get_loader, get_registry, require_admin_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["packs"])


def _summary(pack: RulePack) -> dict:
    return {
        "id": pack.id,
        "name": pack.name,
        "version": pack.version,
        "complaint": pack.complaint.model_dump() if pack.complaint else None,
        "effectiveFrom": pack.effective_from,
        "lastReviewed": pack.last_reviewed,
        "checksum": pack.source.checksum if pack.source else None,
    }


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/packs")
def list_packs(
    registry: RulePackRegistry = Depends(get_registry),
) -> list[dict]:
    """Return a summary of every loaded pack."""
    return [_summary(pack) for pack in registry.packs]


@router.get("/packs/{pack_id}")
def get_pack(
    pack_id: str,
    registry: RulePackRegistry = Depends(get_registry),
) -> RulePack:
    """Return the full normalised pack (404 if unknown)."""
    return registry.require(pack_id)


@router.post("/packs/reload", dependencies=[Depends(require_admin_key)])
async def reload_packs(
    request: Request,
    registry: RulePackRegistry = Depends(get_registry),
    loader: RulePackLoader | None = Depends(get_loader),
) -> dict:
    """Fetch and verify every pack again.

    Trust failures surface as 503 and leave the current packs in place.
    """
    if loader is not None:
        packs = await loader.reload()
    else:
        pack_dir = Path(request.app.state.pack_dir)
        packs = RulePackRegistry.from_directory(pack_dir).packs
        registry.replace(packs)
    logger.info("Rule packs reloaded: %d", len(packs))
    return {"packs": [pack.id for pack in packs]}


@router.get("/complaints")
def list_complaints(
    registry: RulePackRegistry = Depends(get_registry),
) -> list[dict]:
    """Return complaints with the pathways available for each."""
    return registry.complaint_options()
