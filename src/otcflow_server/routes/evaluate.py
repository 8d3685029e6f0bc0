"""Evaluation endpoint - run a pathway against an intake record."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from otcflow_rules.engine import PathwayEngine
from otcflow_rules.models import EvaluationResult, Intake

from otcflow_server.dependencies import get_engine

router = APIRouter(tags=["evaluate"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class EvaluateRequest(BaseModel):
    """Request body for ``POST /evaluate``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rule_pack_id: str | None = None
    intake: Intake = Field(default_factory=Intake)


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/evaluate")
def evaluate(
    body: EvaluateRequest,
    engine: PathwayEngine = Depends(get_engine),
) -> EvaluationResult:
    """Evaluate the intake and return outcome, trace and consultation note.

    Missing fields produce an ``incomplete`` result, not an error.  A pack
    with uninterpretable logic returns 422.
    """
    return engine.evaluate(body.rule_pack_id, body.intake)
