"""Intake and evaluation result models - the contract between the engine and callers.

``Intake`` accepts raw values as typed by a clinician or copied from a
suggestion ("yes", "28", ["a", "a"]); the engine normalises them per
question type before any logic runs.

``EvaluationResult`` is recomputed wholesale on every intake change.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PatientDetails(BaseModel):
    """Patient facts.  ``pregnant`` is tri-state: yes / no / unknown."""

    model_config = ConfigDict(extra="ignore")

    age: Any = None
    sex: Any = ""
    pregnant: Any = None
    postcode: Any = ""


class Intake(BaseModel):
    """Patient record plus answers keyed by question id."""

    patient: PatientDetails = Field(default_factory=PatientDetails)
    answers: dict[str, Any] = Field(default_factory=dict)


class TraceEntry(BaseModel):
    """One line of the decision trace (``pass``, ``fail``, ``info``, ...)."""

    status: str
    label: str


class MissingField(BaseModel):
    """A required field that has no usable value."""

    id: str
    label: str
    reason: Optional[str] = None


class EvaluationResult(BaseModel):
    """Recommendation, trace and documentation for one evaluation.

    ``warnings`` and ``actions`` are de-duplicated by trimmed text while
    keeping first-seen order.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    outcome: Literal["incomplete", "refer", "advise", "supply"]
    urgency: str = "routine"
    headline: str = ""
    summary: str = ""
    trace: list[TraceEntry] = []
    warnings: list[str] = []
    actions: list[str] = []
    safety_net: list[str] = []
    supply: Optional[dict[str, Any]] = None
    referral: Optional[dict[str, Any]] = None
    documentation: Optional[str] = None
    governance: Optional[dict[str, str]] = None
    missing: list[MissingField] = []
