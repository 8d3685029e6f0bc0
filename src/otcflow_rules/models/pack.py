"""Pydantic models for rule packs.

These models mirror the JSON pack files listed in a signed manifest:

  Document (top level):
    - RulePack: identity, complaint, intake sections, required fields,
      logic, safety netting and provenance
    - Section / Question: the intake form, grouped into sections

  Logic (``logic`` block):
    - DerivedValue: expression evaluated once per evaluation into ``derived``
    - Check: veto gate with pass/fail trace details
    - AdviceRule: non-exclusive rule contributing warnings/actions
    - OutcomeRule: first-match-wins rule producing the final result
    - DefaultRule: fallback when no outcome rule matches

Field names are snake_case in Python and camelCase on the wire
(``effectiveFrom``, ``safetyNetting``, ``durationQuestion``...).  Expressions,
labels and results stay untyped (``Any``) because they are interpreted at
evaluation time by the condition evaluator and template resolver.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PackModel(BaseModel):
    """Base for pack documents: camelCase aliases, immutable once loaded."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# --- Intake form ---

class Question(PackModel):
    """A single intake question.  ``id`` is unique within its pack."""

    id: str
    type: Literal["boolean", "number", "select", "multi_select", "text"]
    label: str
    required: bool = False
    options: Optional[List[Any]] = None
    min: Optional[float] = None
    max: Optional[float] = None


class Section(PackModel):
    """An ordered group of questions."""

    id: str = ""
    title: str = ""
    questions: List[Question] = []


class RequiredFields(PackModel):
    """Required patient fields (``age``, ``sex``...) and question ids."""

    patient: List[str] = []
    answers: List[str] = []


class IntakeRequirements(PackModel):
    required: RequiredFields = RequiredFields()


class Complaint(PackModel):
    """Presenting complaint a pack belongs to (several packs may share one)."""

    id: str
    label: str = ""


# --- Logic ---

class TraceDetail(PackModel):
    """Trace/warning block attached to a rule branch.

    ``label`` and ``warnings`` are templates.  On a check's ``fail`` branch a
    ``result`` turns the check into a veto.
    """

    status: Optional[str] = None
    label: Any = None
    warnings: Any = None
    result: Any = None


class DerivedValue(PackModel):
    id: str
    expression: Any


class Check(PackModel):
    """Hard gate.  ``pass``/``fail`` are reserved words, hence the aliases."""

    id: str = ""
    expression: Any
    pass_: Optional[TraceDetail] = Field(default=None, alias="pass")
    fail: Optional[TraceDetail] = None


class AdviceRule(PackModel):
    id: str = ""
    expression: Any
    trace: Optional[TraceDetail] = None
    warnings: Any = None
    actions: Any = None


class OutcomeTrace(PackModel):
    pass_: Optional[TraceDetail] = Field(default=None, alias="pass")
    fail: Optional[TraceDetail] = None


class OutcomeRule(PackModel):
    id: str = ""
    expression: Any
    trace: Optional[OutcomeTrace] = None
    warnings: Any = None
    actions: Any = None
    result: Any = None


class DefaultRule(PackModel):
    trace: Optional[TraceDetail] = None
    result: Any = None


class PackLogic(PackModel):
    derived: List[DerivedValue] = []
    checks: List[Check] = []
    advice: List[AdviceRule] = []
    outcomes: List[OutcomeRule] = []
    default: Optional[DefaultRule] = None


# --- Transcript hints ---

class KeywordHint(PackModel):
    """Weighted keyword used to guess which pack a transcript belongs to."""

    pattern: str
    weight: float = 1
    strength: str = "weak"


class SymptomCue(PackModel):
    """Regex cue answering a boolean question with ``value`` when it matches."""

    value: str
    pattern: str
    strength: str = "weak"
    skip_negation_check: bool = False


class ExtractionProfile(PackModel):
    """Transcript hints for one pack.

    Packs may declare one under ``extraction``; it overrides a built-in
    profile with the same pack id.  ``complaint_id`` falls back to the
    pack's complaint.
    """

    complaint_id: Optional[str] = None
    keywords: List[KeywordHint] = []
    cues: dict[str, List[SymptomCue]] = {}
    duration_question: Optional[str] = None
    target_sex: Optional[str] = None
    excludes_pregnancy: bool = False


# --- Provenance & document ---

class PackSource(PackModel):
    """Where a pack was loaded from and the checksum it was verified against."""

    path: str
    checksum: Optional[str] = None


class RulePack(PackModel):
    """A normalised, verified rule pack.

    Identified by ``id`` for the whole session; a reload replaces the pack
    object wholesale rather than mutating it.
    """

    id: str
    name: str
    version: str
    effective_from: Optional[str] = None
    last_reviewed: Optional[str] = None
    complaint: Optional[Complaint] = None
    description: str = ""
    inclusion: List[str] = []
    exclusion: List[str] = []
    safety_netting: List[str] = []
    sections: List[Section] = []
    intake: IntakeRequirements = IntakeRequirements()
    logic: PackLogic = PackLogic()
    source: Optional[PackSource] = None
    extraction: Optional[ExtractionProfile] = None

    def questions(self) -> list[Question]:
        """All questions in section order."""
        return [q for section in self.sections for q in section.questions]

    def question_index(self) -> dict[str, Question]:
        """Questions keyed by id, in section order."""
        return {q.id: q for q in self.questions()}

    def required_questions(self) -> list[Question]:
        """Questions flagged ``required`` on the form itself."""
        return [q for q in self.questions() if q.required]

    def governance(self) -> dict[str, str]:
        """Version stamp attached to every evaluation result."""
        return {
            "version": self.version,
            "effectiveFrom": self.effective_from or "unknown",
            "lastReviewed": self.last_reviewed or "unknown",
        }
