"""Transcript extraction and suggestion models.

  - Evidence: provenance of a text match and its strength tier
  - FieldExtraction: best-guess value for one field with its confidence
  - TranscriptExtraction: full parser output for one transcript
  - Suggestion: a proposed intake value with accept/dismiss lifecycle
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .intake import MissingField


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Evidence(CamelModel):
    """Why a value was suggested.

    ``terms``/``all_terms`` are only filled for vocabulary matches (sex):
    the hits of the winning group and every hit respectively.
    """

    strength: str
    match: Optional[str] = None
    index: Optional[int] = None
    term: Optional[str] = None
    terms: Optional[list[str]] = None
    all_terms: Optional[list[str]] = None


class FieldExtraction(CamelModel):
    value: Any = None
    confidence: float = 0.0
    evidence: Optional[Evidence] = None


class PackGuess(CamelModel):
    """Best-scoring pack for a transcript."""

    id: str
    complaint_id: str = ""
    confidence: float
    evidence: list[dict[str, Any]] = []


class TranscriptExtraction(CamelModel):
    """Parser output: patient fields, pack guess, answers, gaps and warnings."""

    patient: dict[str, FieldExtraction]
    complaint_id: str = ""
    rule_pack_id: str = ""
    rule_pack_confidence: float = 0.0
    answers: dict[str, FieldExtraction] = {}
    missing: list[MissingField] = []
    warnings: list[str] = []


class Suggestion(CamelModel):
    """A proposed intake value.

    Status moves from ``pending`` to ``applied`` or ``dismissed`` only through
    an explicit user action; ``dismissed`` is terminal.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    target: Literal["patient", "answer"]
    field: str
    value: Any
    confidence: float
    status: Literal["pending", "applied", "dismissed"] = "pending"
