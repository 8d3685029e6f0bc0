"""Intake normalisation - coerce raw form/suggestion values into canonical types.

Every write into an intake and every evaluation passes values through these
helpers, so downstream logic only ever sees:

  boolean       → True / False / None
  number        → finite float or None
  select        → non-empty string or None ("unknown" counts as no answer)
  multi_select  → ordered list of distinct, trimmed, non-empty strings
  text          → unchanged

All helpers are idempotent.
"""

from __future__ import annotations

import math
from typing import Any, Mapping

from otcflow_rules.models.intake import Intake
from otcflow_rules.models.pack import Question, RulePack


def normalize_boolean(value: Any) -> bool | None:
    if value is True or value in ("true", "yes"):
        return True
    if value is False or value in ("false", "no"):
        return False
    return None


def normalize_number(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_multi_select(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    entries = value if isinstance(value, (list, tuple)) else [value]
    seen: set[str] = set()
    normalized: list[str] = []
    for entry in entries:
        text = "" if entry is None else str(entry).strip()
        if text and text not in seen:
            seen.add(text)
            normalized.append(text)
    return normalized


def normalize_select(value: Any) -> str | None:
    if value is None or value == "" or value == "unknown":
        return None
    return str(value)


def normalize_answer(question: Question | None, value: Any) -> Any:
    """Normalise one answer according to its question type.

    Answers to questions the pack does not declare pass through unchanged.
    """
    if question is None:
        return value
    if question.type == "boolean":
        return normalize_boolean(value)
    if question.type == "number":
        return normalize_number(value)
    if question.type == "select":
        return normalize_select(value)
    if question.type == "multi_select":
        return normalize_multi_select(value)
    return value


def normalize_patient(patient: Mapping[str, Any]) -> dict[str, Any]:
    sex = patient.get("sex")
    return {
        "age": normalize_number(patient.get("age")),
        "sex": str(sex).lower() if sex else "",
        "pregnant": normalize_boolean(patient.get("pregnant")),
        "postcode": patient.get("postcode") or "",
    }


def coerce_intake(intake: Intake | Mapping[str, Any] | None) -> Intake:
    """Accept an ``Intake`` model or a plain ``{patient, answers}`` mapping."""
    if intake is None:
        return Intake()
    if isinstance(intake, Intake):
        return intake
    return Intake.model_validate(
        {"patient": intake.get("patient") or {}, "answers": intake.get("answers") or {}}
    )


def normalize_intake(pack: RulePack, intake: Intake) -> dict[str, Any]:
    """Normalise the whole intake (not just required fields) into a context dict."""
    questions = pack.question_index()
    answers = {
        qid: normalize_answer(questions.get(qid), raw)
        for qid, raw in intake.answers.items()
    }
    return {
        "patient": normalize_patient(intake.patient.model_dump()),
        "answers": answers,
    }
