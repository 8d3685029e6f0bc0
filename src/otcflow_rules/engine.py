"""PathwayEngine - runs a rule pack against an intake record.

Evaluation order is fixed:

    1. Pack resolution      - no pack id / unknown pack → ``incomplete``
    2. Required fields      - anything missing → ``incomplete`` (nothing else runs)
    3. Normalisation        - whole intake, then derived values
    4. Checks               - ordered veto gates; first failing check with a
                              ``result`` returns it
    5. Advice               - every matching rule contributes
    6. Outcomes             - first match wins; pack default or generic fallback
    7. Post-processing      - de-duplicate warnings/actions, fallback safety
                              netting, governance, consultation note

The engine is stateless: the result is recomputed wholesale on every call and
never patched incrementally.  Malformed pack logic raises
:class:`RuleAuthoringError`; a corrupt pack never yields a recommendation.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from otcflow_rules.constants import OUTCOMES, PATIENT_BOOLEAN_FIELDS, PATIENT_FIELD_LABELS
from otcflow_rules.documentation import NoteRenderer
from otcflow_rules.errors import RuleAuthoringError
from otcflow_rules.evaluator import display_value
from otcflow_rules.models.intake import EvaluationResult, Intake, MissingField, TraceEntry
from otcflow_rules.models.pack import Question, RulePack, TraceDetail
from otcflow_rules.normalize import (
    coerce_intake,
    normalize_boolean,
    normalize_intake,
    normalize_multi_select,
    normalize_number,
)
from otcflow_rules.ruleset import RulePackRegistry
from otcflow_rules.templates import TemplateResolver

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Required-field validation
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _answer_missing(question: Question, raw: Any) -> bool:
    if question.type == "boolean":
        return normalize_boolean(raw) is None
    if question.type == "number":
        return normalize_number(raw) is None
    if question.type == "multi_select":
        return not normalize_multi_select(raw)
    return _is_blank(raw)


def collect_missing_fields(pack: RulePack, intake: Intake) -> list[MissingField]:
    """Return every required patient field or question without a usable value.

    Declared required answers come first (in declaration order), then any
    question flagged ``required`` on the form that was not already declared.
    """
    missing: list[MissingField] = []
    patient = intake.patient.model_dump()
    required = pack.intake.required

    for field in required.patient:
        field_id = f"patient.{field}"
        label = PATIENT_FIELD_LABELS.get(field_id, f"Patient {field}")
        if field == "age":
            absent = normalize_number(patient.get("age")) is None
        elif field in PATIENT_BOOLEAN_FIELDS:
            absent = normalize_boolean(patient.get(field)) is None
        else:
            absent = _is_blank(patient.get(field))
        if absent:
            missing.append(MissingField(id=field_id, label=label))

    questions = pack.question_index()
    declared = list(dict.fromkeys(required.answers))
    to_check = [questions[qid] for qid in declared if qid in questions]
    to_check += [q for q in questions.values() if q.required and q.id not in declared]

    for question in to_check:
        if _answer_missing(question, intake.answers.get(question.id)):
            missing.append(MissingField(id=question.id, label=question.label))
    return missing


# ---------------------------------------------------------------------------
# Result assembly helpers
# ---------------------------------------------------------------------------

def _to_string_list(value: Any) -> list[str]:
    """Flatten nested lists into trimmed, non-empty strings."""
    if value is None:
        return []
    if isinstance(value, list):
        return [text for item in value for text in _to_string_list(item)]
    text = (value if isinstance(value, str) else display_value(value)).strip()
    return [text] if text else []


def unique_strings(items: list[str]) -> list[str]:
    """De-duplicate by trimmed text, keeping first-seen order and original text."""
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        key = item.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def _as_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    return [value] if value else []


class PathwayEngine:
    """Evaluates intakes against the packs held by a registry.

    Args:
        registry: pack source for :meth:`evaluate` (``evaluate_pack`` does not
            need one)
        resolver: template resolver shared by all rule expressions
        note_renderer: consultation note renderer
    """

    def __init__(
        self,
        registry: RulePackRegistry | None = None,
        resolver: TemplateResolver | None = None,
        note_renderer: NoteRenderer | None = None,
    ) -> None:
        self._registry = registry or RulePackRegistry()
        self._resolver = resolver or TemplateResolver()
        self._notes = note_renderer or NoteRenderer()

    @property
    def registry(self) -> RulePackRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(
        self,
        pack_id: str | None,
        intake: Intake | Mapping[str, Any] | None,
    ) -> EvaluationResult:
        """Evaluate an intake against the registry pack ``pack_id``.

        Raises:
            RuleAuthoringError: the pack's logic cannot be interpreted.
        """
        if not pack_id:
            return EvaluationResult(
                outcome="incomplete",
                headline="Select a pathway to begin",
                summary="Choose the presenting complaint and pathway to run the assessment.",
            )
        pack = self._registry.get(pack_id)
        if pack is None:
            logger.warning("Evaluation requested for unknown rule pack %s", pack_id)
            return EvaluationResult(
                outcome="incomplete",
                headline="Pathway not available",
                summary="The selected pathway could not be loaded.",
            )
        return self.evaluate_pack(pack, intake)

    def evaluate_pack(
        self,
        pack: RulePack,
        intake: Intake | Mapping[str, Any] | None,
    ) -> EvaluationResult:
        """Evaluate an intake against a specific pack.

        Derived values are computed in declaration order; each expression
        sees the derived values declared before it, never later ones.
        """
        intake = coerce_intake(intake)

        missing = collect_missing_fields(pack, intake)
        if missing:
            logger.debug("Pack %s: %d required fields missing", pack.id, len(missing))
            return EvaluationResult(
                outcome="incomplete",
                headline="More information required",
                summary="Capture the highlighted fields before generating a recommendation.",
                missing=missing,
                safety_net=list(pack.safety_netting),
            )

        normalized = normalize_intake(pack, intake)
        context: dict[str, Any] = {
            "patient": normalized["patient"],
            "answers": normalized["answers"],
            "derived": {},
            "pack": pack.model_dump(by_alias=True),
        }
        # Each derived value sees the ones declared before it.
        for item in pack.logic.derived:
            context["derived"][item.id] = self._resolver.evaluator.evaluate(item.expression, context)

        trace: list[TraceEntry] = []
        warnings: list[str] = []
        actions: list[str] = []

        raw_result = self._run_checks(pack, context, trace, warnings)
        if raw_result:
            logger.debug("Pack %s: vetoed by check", pack.id)
        else:
            self._run_advice(pack, context, trace, warnings, actions)
            raw_result = self._run_outcomes(pack, context, trace, warnings, actions)
            if raw_result is None:
                raw_result = self._run_default(pack, context, trace)

        result = self._prepare(pack, raw_result, trace, warnings, actions)
        result.documentation = self._notes.consultation_note(pack, normalized["patient"], result)
        logger.debug("Pack %s: outcome %s", pack.id, result.outcome)
        return result

    # ------------------------------------------------------------------
    # Logic stages
    # ------------------------------------------------------------------

    def _run_checks(self, pack, context, trace, warnings) -> Any:
        for check in pack.logic.checks:
            passed = self._resolver.test(check.expression, context)
            detail = check.pass_ if passed else check.fail
            self._append_trace(trace, detail, context, "pass" if passed else "fail")
            if detail is not None:
                self._append_items(warnings, detail.warnings, context)
            if not passed and detail is not None and detail.result:
                return self._resolver.resolve(detail.result, context)
        return None

    def _run_advice(self, pack, context, trace, warnings, actions) -> None:
        for advice in pack.logic.advice:
            if not self._resolver.test(advice.expression, context):
                continue
            self._append_trace(trace, advice.trace, context, "info")
            self._append_items(warnings, advice.warnings, context)
            self._append_items(actions, advice.actions, context)

    def _run_outcomes(self, pack, context, trace, warnings, actions) -> Any:
        for outcome in pack.logic.outcomes:
            branches = outcome.trace
            if self._resolver.test(outcome.expression, context):
                self._append_trace(trace, branches.pass_ if branches else None, context, "pass")
                self._append_items(warnings, outcome.warnings, context)
                self._append_items(actions, outcome.actions, context)
                return self._resolver.resolve(outcome.result, context)
            self._append_trace(trace, branches.fail if branches else None, context, "info")
        return None

    def _run_default(self, pack, context, trace) -> Any:
        fallback = pack.logic.default
        if fallback is None:
            return {
                "outcome": "incomplete",
                "urgency": "routine",
                "headline": "No matching recommendation",
                "summary": "Unable to determine a recommendation for the provided answers.",
                "actions": [],
            }
        self._append_trace(trace, fallback.trace, context, "info")
        return self._resolver.resolve(fallback.result, context)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _append_trace(
        self,
        trace: list[TraceEntry],
        detail: TraceDetail | None,
        context: dict[str, Any],
        fallback_status: str,
    ) -> None:
        if detail is None:
            return
        rendered = self._resolver.resolve(detail.label, context)
        if rendered is None:
            return
        if isinstance(rendered, list):
            label = ", ".join(display_value(v) for v in rendered)
        else:
            label = rendered if isinstance(rendered, str) else display_value(rendered)
        if not label.strip():
            return
        trace.append(TraceEntry(status=detail.status or fallback_status, label=label))

    def _append_items(self, target: list[str], value: Any, context: dict[str, Any]) -> None:
        if not value:
            return
        target.extend(_to_string_list(self._resolver.resolve(value, context)))

    def _prepare(
        self,
        pack: RulePack,
        raw: Any,
        trace: list[TraceEntry],
        warnings: list[str],
        actions: list[str],
    ) -> EvaluationResult:
        if not isinstance(raw, dict):
            raise RuleAuthoringError(
                f"Rule pack {pack.id} produced a result that is not an object: {raw!r}"
            )
        outcome = raw.get("outcome") or "incomplete"
        if outcome not in OUTCOMES:
            raise RuleAuthoringError(f"Rule pack {pack.id} produced unknown outcome {outcome!r}")
        for key in ("supply", "referral"):
            if raw.get(key) and not isinstance(raw[key], dict):
                raise RuleAuthoringError(f"Rule pack {pack.id}: {key} must be an object")

        safety_net = _to_string_list(raw.get("safetyNet")) or list(pack.safety_netting)
        return EvaluationResult(
            outcome=outcome,
            urgency=raw.get("urgency") or "routine",
            headline=raw.get("headline") or "No recommendation available",
            summary=raw.get("summary") or "",
            trace=trace,
            warnings=unique_strings(warnings + _to_string_list(_as_list(raw.get("warnings")))),
            actions=unique_strings(actions + _to_string_list(_as_list(raw.get("actions")))),
            safety_net=safety_net,
            supply=raw.get("supply") or None,
            referral=raw.get("referral") or None,
            governance=pack.governance(),
        )


_default_engine: PathwayEngine | None = None


def evaluate_pack(pack: RulePack, intake: Intake | Mapping[str, Any] | None) -> EvaluationResult:
    """Evaluate with a shared registry-less engine (see :meth:`PathwayEngine.evaluate_pack`)."""
    global _default_engine
    if _default_engine is None:
        _default_engine = PathwayEngine()
    return _default_engine.evaluate_pack(pack, intake)
