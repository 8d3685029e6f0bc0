"""IntakeSession - intake record plus transcript suggestions for one consultation.

The session is the only stateful piece of the SDK.  It holds the patient
record, the selected complaint/pathway, answers, the current suggestion set
and the latest evaluation.

Suggestion lifecycle::

    pending ──apply──► applied
       │
       └──dismiss──► dismissed   (terminal)

A new transcript replaces the suggestion set wholesale; a suggestion whose
``(field, value)`` is unchanged keeps its previous status, anything else
starts ``pending``.  Dismissed suggestions are never applied, including by
:meth:`IntakeSession.apply_confident_suggestions`.

Every action builds a complete new :class:`SessionState` and swaps it in with
a single assignment, so observers never see a half-applied change.  The
evaluation is recomputed on every swap.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, NamedTuple, Optional

from otcflow_rules.constants import CONFIDENT_SUGGESTION_THRESHOLD
from otcflow_rules.engine import PathwayEngine
from otcflow_rules.extraction.parser import TranscriptParser
from otcflow_rules.models.extraction import FieldExtraction, Suggestion, TranscriptExtraction
from otcflow_rules.models.intake import EvaluationResult, Intake
from otcflow_rules.models.pack import RulePack
from otcflow_rules.normalize import normalize_answer
from otcflow_rules.ruleset import RulePackRegistry

logger = logging.getLogger(__name__)

PATIENT_FIELDS: tuple[str, ...] = ("age", "sex", "pregnant", "postcode")

IDLE_STATUS = "Parser idle."


def _initial_patient() -> dict[str, Any]:
    return {name: "" for name in PATIENT_FIELDS}


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of a session.  Replaced, never mutated."""

    patient: dict[str, Any] = field(default_factory=_initial_patient)
    complaint_id: str = ""
    rule_pack_id: str = ""
    answers: dict[str, Any] = field(default_factory=dict)
    suggestions: dict[str, Suggestion] = field(default_factory=dict)
    complaint_options: list[dict[str, str]] = field(default_factory=list)
    evaluation: Optional[EvaluationResult] = None

    @property
    def missing(self) -> list:
        return list(self.evaluation.missing) if self.evaluation else []

    def intake(self) -> Intake:
        return Intake.model_validate({"patient": self.patient, "answers": self.answers})


class TranscriptReport(NamedTuple):
    """Outcome of feeding a transcript into a session."""

    extraction: TranscriptExtraction
    status: str
    feedback: str


StateListener = Callable[[SessionState], None]


# ---------------------------------------------------------------------------
# Suggestion helpers
# ---------------------------------------------------------------------------

def describe_suggestion_confidence(confidence: Any) -> str:
    """Human label for a confidence score."""
    if not isinstance(confidence, (int, float)) or isinstance(confidence, bool) or math.isnan(confidence):
        return "needs review"
    if confidence >= 0.85:
        return "confirmed"
    if confidence >= 0.6:
        return "likely accurate"
    if confidence >= 0.4:
        return "needs review"
    return "low confidence"


def _normalize_confidence(value: Any) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
        return 0.0
    return round(float(value), 2)


def _should_include(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and value.strip() in ("", "unknown"):
        return False
    return True


def _inherit_status(previous: Suggestion | None, value: Any) -> str:
    if previous is not None and previous.value == value:
        return previous.status
    return "pending"


def _entry_parts(entry: Any) -> tuple[Any, Any] | None:
    """(value, confidence) from a FieldExtraction or a mapping."""
    if isinstance(entry, FieldExtraction):
        return entry.value, entry.confidence
    if isinstance(entry, Mapping):
        return entry.get("value"), entry.get("confidence")
    return None


def build_suggestions(payload: Any, previous: Mapping[str, Suggestion]) -> dict[str, Suggestion]:
    """Interpret a suggestion payload into an ordered ``{id: Suggestion}`` map.

    Accepted shapes:
      - a :class:`TranscriptExtraction`
      - a raw ``{"patient": {...}, "answers": {...}}`` mapping of field entries
      - a precomputed ``{id: suggestion}`` mapping (entries may carry status)
    """
    if isinstance(payload, TranscriptExtraction):
        payload = {"patient": payload.patient, "answers": payload.answers}
    if not isinstance(payload, Mapping):
        return {}

    suggestions: dict[str, Suggestion] = {}
    if "patient" in payload or "answers" in payload:
        groups = (
            ("patient", payload.get("patient") or {}),
            ("answer", payload.get("answers") or {}),
        )
        for target, entries in groups:
            for name, entry in entries.items():
                parts = _entry_parts(entry)
                if parts is None or not _should_include(parts[0]):
                    continue
                value, confidence = parts
                sid = f"patient.{name}" if target == "patient" else name
                suggestions[sid] = Suggestion(
                    id=sid,
                    target=target,
                    field=name,
                    value=value,
                    confidence=_normalize_confidence(confidence),
                    status=_inherit_status(previous.get(sid), value),
                )
        return suggestions

    for sid, entry in payload.items():
        if isinstance(entry, Suggestion):
            entry = entry.model_dump()
        if not isinstance(entry, Mapping) or not _should_include(entry.get("value")):
            continue
        value = entry.get("value")
        suggestions[sid] = Suggestion(
            id=sid,
            target=entry.get("target") or ("patient" if sid.startswith("patient.") else "answer"),
            field=entry.get("field") or sid.removeprefix("patient."),
            value=value,
            confidence=_normalize_confidence(entry.get("confidence")),
            status=entry.get("status") or _inherit_status(previous.get(sid), value),
        )
    return suggestions


def describe_feedback(result: TranscriptExtraction | None) -> str:
    """Missing details and warnings from a parse, as one line of text."""
    if result is None:
        return ""
    feedback = []
    labels = [item.label or item.id for item in result.missing]
    labels = [label for label in labels if label]
    if labels:
        feedback.append(f"Missing details: {', '.join(labels)}.")
    if result.warnings:
        feedback.append(" ".join(result.warnings))
    return " ".join(feedback)


# ---------------------------------------------------------------------------
# IntakeSession
# ---------------------------------------------------------------------------

class IntakeSession:
    """One consultation's intake, suggestions and live evaluation.

    Args:
        registry: loaded rule packs; the session follows registry reloads
        engine: evaluation engine (defaults to one over ``registry``)
        parser: transcript parser (defaults to one over ``registry``)
    """

    def __init__(
        self,
        registry: RulePackRegistry,
        engine: PathwayEngine | None = None,
        parser: TranscriptParser | None = None,
    ) -> None:
        self._registry = registry
        self._engine = engine or PathwayEngine(registry)
        self._parser = parser or TranscriptParser(registry)
        self._listeners: list[StateListener] = []
        self._state = self._evaluated(SessionState())
        self._unsubscribe_registry = registry.subscribe(self._on_packs_loaded)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def suggestions(self) -> dict[str, Suggestion]:
        return dict(self._state.suggestions)

    @property
    def evaluation(self) -> EvaluationResult | None:
        return self._state.evaluation

    def close(self) -> None:
        """Stop following registry reloads."""
        self._unsubscribe_registry()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; it is called now and after every change."""
        self._listeners.append(listener)
        listener(self._state)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, state: SessionState) -> None:
        self._state = self._evaluated(state)
        for listener in list(self._listeners):
            listener(self._state)

    def _evaluated(self, state: SessionState) -> SessionState:
        evaluation = self._engine.evaluate(state.rule_pack_id, state.intake())
        return replace(state, evaluation=evaluation)

    def _on_packs_loaded(self, packs: list[RulePack]) -> None:
        state = self._state
        options = [{"id": o["id"], "label": o["label"]} for o in self._registry.complaint_options()]
        rule_pack_id, answers = state.rule_pack_id, state.answers
        if state.complaint_id:
            available = [p.id for p in self._registry.packs_for_complaint(state.complaint_id)]
            if rule_pack_id not in available:
                rule_pack_id = available[0] if available else ""
                answers = {}
                logger.info("Current pathway no longer offered; switched to %r", rule_pack_id)
        elif rule_pack_id and self._registry.get(rule_pack_id) is None:
            rule_pack_id, answers = "", {}
            logger.info("Selected pathway no longer offered; selection cleared")
        self._commit(replace(
            state, complaint_options=options, rule_pack_id=rule_pack_id, answers=answers,
        ))

    # ------------------------------------------------------------------
    # Intake edits
    # ------------------------------------------------------------------

    def _normalized_answer(self, rule_pack_id: str, question_id: str, value: Any) -> Any:
        pack = self._registry.get(rule_pack_id)
        question = pack.question_index().get(question_id) if pack else None
        return normalize_answer(question, value)

    def update_patient_field(self, name: str, value: Any) -> None:
        """Set a patient field; unknown field names are ignored."""
        if name not in self._state.patient:
            return
        self._commit(replace(self._state, patient={**self._state.patient, name: value}))

    def set_answer(self, question_id: str, value: Any) -> None:
        state = self._state
        value = self._normalized_answer(state.rule_pack_id, question_id, value)
        self._commit(replace(state, answers={**state.answers, question_id: value}))

    def clear_answer(self, question_id: str) -> None:
        answers = {k: v for k, v in self._state.answers.items() if k != question_id}
        self._commit(replace(self._state, answers=answers))

    def _with_complaint(self, state: SessionState, complaint_id: str) -> SessionState:
        packs = self._registry.packs_for_complaint(complaint_id) if complaint_id else []
        return self._with_rule_pack(
            replace(state, complaint_id=complaint_id or ""),
            packs[0].id if packs else "",
        )

    def _with_rule_pack(self, state: SessionState, rule_pack_id: str) -> SessionState:
        pack = self._registry.get(rule_pack_id)
        return replace(state, rule_pack_id=pack.id if pack else "", answers={})

    def set_complaint(self, complaint_id: str) -> None:
        """Select a complaint and its first pathway (answers are cleared)."""
        self._commit(self._with_complaint(self._state, complaint_id))

    def set_rule_pack(self, rule_pack_id: str) -> None:
        """Select a pathway; unknown ids clear the selection.  Answers are cleared."""
        self._commit(self._with_rule_pack(self._state, rule_pack_id))

    def reset(self) -> None:
        """Clear the intake and every suggestion."""
        self._commit(SessionState(complaint_options=self._state.complaint_options))

    def load_scenario(self, scenario: Mapping[str, Any] | None) -> None:
        """Load a demo scenario (``patient``, ``complaintId``, ``rulePackId``,
        ``answers``, ``nlpSuggestions``).  ``None`` resets the session."""
        if not scenario:
            self.reset()
            return
        state = replace(self._state, patient={**_initial_patient(), **(scenario.get("patient") or {})})
        state = self._with_complaint(state, scenario.get("complaintId") or "")
        # Unknown pack ids fall back to the complaint's first pathway
        pack = self._registry.get(scenario.get("rulePackId") or "")
        rule_pack_id = pack.id if pack else state.rule_pack_id
        answers = {
            qid: self._normalized_answer(rule_pack_id, qid, value)
            for qid, value in (scenario.get("answers") or {}).items()
        }
        suggestions = build_suggestions(scenario.get("nlpSuggestions"), self._state.suggestions)
        self._commit(replace(state, rule_pack_id=rule_pack_id, answers=answers, suggestions=suggestions))

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def set_suggestions(self, payload: Any) -> None:
        """Replace the suggestion set (statuses carry over for unchanged values)."""
        suggestions = build_suggestions(payload, self._state.suggestions)
        self._commit(replace(self._state, suggestions=suggestions))

    def _applied(self, state: SessionState, suggestion_id: str) -> SessionState | None:
        suggestion = state.suggestions.get(suggestion_id)
        if suggestion is None or suggestion.status != "pending":
            return None
        if suggestion.target == "patient":
            if suggestion.field not in state.patient:
                return None
            state = replace(state, patient={**state.patient, suggestion.field: suggestion.value})
        else:
            value = self._normalized_answer(state.rule_pack_id, suggestion.field, suggestion.value)
            state = replace(state, answers={**state.answers, suggestion.field: value})
        updated = suggestion.model_copy(update={"status": "applied"})
        return replace(state, suggestions={**state.suggestions, suggestion_id: updated})

    def apply_suggestion(self, suggestion_id: str) -> bool:
        """Write a pending suggestion into the intake.  Returns False if nothing changed."""
        state = self._applied(self._state, suggestion_id)
        if state is None:
            return False
        self._commit(state)
        return True

    def dismiss_suggestion(self, suggestion_id: str) -> bool:
        suggestion = self._state.suggestions.get(suggestion_id)
        if suggestion is None or suggestion.status == "dismissed":
            return False
        updated = suggestion.model_copy(update={"status": "dismissed"})
        self._commit(replace(self._state, suggestions={**self._state.suggestions, suggestion_id: updated}))
        return True

    def apply_confident_suggestions(self, threshold: float = CONFIDENT_SUGGESTION_THRESHOLD) -> list[str]:
        """Apply every pending suggestion at or above ``threshold`` in one step.

        Returns the ids that were applied.
        """
        state = self._state
        applied: list[str] = []
        for sid, suggestion in self._state.suggestions.items():
            if suggestion.status != "pending" or suggestion.confidence < threshold:
                continue
            candidate = self._applied(state, sid)
            if candidate is not None:
                state = candidate
                applied.append(sid)
        if applied:
            self._commit(state)
        return applied

    def suggestion_status(self) -> dict[str, str]:
        """Per-suggestion label: ``applied``/``dismissed`` or a confidence description."""
        return {
            sid: s.status if s.status in ("applied", "dismissed") else describe_suggestion_confidence(s.confidence)
            for sid, s in self._state.suggestions.items()
        }

    # ------------------------------------------------------------------
    # Transcripts
    # ------------------------------------------------------------------

    def ingest_transcript(self, text: str | None) -> TranscriptReport:
        """Parse a transcript, replace the suggestion set and describe the result."""
        result = self._parser.parse(text)
        self.set_suggestions(result)
        blank = not (text or "").strip()
        status = self.describe_parse(result, len(self._state.suggestions), blank)
        return TranscriptReport(result, status, describe_feedback(result))

    def describe_parse(
        self,
        result: TranscriptExtraction | None,
        suggestion_count: int,
        blank: bool = False,
    ) -> str:
        """Status line after a parse (suggestion count plus pathway hint)."""
        if blank:
            return "No transcript detected. Intake suggestions cleared."
        if result is None:
            return IDLE_STATUS
        if suggestion_count == 0:
            base = "Parsed transcript. No confident suggestions detected."
        elif suggestion_count == 1:
            base = "Parsed transcript. 1 suggestion ready."
        else:
            base = f"Parsed transcript. {suggestion_count} suggestions ready."
        context = self._describe_pack_context(result)
        return f"{base} {context}" if context else base

    def _describe_pack_context(self, result: TranscriptExtraction) -> str:
        if result.rule_pack_id:
            pack = self._registry.get(result.rule_pack_id)
            return f"Pathway hint: {pack.name if pack else result.rule_pack_id}."
        if result.complaint_id:
            labels = {o["id"]: o["label"] for o in self._state.complaint_options}
            return f"Complaint hint: {labels.get(result.complaint_id) or result.complaint_id}."
        return ""
