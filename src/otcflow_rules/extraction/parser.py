"""TranscriptParser - heuristic extraction of intake suggestions from free text.

Pipeline (each step is table-driven and deterministic):

    normalise whitespace
      → age        ordered patterns, first plausible value (0 < age < 120)
      → sex        vocabulary hits, larger group wins, ties → female
      → pregnancy  best-confidence pattern, negation window on positives
      → pack       weighted keyword hints per profile, best score wins
      → answers    boolean cues per question, first duration in days
      → missing    required questions of the guessed pack not detected
      → warnings   sex/pregnancy mismatches with the guessed pack

Matching is case-insensitive on the normalised text, so the negation
look-behind indexes the same string the match came from.  The parser never
mutates the registry; the same text always yields the same result.
"""

from __future__ import annotations

import functools
import logging
import re
from typing import Iterable

from otcflow_rules.constants import CONFIDENCE_LEVELS, NEGATION_WINDOW, PATIENT_FIELD_LABELS
from otcflow_rules.extraction.cues import (
    AGE_PATTERNS,
    BUILTIN_PROFILES,
    DECADE_OFFSETS,
    DURATION_PATTERNS,
    FEMALE_TERMS,
    MALE_TERMS,
    NEGATION_PATTERN,
    PREGNANCY_PATTERNS,
)
from otcflow_rules.models.extraction import (
    Evidence,
    FieldExtraction,
    PackGuess,
    TranscriptExtraction,
)
from otcflow_rules.models.intake import MissingField
from otcflow_rules.models.pack import ExtractionProfile, RulePack, SymptomCue
from otcflow_rules.ruleset import RulePackRegistry

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

_SEX_NOUNS = {"female": "women", "male": "men"}


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def score_strength(strength: str | None) -> float:
    """Map an evidence strength tag to its confidence (unknown tags → weak)."""
    if not strength:
        return CONFIDENCE_LEVELS["none"]
    return CONFIDENCE_LEVELS.get(strength, CONFIDENCE_LEVELS["weak"])


def score_pack_confidence(evidence: list[dict]) -> float:
    """``min(1, 0.6·Σweight/6 + 0.4·mean strength)`` rounded to 2 dp."""
    if not evidence:
        return CONFIDENCE_LEVELS["none"]
    total_weight = sum(item.get("weight") or 1 for item in evidence)
    mean_strength = sum(score_strength(item.get("strength") or "weak") for item in evidence) / len(evidence)
    return round(min(1.0, (total_weight / 6) * 0.6 + mean_strength * 0.4), 2)


@functools.lru_cache(maxsize=512)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def _missing_field(field_id: str, label: str) -> MissingField:
    return MissingField(id=field_id, label=label, reason="not_detected")


def _empty_field(value=None) -> FieldExtraction:
    return FieldExtraction(value=value, confidence=0.0, evidence=None)


class TranscriptParser:
    """Extracts confidence-scored intake suggestions from a transcript.

    Args:
        registry: loaded packs.  Packs supply required-question lists for the
            cross-check and may declare their own hint profiles.  Without a
            registry only the built-in profiles are used.
        negation_window: characters scanned before a match for negation words
    """

    def __init__(
        self,
        registry: RulePackRegistry | None = None,
        negation_window: int = NEGATION_WINDOW,
    ) -> None:
        self._registry = registry
        self._window = negation_window

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, raw_text: str | None) -> TranscriptExtraction:
        text = _WHITESPACE.sub(" ", raw_text or "").strip()
        missing: list[MissingField] = []
        warnings: list[str] = []

        if not text:
            for field_id, label in PATIENT_FIELD_LABELS.items():
                missing.append(_missing_field(field_id, label))
            return TranscriptExtraction(
                patient={
                    "age": _empty_field(),
                    "sex": _empty_field(),
                    "pregnant": _empty_field("unknown"),
                },
                missing=missing,
            )

        age = self.detect_age(text)
        if age is None:
            missing.append(_missing_field("patient.age", PATIENT_FIELD_LABELS["patient.age"]))

        sex = self.detect_sex(text)
        if sex is None:
            missing.append(_missing_field("patient.sex", PATIENT_FIELD_LABELS["patient.sex"]))
        else:
            all_terms = sex.evidence.all_terms or []
            if any(t in FEMALE_TERMS for t in all_terms) and any(t in MALE_TERMS for t in all_terms):
                warnings.append("Transcript contains both female and male descriptors; review patient sex.")

        pregnancy = self.detect_pregnancy(text) or _empty_field("unknown")
        if pregnancy.value == "unknown":
            missing.append(_missing_field("patient.pregnant", PATIENT_FIELD_LABELS["patient.pregnant"]))
        if sex is not None and sex.value == "male" and pregnancy.value == "yes":
            warnings.append("Pregnancy detected but patient sex recorded as male.")

        profiles = self.profiles()
        guess = self.guess_pack(text, profiles)
        answers: dict[str, FieldExtraction] = {}
        if guess is not None:
            answers = self.detect_answers(text, profiles[guess.id])
            pack = self._registry.get(guess.id) if self._registry is not None else None
            if pack is not None:
                for question_id, label in _required_questions(pack):
                    if question_id not in answers:
                        missing.append(_missing_field(question_id, label))
                warnings.extend(_profile_warnings(pack, profiles[guess.id], sex, pregnancy))
            logger.debug("Transcript matched pack %s (%.2f)", guess.id, guess.confidence)

        return TranscriptExtraction(
            patient={
                "age": age or _empty_field(),
                "sex": sex or _empty_field(),
                "pregnant": pregnancy,
            },
            complaint_id=guess.complaint_id if guess else "",
            rule_pack_id=guess.id if guess else "",
            rule_pack_confidence=guess.confidence if guess else 0.0,
            answers=answers,
            missing=missing,
            warnings=warnings,
        )

    def profiles(self) -> dict[str, ExtractionProfile]:
        """Hint profiles: built-ins, then any declared by loaded packs."""
        profiles = dict(BUILTIN_PROFILES)
        if self._registry is None:
            return profiles
        for pack in self._registry.packs:
            if pack.extraction is None:
                continue
            profile = pack.extraction
            if profile.complaint_id is None and pack.complaint is not None:
                profile = profile.model_copy(update={"complaint_id": pack.complaint.id})
            profiles[pack.id] = profile
        return profiles

    # ------------------------------------------------------------------
    # Detectors
    # ------------------------------------------------------------------

    def is_negated(self, text: str, index: int) -> bool:
        window = text[max(0, index - self._window):index]
        return NEGATION_PATTERN.search(window) is not None

    def detect_age(self, text: str) -> FieldExtraction | None:
        for pattern in AGE_PATTERNS:
            for match in pattern.regex.finditer(text):
                if pattern.decade:
                    age = int(match.group(2)) + DECADE_OFFSETS.get(match.group(1).lower(), 0)
                else:
                    age = int(match.group(1))
                if 0 < age < 120:
                    evidence = Evidence(strength=pattern.strength, match=match.group(0), index=match.start())
                    return FieldExtraction(value=age, confidence=score_strength(pattern.strength), evidence=evidence)
        return None

    def detect_sex(self, text: str) -> FieldExtraction | None:
        hits: list[tuple[str, str, str]] = []
        for value, terms in (("female", FEMALE_TERMS), ("male", MALE_TERMS)):
            for term in terms:
                if re.search(rf"\b{term}\b", text, re.IGNORECASE):
                    hits.append((value, term, "explicit" if term == value else "strong"))
        if not hits:
            return None

        female = [h for h in hits if h[0] == "female"]
        male = [h for h in hits if h[0] == "male"]
        best_group = female if len(female) >= len(male) else male
        value, term, strength = best_group[0]
        evidence = Evidence(
            strength=strength,
            term=term,
            terms=[h[1] for h in best_group],
            all_terms=[h[1] for h in hits],
        )
        return FieldExtraction(value=value, confidence=score_strength(strength), evidence=evidence)

    def detect_pregnancy(self, text: str) -> FieldExtraction | None:
        # A positive hit inside a negative phrase does not count, so a bare
        # "pregnancy test negative" reads as "no" even with no other denial.
        negative_spans = [
            match.span()
            for pattern in PREGNANCY_PATTERNS
            if pattern.value == "no"
            for match in pattern.regex.finditer(text)
        ]
        best: FieldExtraction | None = None
        for pattern in PREGNANCY_PATTERNS:
            for match in pattern.regex.finditer(text):
                if pattern.value == "yes" and any(start <= match.start() < end for start, end in negative_spans):
                    continue
                if not pattern.skip_negation_check and self.is_negated(text, match.start()):
                    continue
                confidence = score_strength(pattern.strength)
                if best is None or confidence > best.confidence:
                    best = FieldExtraction(
                        value=pattern.value,
                        confidence=confidence,
                        evidence=Evidence(strength=pattern.strength, match=match.group(0)),
                    )
        return best

    def guess_pack(self, text: str, profiles: dict[str, ExtractionProfile]) -> PackGuess | None:
        best: PackGuess | None = None
        for pack_id, profile in profiles.items():
            evidence = [
                {"match": match.group(0), "weight": hint.weight, "strength": hint.strength}
                for hint in profile.keywords
                for match in _compile(hint.pattern).finditer(text)
            ]
            if not evidence:
                continue
            confidence = score_pack_confidence(evidence)
            if best is None or confidence > best.confidence:
                best = PackGuess(
                    id=pack_id,
                    complaint_id=profile.complaint_id or "",
                    confidence=confidence,
                    evidence=evidence,
                )
        return best

    def detect_boolean(self, text: str, cues: Iterable[SymptomCue]) -> FieldExtraction | None:
        best: FieldExtraction | None = None
        for cue in cues:
            for match in _compile(cue.pattern).finditer(text):
                if not cue.skip_negation_check and self.is_negated(text, match.start()):
                    continue
                confidence = score_strength(cue.strength)
                if best is None or confidence > best.confidence:
                    best = FieldExtraction(
                        value=cue.value,
                        confidence=confidence,
                        evidence=Evidence(strength=cue.strength, match=match.group(0)),
                    )
        return best

    def detect_duration(self, text: str) -> FieldExtraction | None:
        for pattern in DURATION_PATTERNS:
            for match in pattern.regex.finditer(text):
                days = int(match.group(1))
                if 0 < days < 60:
                    return FieldExtraction(
                        value=days,
                        confidence=score_strength(pattern.strength),
                        evidence=Evidence(strength=pattern.strength, match=match.group(0)),
                    )
        return None

    def detect_answers(self, text: str, profile: ExtractionProfile) -> dict[str, FieldExtraction]:
        answers: dict[str, FieldExtraction] = {}
        for question_id, cues in profile.cues.items():
            result = self.detect_boolean(text, cues)
            if result is not None:
                answers[question_id] = result
        if profile.duration_question:
            duration = self.detect_duration(text)
            if duration is not None:
                answers[profile.duration_question] = duration
        return answers


# ---------------------------------------------------------------------------
# Pack cross-checks
# ---------------------------------------------------------------------------

def _required_questions(pack: RulePack) -> list[tuple[str, str]]:
    questions = pack.question_index()
    ids = [qid for qid in pack.intake.required.answers if qid in questions]
    ids += [q.id for q in pack.required_questions()]
    return [(qid, questions[qid].label) for qid in dict.fromkeys(ids)]


def _profile_warnings(
    pack: RulePack,
    profile: ExtractionProfile,
    sex: FieldExtraction | None,
    pregnancy: FieldExtraction,
) -> list[str]:
    warnings = []
    target = profile.target_sex
    if target and sex is not None and sex.value and sex.value != target:
        noun = _SEX_NOUNS.get(target, target)
        warnings.append(f"{pack.name} pack targets {noun}; detected sex is {sex.value}.")
    if profile.excludes_pregnancy and pregnancy.value == "yes":
        warnings.append(f"{pack.name} pack excludes pregnancy; confirm suitability.")
    return warnings


_default_parser = TranscriptParser()


def parse_transcript(text: str | None, registry: RulePackRegistry | None = None) -> TranscriptExtraction:
    """Parse with built-in profiles, or against ``registry`` when given."""
    if registry is None:
        return _default_parser.parse(text)
    return TranscriptParser(registry).parse(text)
