"""Built-in transcript vocabularies and cue tables.

Patterns are matched case-insensitively against whitespace-normalised text.
Positive ("yes") cues are suppressed when a negation word appears shortly
before the match; negative ("no") cues already encode the negation and skip
that check.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from otcflow_rules.models.pack import ExtractionProfile, KeywordHint, SymptomCue

NEGATION_PATTERN = re.compile(
    r"\b(?:no|not|denies?|denied|without|absence of|free of|negative for)\b",
    re.IGNORECASE,
)

FEMALE_TERMS: tuple[str, ...] = ("female", "woman", "women", "lady", "girl", "she", "her")
MALE_TERMS: tuple[str, ...] = ("male", "man", "men", "gent", "gentleman", "boy", "he", "him")


@dataclass(frozen=True)
class AgePattern:
    regex: re.Pattern
    strength: str
    decade: bool = False


@dataclass(frozen=True)
class ValuePattern:
    regex: re.Pattern
    value: str
    strength: str
    skip_negation_check: bool = False


@dataclass(frozen=True)
class DurationPattern:
    regex: re.Pattern
    strength: str


def _re(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


# Priority order: the first plausible match wins.
AGE_PATTERNS: tuple[AgePattern, ...] = (
    AgePattern(_re(r"\bage(?:d|:)?\s*(\d{1,3})\b"), "explicit"),
    AgePattern(_re(r"\b(\d{1,3})[- ]?year[- ]?old\b"), "explicit"),
    AgePattern(_re(r"\b(\d{1,3})\s*(?:years?|yrs?)\s*(?:old|of age)?\b"), "explicit"),
    AgePattern(_re(r"\b(\d{1,3})\s*y/?o\b"), "strong"),
    AgePattern(_re(r"\b(mid|late|early)\s*(\d{2})s\b"), "weak", decade=True),
)

# Offset added to the decade for "early 30s", "mid 30s", "late 30s".
DECADE_OFFSETS: dict[str, int] = {"early": 0, "mid": 5, "late": 8}

PREGNANCY_PATTERNS: tuple[ValuePattern, ...] = (
    ValuePattern(_re(r"\b(pregnant|pregnancy|expecting)\b"), "yes", "explicit"),
    ValuePattern(_re(r"\b(denies|not|no)\s+(?:currently\s+)?pregnant\b"), "no", "explicit", True),
    ValuePattern(_re(r"\bnegative\s+pregnancy\s+test\b"), "no", "strong", True),
    ValuePattern(_re(r"\bpregnancy\s+test\s+negative\b"), "no", "strong", True),
)

DURATION_PATTERNS: tuple[DurationPattern, ...] = (
    DurationPattern(_re(r"for\s+(\d{1,2})\s+days\b"), "strong"),
    DurationPattern(_re(r"since\s+(?:the\s+last|past)\s+(\d{1,2})\s+days\b"), "moderate"),
    DurationPattern(_re(r"(?:last|past)\s+(\d{1,2})\s+days\b"), "weak"),
    DurationPattern(_re(r"(\d{1,2})\s+days\s+ago\b"), "moderate"),
    DurationPattern(_re(r"(\d{1,2})\s+day\b"), "weak"),
)


def _yes(pattern: str, strength: str) -> SymptomCue:
    return SymptomCue(value="yes", pattern=pattern, strength=strength)


def _no(pattern: str, strength: str) -> SymptomCue:
    return SymptomCue(value="no", pattern=pattern, strength=strength, skip_negation_check=True)


def _hint(pattern: str, weight: float, strength: str) -> KeywordHint:
    return KeywordHint(pattern=pattern, weight=weight, strength=strength)


# --- Urinary symptoms ---

UTI_SYMPTOM_CUES: dict[str, list[SymptomCue]] = {
    "dysuria": [
        _yes(r"\bdysuria\b", "explicit"),
        _yes(r"\bburning\b[^.]{0,30}\b(?:urine|urinating|peeing|passing urine)\b", "strong"),
        _yes(r"\bpain\b[^.]{0,30}\b(?:urinating|passing urine|peeing)\b", "strong"),
        _no(r"\bno\s+(?:dysuria|pain\s+(?:when|on)\s+(?:urinating|passing urine|peeing))\b", "strong"),
        _no(r"\bdenies\b[^.]{0,30}\b(dysuria|pain\s+(?:when|on)\s+(?:urinating|passing urine|peeing))\b", "strong"),
    ],
    "frequency": [
        _yes(r"\b(?:urinating|peeing|passing urine)\b[^.]{0,30}\b(more|often|frequently)\b", "strong"),
        _yes(r"\burinary\s+frequency\b", "strong"),
        _yes(r"\b(?:peeing|urinating|pee)\b[^.]{0,20}\b(?:every|each)\b[^.]{0,10}\b(?:hour|couple of hours)\b", "moderate"),
        _yes(r"\bpee\b[^.]{0,15}\b(?:every|each)\b[^.]{0,6}\bhour\b", "moderate"),
        _yes(r"\burgency\b", "moderate"),
        _no(r"\bno\s+(?:change|increase)\s+in\s+(?:urination|peeing)\b", "strong"),
        _no(r"\bdenies\b[^.]{0,30}\b(?:frequency|urgent need to pee)\b", "strong"),
    ],
    "urgency": [
        _yes(r"\burgenc(?:y|ies)\b", "strong"),
        _yes(r"\bstruggling\s+to\s+hold\s+urine\b", "moderate"),
        _no(r"\bno\s+(?:urgency|issues\s+holding\s+urine)\b", "strong"),
    ],
    "visibleHaematuria": [
        _yes(r"\bvisible\s+blood\s+in\s+urine\b", "explicit"),
        _yes(r"\bhematuria|haematuria\b", "strong"),
        _no(r"\bno\s+(?:visible\s+)?blood\s+in\s+urine\b", "strong"),
        _no(r"\bdenies\b[^.]{0,30}\b(?:blood\s+in\s+urine|hematuria|haematuria)\b", "strong"),
    ],
    "fever": [
        _yes(r"\bfever|pyrexia\b", "moderate"),
        _no(r"\bno\s+fever\b", "strong"),
        _no(r"\bdenies\b[^.]{0,30}\bfever\b", "strong"),
        _no(r"\bafebrile\b", "moderate"),
    ],
    "loinPain": [
        _yes(r"\bloin\s+pain|flank\s+pain\b", "strong"),
        _no(r"\bno\s+(?:loin|flank)\s+pain\b", "strong"),
        _no(r"\bdenies\b[^.]{0,40}\b(?:loin|flank)\s+pain\b", "strong"),
    ],
    "vaginalDischarge": [
        _yes(r"\bvaginal\s+discharge\b", "moderate"),
        _no(r"\bno\s+vaginal\s+discharge\b", "strong"),
        _no(r"\bdenies\b[^.]{0,50}\bvaginal\s+discharge\b", "strong"),
    ],
    "recurrentUti": [
        _yes(r"\brecurrent\s+uti\b", "moderate"),
        _yes(r"\b(\d+)\s+utis?\s+(?:this|last)\s+(?:year|6\s+months)\b", "moderate"),
        _no(r"\bno\s+history\s+of\s+recurrent\s+uti\b", "strong"),
    ],
    "diabetes": [
        _yes(r"\b(diabetes|diabetic)\b", "strong"),
        _no(r"\bno\s+diabetes\b", "strong"),
    ],
    "renalImpairment": [
        _yes(r"\brenal\s+impairment\b", "strong"),
        _no(r"\bno\s+known\s+renal\s+issues\b", "moderate"),
    ],
    "indwellingCatheter": [
        _yes(r"\bindwelling\s+catheter\b", "explicit"),
        _no(r"\bno\s+catheter\b", "strong"),
    ],
    "immunocompromised": [
        _yes(r"\bimmunocompromised\b", "strong"),
        _no(r"\bnot\s+immunocompromised\b", "moderate"),
    ],
    "recentUti": [
        _yes(r"\buti\b[^.]{0,40}\b(last|recent|within)\b[^.]{0,20}\b(\d+)\b", "moderate"),
        _no(r"\bno\s+recent\s+uti\b", "strong"),
    ],
}

# --- Sore throat ---

SORE_THROAT_CUES: dict[str, list[SymptomCue]] = {
    "airwayCompromise": [
        _yes(r"\b(drooling|stridor|airway\s+compromise)\b", "strong"),
        _no(r"\bno\s+(?:drooling|stridor|airway\s+issues)\b", "strong"),
        _no(r"\bdenies\b[^.]{0,30}\b(breathing\s+difficulty|airway\s+(?:issues|compromise))\b", "strong"),
    ],
    "systemicallyUnwell": [
        _yes(r"\b(systemically\s+very\s+unwell|toxic\s+appearance)\b", "strong"),
        _no(r"\bnot\s+systemically\s+unwell\b", "strong"),
    ],
    "immunocompromise": [
        _yes(r"\bimmunocompromised\b", "strong"),
        _no(r"\bno\s+immunocompromise\b", "strong"),
        _no(r"\bdenies\b[^.]{0,30}\bimmunocompromise\b", "strong"),
    ],
    "fever": [
        _yes(r"\bfever\b", "moderate"),
        _no(r"\bno\s+fever\b", "strong"),
        _no(r"\bafebrile\b", "moderate"),
    ],
    "purulence": [
        _yes(r"\bpus\s+on\s+(?:the\s+|her\s+|his\s+)?(?:tonsils|throat)\b", "explicit"),
        _yes(r"\btonsillar\s+exudate\b", "strong"),
        _no(r"\bno\s+(?:pus|exudate)\b", "strong"),
    ],
    "rapidOnset": [
        _yes(r"\bonset\s+(?:within|over)\s+(?:the\s+last|past)\s*(?:24|48|3)\s*(?:hours|days)\b", "strong"),
        _yes(r"\bstarted\s+(?:two|three|\d+)\s+days\s+ago\b", "moderate"),
        _yes(r"\bstarting\s+(?:two|three|\d+)\s+days\s+ago\b", "moderate"),
        _no(r"\bmore\s+than\s+10\s+days\b", "moderate"),
    ],
    "inflamedTonsils": [
        _yes(r"\binflamed\s+(?:tonsils|throat)\b", "strong"),
        _yes(r"\berythematous\s+tonsils\b", "strong"),
        _no(r"\btonsils\s+normal\b", "moderate"),
    ],
    "noCough": [
        _yes(r"\bno\s+cough\b", "explicit"),
        _yes(r"\bdenies\s+cough\b", "strong"),
        _no(r"\bproductive\s+cough\b", "moderate"),
        _no(r"\bpersistent\s+cough\b", "moderate"),
    ],
    "previousStrep": [
        _yes(r"\b(strep|scarlet\s+fever)\b[^.]{0,30}\b(last|recent|within)\b", "moderate"),
        _no(r"\bno\s+recent\s+(?:strep|scarlet\s+fever)\b", "strong"),
    ],
    "antibioticAllergy": [
        _yes(r"\bpenicillin\s+allergy\b", "explicit"),
        _no(r"\bno\s+penicillin\s+allergy\b", "strong"),
    ],
}

# Built-in hint profiles keyed by pack id.
BUILTIN_PROFILES: dict[str, ExtractionProfile] = {
    "uti_women_16_64": ExtractionProfile(
        complaint_id="urinary_symptoms",
        keywords=[
            _hint(r"\buti\b", 3, "explicit"),
            _hint(r"\burinary\s+(?:symptoms|tract\s+infection)\b", 3, "explicit"),
            _hint(r"\bburning\s+(?:when|on)\s+(?:urinating|passing urine|peeing)\b", 2, "strong"),
            _hint(r"\bburning\s+urine\b", 2, "strong"),
            _hint(r"\bdysuria\b", 2, "strong"),
            _hint(r"\bwater\s+infection\b", 2, "moderate"),
            _hint(r"\bfrequency\s+of\s+urination\b", 1, "moderate"),
        ],
        cues=UTI_SYMPTOM_CUES,
        duration_question="durationDays",
        target_sex="female",
        excludes_pregnancy=True,
    ),
    "sore_throat_feverpain": ExtractionProfile(
        complaint_id="sore_throat",
        keywords=[
            _hint(r"\bsore\s+throat\b", 3, "explicit"),
            _hint(r"\btonsillitis\b", 2, "strong"),
            _hint(r"\bfeverpain\b", 3, "explicit"),
            _hint(r"\bthroat\s+pain\b", 1, "moderate"),
            _hint(r"\bstrep\s+throat\b", 2, "strong"),
        ],
        cues=SORE_THROAT_CUES,
        duration_question="durationDays",
    ),
}
