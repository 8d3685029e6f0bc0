"""Public model re-exports for otcflow_rules.

Consumers should import from ``otcflow_rules.models`` rather than
reaching into sub-modules directly.
"""

# --- Rule packs ---
from otcflow_rules.models.pack import (
    AdviceRule,
    Check,
    Complaint,
    DefaultRule,
    DerivedValue,
    ExtractionProfile,
    IntakeRequirements,
    KeywordHint,
    OutcomeRule,
    OutcomeTrace,
    PackLogic,
    PackSource,
    Question,
    RequiredFields,
    RulePack,
    Section,
    SymptomCue,
    TraceDetail,
)

# --- Intake / evaluation ---
from otcflow_rules.models.intake import (
    EvaluationResult,
    Intake,
    MissingField,
    PatientDetails,
    TraceEntry,
)

# --- Extraction / suggestions ---
from otcflow_rules.models.extraction import (
    Evidence,
    FieldExtraction,
    PackGuess,
    Suggestion,
    TranscriptExtraction,
)

__all__ = [
    # Rule packs
    "AdviceRule",
    "Check",
    "Complaint",
    "DefaultRule",
    "DerivedValue",
    "ExtractionProfile",
    "IntakeRequirements",
    "KeywordHint",
    "OutcomeRule",
    "OutcomeTrace",
    "PackLogic",
    "PackSource",
    "Question",
    "RequiredFields",
    "RulePack",
    "Section",
    "SymptomCue",
    "TraceDetail",
    # Intake / evaluation
    "EvaluationResult",
    "Intake",
    "MissingField",
    "PatientDetails",
    "TraceEntry",
    # Extraction / suggestions
    "Evidence",
    "FieldExtraction",
    "PackGuess",
    "Suggestion",
    "TranscriptExtraction",
]
