"""otcflow_rules - OTC clinical decision-support SDK.

Public API:
    PathwayEngine       - runs a rule pack against an intake record
    ConditionEvaluator  - interprets the rule-pack logic language
    TemplateResolver    - renders ``{{ path }}`` templates and ``{"expr": ...}`` values
    RulePackRegistry    - process-scoped set of verified rule packs
    RulePackLoader      - fetches, verifies (signature + checksums) and publishes packs
    TranscriptParser    - heuristic transcript → confidence-scored suggestions
    IntakeSession       - intake record, suggestion lifecycle and live evaluation
    NoteRenderer        - Jinja2 consultation note renderer

Convenience functions:
    evaluate_expression - evaluate with a shared evaluator
    parse_transcript    - parse with built-in hint profiles (or a registry)

Errors:
    OtcFlowError        - base class
    RulePackTrustError  - fetch / signature / checksum / format failure (fatal to a load)
    RuleAuthoringError  - pack logic the engine cannot interpret (fatal to an evaluation)
"""

from otcflow_rules.documentation import NoteRenderer
from otcflow_rules.engine import PathwayEngine
from otcflow_rules.errors import (
    ChecksumMismatchError,
    ExpressionError,
    ManifestSignatureError,
    OperatorNotSupportedError,
    OtcFlowError,
    RuleAuthoringError,
    RulePackFetchError,
    RulePackFormatError,
    RulePackTrustError,
)
from otcflow_rules.evaluator import ConditionEvaluator, evaluate_expression
from otcflow_rules.extraction import SAMPLE_TRANSCRIPTS, TranscriptParser, parse_transcript
from otcflow_rules.loader import RulePackLoader
from otcflow_rules.models import (
    EvaluationResult,
    Intake,
    RulePack,
    Suggestion,
    TranscriptExtraction,
)
from otcflow_rules.ruleset import RulePackRegistry
from otcflow_rules.session import IntakeSession, SessionState
from otcflow_rules.templates import TemplateResolver

__all__ = [
    # Engine & registry
    "PathwayEngine",
    "RulePackLoader",
    "RulePackRegistry",
    "ConditionEvaluator",
    "TemplateResolver",
    "NoteRenderer",
    "evaluate_expression",
    # Transcripts & session
    "IntakeSession",
    "SessionState",
    "TranscriptParser",
    "parse_transcript",
    "SAMPLE_TRANSCRIPTS",
    # Models
    "EvaluationResult",
    "Intake",
    "RulePack",
    "Suggestion",
    "TranscriptExtraction",
    # Errors
    "OtcFlowError",
    "RulePackTrustError",
    "RulePackFetchError",
    "ManifestSignatureError",
    "ChecksumMismatchError",
    "RulePackFormatError",
    "RuleAuthoringError",
    "ExpressionError",
    "OperatorNotSupportedError",
]
