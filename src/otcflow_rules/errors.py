"""Exception hierarchy for the OTC Flow SDK.

Two families matter to callers:

  - **Trust failures** (:class:`RulePackTrustError`) - a manifest, signature,
    key or pack file could not be fetched or did not verify.  Fatal to the
    load; no pack from that load is ever published.
  - **Rule-authoring errors** (:class:`RuleAuthoringError`) - a loaded pack
    contains logic the engine cannot interpret.  Fatal to the current
    evaluation only.

Missing intake fields and ambiguous transcripts are *not* errors; they are
represented in the returned results.
"""


class OtcFlowError(Exception):
    """Base exception for all OTC Flow errors."""


# ---------------------------------------------------------------------------
# Trust pipeline
# ---------------------------------------------------------------------------

class RulePackTrustError(OtcFlowError):
    """Raised when rule packs cannot be loaded from a verified source."""


class RulePackFetchError(RulePackTrustError):
    """A manifest, signature, key or pack file could not be fetched."""

    def __init__(self, message: str, *, path: str, status: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.status = status


class ManifestSignatureError(RulePackTrustError):
    """The manifest signature is invalid or could not be checked."""


class ChecksumMismatchError(RulePackTrustError):
    """A pack file's content digest differs from the manifest checksum."""

    def __init__(self, path: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for {path}. Expected {expected}, got {actual}."
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class RulePackFormatError(RulePackTrustError):
    """A verified document is not valid JSON or does not match the pack schema."""


# ---------------------------------------------------------------------------
# Rule authoring
# ---------------------------------------------------------------------------

class RuleAuthoringError(OtcFlowError):
    """A rule pack contains logic the engine cannot interpret."""


class ExpressionError(RuleAuthoringError):
    """An expression is malformed (wrong operand shape, bad arity)."""


class OperatorNotSupportedError(ExpressionError):
    """A reserved logic operator is used but not implemented."""

    def __init__(self, operator: str) -> None:
        super().__init__(f"Operator {operator} not supported.")
        self.operator = operator
