"""Constants shared across the SDK.

These values are referenced by the engine, the transcript parser and the
intake session.  A few can be overridden via environment variables so that
deployments can tune review thresholds without code changes.
"""

import os

# Outcomes a pack result may declare.  Anything else is an authoring error.
OUTCOMES: set[str] = {"incomplete", "refer", "advise", "supply"}

# Evidence strength → confidence score.  Fixed table; scores are compared
# with ``>`` so the table order decides which cue wins for a field.
CONFIDENCE_LEVELS: dict[str, float] = {
    "explicit": 0.95,
    "strong": 0.85,
    "moderate": 0.75,
    "weak": 0.6,
    "conflict": 0.35,
    "none": 0.0,
}

# Characters scanned before a match for a negation cue ("no", "denies", ...).
# Overridable via OTCFLOW_NEGATION_WINDOW env var.
NEGATION_WINDOW = int(os.getenv("OTCFLOW_NEGATION_WINDOW", "40"))

# Suggestions at or above this confidence are applied by "apply all confident".
# Overridable via OTCFLOW_CONFIDENT_THRESHOLD env var.
CONFIDENT_SUGGESTION_THRESHOLD = float(os.getenv("OTCFLOW_CONFIDENT_THRESHOLD", "0.85"))

# Timeout (seconds) for rule-pack HTTP fetches.
# Overridable via OTCFLOW_HTTP_TIMEOUT env var.
HTTP_TIMEOUT = float(os.getenv("OTCFLOW_HTTP_TIMEOUT", "10"))

# Default locations of the signed manifest, relative to the rules base URL.
MANIFEST_PATH = "manifest.json"
SIGNATURE_PATH = "manifest.sig.txt"
PUBLIC_KEY_PATH = "public_key.pem"

# RSA-PSS salt length used when signing the manifest.
SIGNATURE_SALT_LENGTH = 32

# Patient fields that are tri-state booleans rather than free values.
PATIENT_BOOLEAN_FIELDS: set[str] = {"pregnant"}

# Human-readable labels for patient-level fields.
PATIENT_FIELD_LABELS: dict[str, str] = {
    "patient.age": "Patient age",
    "patient.sex": "Patient sex",
    "patient.pregnant": "Pregnancy status",
}
