"""Template resolution for rule-pack text, lists and structured results.

Pack authors mix three kinds of values in the same document without a type
tag:

  - strings with ``{{ path }}`` placeholders, e.g. ``"Age {{patient.age}}"``
  - ``{"expr": <expression>}`` objects, delegated to the condition evaluator
  - plain lists / objects, resolved recursively

Lists drop entries that resolve to ``None`` or ``""`` so a conditional
``{"expr": {"if": [...]}}`` item can disappear from a warning list.
"""

from __future__ import annotations

import re
from typing import Any

from otcflow_rules.evaluator import (
    ConditionEvaluator,
    display_value,
    get_path_value,
)

# Key that marks an object as an expression rather than structured data.
EXPRESSION_MARKER = "expr"

_PLACEHOLDER = re.compile(r"\{\{\s*([^}]+)\s*\}\}")


class TemplateResolver:
    """Renders templates against a context using a condition evaluator."""

    def __init__(self, evaluator: ConditionEvaluator | None = None) -> None:
        self._evaluator = evaluator or ConditionEvaluator()

    @property
    def evaluator(self) -> ConditionEvaluator:
        return self._evaluator

    def render_template(self, template: Any, data: Any) -> Any:
        """Expand ``{{ path }}`` placeholders; non-strings pass through."""
        if not isinstance(template, str):
            return template

        def _substitute(match: re.Match) -> str:
            value = get_path_value(match.group(1).strip(), data)
            if value is None:
                return "unknown"
            if isinstance(value, list):
                return ", ".join(display_value(v) for v in value)
            return display_value(value)

        return _PLACEHOLDER.sub(_substitute, template)

    def resolve(self, value: Any, data: Any) -> Any:
        """Resolve a template value (string, list, expression or object)."""
        if isinstance(value, list):
            resolved = (self.resolve(item, data) for item in value)
            return [item for item in resolved if item is not None and item != ""]
        if isinstance(value, dict):
            if len(value) == 1 and EXPRESSION_MARKER in value:
                return self._evaluator.evaluate(value[EXPRESSION_MARKER], data)
            return {key: self.resolve(child, data) for key, child in value.items()}
        if isinstance(value, str):
            return self.render_template(value, data)
        return value

    def test(self, expression: Any, data: Any) -> bool:
        """Evaluate a rule expression and coerce the result to a boolean."""
        return bool(self.resolve({EXPRESSION_MARKER: expression}, data))


_default_resolver = TemplateResolver()


def render_template(template: Any, data: Any) -> Any:
    return _default_resolver.render_template(template, data)


def resolve_value(value: Any, data: Any) -> Any:
    return _default_resolver.resolve(value, data)
