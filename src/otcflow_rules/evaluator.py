"""ConditionEvaluator - interprets the rule-pack logic language.

Expressions are plain JSON trees:

  - a literal (string, number, bool, null) evaluates to itself
  - a list evaluates element-wise
  - a dict with exactly one key that is a known operator is an operation,
    ``{"operator": operand}``
  - any other dict is data and is evaluated key-wise

Operators are resolved strictly against a fixed name table:

  var                 - dotted-path lookup into the context
  ==, !=              - strict (in)equality
  >, >=, <, <=        - ordering; False when a side is missing or unorderable
  and, or, !          - boolean combinators (Python truthiness)
  +, -, *, /          - n-ary arithmetic; a zero divisor yields +inf
  if                  - condition/value ladder with optional trailing else
  includes            - list or substring membership

Reserved json-logic names that are not implemented raise
:class:`OperatorNotSupportedError` instead of falling through as data.
"""

from __future__ import annotations

import math
from numbers import Number
from typing import Any, Callable

from otcflow_rules.errors import ExpressionError, OperatorNotSupportedError

# Names reserved by the logic language but not implemented by this engine.
RESERVED_OPERATORS: frozenset[str] = frozenset({
    "===", "!==", "!!", "%", "in", "cat", "substr", "min", "max", "merge",
    "missing", "missing_some", "some", "all", "none", "map", "filter",
    "reduce", "log", "?:",
})


def get_path_value(path: Any, data: Any) -> Any:
    """Resolve a dotted path (or list of segments) against nested data.

    Returns ``None`` as soon as a segment is absent.  An empty path returns
    the data itself.  Numeric segments index into lists.
    """
    if path is None or path == "":
        return data
    parts = path if isinstance(path, list) else str(path).split(".")
    current = data
    for part in parts:
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part if isinstance(part, str) else str(part))
        elif isinstance(current, (list, tuple)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            return None
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    """Arithmetic coercion: falsy → 0, True → 1, numeric strings parsed, else NaN."""
    if value is None or value is False or value == "":
        return 0
    if value is True:
        return 1
    if _is_number(value):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _strict_equals(left: Any, right: Any) -> bool:
    """Equality without bool/number or string/number cross-matching."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _orderable(left: Any, right: Any) -> tuple[Any, Any] | None:
    """Return a pair that can be compared with < / >, or None."""
    if left is None or right is None:
        return None
    if isinstance(left, str) and isinstance(right, str):
        return left, right
    lnum, rnum = _to_number(left), _to_number(right)
    if math.isnan(lnum) or math.isnan(rnum):
        return None
    return lnum, rnum


def _as_list(operand: Any) -> list:
    return operand if isinstance(operand, list) else [operand]


class ConditionEvaluator:
    """Evaluates logic expressions against an arbitrary data context.

    Pure and reentrant: the evaluator holds no state besides its operator
    table, so a single instance can be shared freely.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[Any, Any], Any]] = {
            "var": self._op_var,
            "==": self._compare(_strict_equals),
            "!=": self._compare(lambda a, b: not _strict_equals(a, b)),
            ">": self._ordering(lambda a, b: a > b),
            ">=": self._ordering(lambda a, b: a >= b),
            "<": self._ordering(lambda a, b: a < b),
            "<=": self._ordering(lambda a, b: a <= b),
            "and": self._op_and,
            "or": self._op_or,
            "!": self._op_not,
            "+": self._op_add,
            "-": self._op_subtract,
            "*": self._op_multiply,
            "/": self._op_divide,
            "if": self._op_if,
            "includes": self._op_includes,
        }

    @property
    def operators(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def evaluate(self, expression: Any, data: Any) -> Any:
        """Evaluate ``expression`` against ``data``.

        Raises:
            OperatorNotSupportedError: a reserved operator is used.
            ExpressionError: an operator's operand has the wrong shape.
        """
        if isinstance(expression, list):
            return [self.evaluate(item, data) for item in expression]
        if not isinstance(expression, dict):
            return expression
        if len(expression) != 1:
            return {key: self.evaluate(value, data) for key, value in expression.items()}

        operator, operand = next(iter(expression.items()))
        handler = self._handlers.get(operator)
        if handler is not None:
            return handler(operand, data)
        if operator in RESERVED_OPERATORS:
            raise OperatorNotSupportedError(operator)
        # Not an operator: a single-key data object
        return {operator: self.evaluate(operand, data)}

    # ------------------------------------------------------------------
    # Operator handlers
    # ------------------------------------------------------------------

    def _evaluate_all(self, operand: Any, data: Any) -> list:
        return [self.evaluate(item, data) for item in _as_list(operand)]

    def _binary(self, operand: Any, data: Any) -> tuple[Any, Any]:
        if not isinstance(operand, list) or len(operand) < 2:
            raise ExpressionError(f"Comparison expects two operands, got {operand!r}")
        left, right = self._evaluate_all(operand[:2], data)
        return left, right

    def _compare(self, fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
        def handler(operand: Any, data: Any) -> bool:
            return fn(*self._binary(operand, data))
        return handler

    def _ordering(self, fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
        def handler(operand: Any, data: Any) -> bool:
            pair = _orderable(*self._binary(operand, data))
            if pair is None:
                return False
            return fn(*pair)
        return handler

    def _op_var(self, operand: Any, data: Any) -> Any:
        return get_path_value(operand, data)

    def _op_and(self, operand: Any, data: Any) -> bool:
        return all(bool(v) for v in self._evaluate_all(operand, data))

    def _op_or(self, operand: Any, data: Any) -> bool:
        return any(bool(v) for v in self._evaluate_all(operand, data))

    def _op_not(self, operand: Any, data: Any) -> bool:
        if isinstance(operand, list) and len(operand) == 1:
            operand = operand[0]
        return not self.evaluate(operand, data)

    def _op_add(self, operand: Any, data: Any) -> float:
        total = 0
        for value in self._evaluate_all(operand, data):
            total = total + _to_number(value)
        return total

    def _op_subtract(self, operand: Any, data: Any) -> float:
        values = self._evaluate_all(operand, data)
        if not values:
            return 0
        if len(values) == 1:
            return -_to_number(values[0])
        total = _to_number(values[0])
        for value in values[1:]:
            total = total - _to_number(value)
        return total

    def _op_multiply(self, operand: Any, data: Any) -> float:
        total = 1
        for value in self._evaluate_all(operand, data):
            total = total * _to_number(value)
        return total

    def _op_divide(self, operand: Any, data: Any) -> float:
        # A zero divisor yields +inf for that step rather than raising.
        values = self._evaluate_all(operand, data)
        if not values:
            return 0
        total = _to_number(values[0])
        for value in values[1:]:
            divisor = _to_number(value)
            total = math.inf if divisor == 0 else total / divisor
        return total

    def _op_if(self, operand: Any, data: Any) -> Any:
        args = _as_list(operand)
        for i in range(0, len(args) - 1, 2):
            if self.evaluate(args[i], data):
                return self.evaluate(args[i + 1], data)
        if len(args) % 2 == 1:
            return self.evaluate(args[-1], data)
        return None

    def _op_includes(self, operand: Any, data: Any) -> bool:
        collection, value = self._binary(operand, data)
        if isinstance(collection, list):
            return any(_strict_equals(item, value) for item in collection)
        if isinstance(collection, str):
            return display_value(value) in collection
        return False


def display_value(value: Any) -> str:
    """String form used for substring checks and template output."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, float) and math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return str(value)


_default_evaluator = ConditionEvaluator()


def evaluate_expression(expression: Any, data: Any) -> Any:
    """Evaluate with the shared module-level evaluator."""
    return _default_evaluator.evaluate(expression, data)
