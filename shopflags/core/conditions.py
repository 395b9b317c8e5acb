"""Typed predicate evaluation shared by flags and experiment targeting.

Every helper here is total: a malformed comparison value or an unknown
operator makes the condition fail instead of raising.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Union

from shopflags.core.context import EvaluationContext, parse_datetime
from shopflags.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_MISSING = object()


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"


@dataclass
class Condition:
    """A predicate over a dotted path into the evaluation context."""

    key: str
    operator: Union[ConditionOperator, str]
    value: Any = None

    def evaluate(self, context: EvaluationContext) -> bool:
        actual = resolve_path(self.key, context)
        return evaluate_operator(self.operator, actual, self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "operator": _operator_name(self.operator), "value": self.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        try:
            return cls(
                key=str(data["key"]),
                operator=coerce_operator(data["operator"]),
                value=data.get("value"),
            )
        except KeyError as e:
            raise ConfigurationError(f"Invalid condition {dict(data)!r}: missing {e}") from e


def _operator_name(operator: Union[ConditionOperator, str]) -> str:
    return operator.value if isinstance(operator, ConditionOperator) else str(operator)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _strict_equals(actual: Any, expected: Any) -> bool:
    # True == 1 in Python; a bool only ever equals another bool here.
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _to_number(value: Any) -> float:
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp() * 1000
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_sequence(value):
        return ",".join(_to_string(v) for v in value)
    return str(value)


def evaluate_operator(operator: Any, actual: Any, expected: Any) -> bool:
    """Apply ``operator`` to a context-derived value and a comparison value."""
    try:
        op = ConditionOperator(operator)
    except ValueError:
        logger.debug(f"Unknown condition operator: {operator!r}")
        return False

    if op is ConditionOperator.EQUALS:
        return _strict_equals(actual, expected)
    if op is ConditionOperator.IN:
        return _is_sequence(expected) and any(_strict_equals(actual, v) for v in expected)
    if op is ConditionOperator.NOT_IN:
        return _is_sequence(expected) and not any(_strict_equals(actual, v) for v in expected)
    if op is ConditionOperator.GREATER_THAN:
        return _to_number(actual) > _to_number(expected)
    if op is ConditionOperator.LESS_THAN:
        return _to_number(actual) < _to_number(expected)
    if op is ConditionOperator.CONTAINS:
        if actual is None or expected is None:
            return False
        return _to_string(expected) in _to_string(actual)
    return False


def evaluate_date_condition(operator: Any, current_date: datetime, value: Any) -> bool:
    """Compare ``current_date`` against a parsed target date."""
    try:
        target = parse_datetime(value)
    except (TypeError, ValueError):
        return False
    if target is None:
        return False

    if operator == ConditionOperator.GREATER_THAN:
        return current_date > target
    if operator == ConditionOperator.LESS_THAN:
        return current_date < target
    return False


def resolve_path(path: str, context: EvaluationContext) -> Any:
    """Look up a dotted path (``user.role``, ``session.cart_value``) in the context.

    A first segment that is not a top-level context field is looked up in
    ``custom_properties``. Missing segments resolve to ``None``.
    """
    root: Dict[str, Any] = context.to_dict()
    parts = path.split(".") if path else []
    if not parts:
        return None
    if parts[0] not in root:
        root = root["custom_properties"]

    value: Any = root
    for part in parts:
        if not isinstance(value, Mapping):
            return None
        value = value.get(part, _MISSING)
        if value is _MISSING:
            return None
    return value


def coerce_operator(value: Any) -> Union[ConditionOperator, str]:
    """Return the matching operator, keeping unknown names as plain strings.

    Unknown operators are kept so the condition fails at evaluation time
    rather than rejecting the whole definition.
    """
    try:
        return ConditionOperator(value)
    except ValueError:
        logger.warning(f"Unknown condition operator {value!r}; condition will never match")
        return str(value)


__all__ = [
    "Condition",
    "ConditionOperator",
    "coerce_operator",
    "evaluate_date_condition",
    "evaluate_operator",
    "resolve_path",
]
