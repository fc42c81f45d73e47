"""
Condition evaluation against a trigger payload.

All conditions of a workflow must hold (AND); an empty list always passes.
Comparisons follow loose JSON-document semantics: ordering operators coerce
both sides to numbers, `contains` coerces both sides to text (a null needle
is the text "null"), and an operator nobody recognises fails closed.
"""
from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterable

from .models import ConditionOperator
from .schema import Condition

_MISSING = object()


def _to_number(value: Any) -> float:
    if value is _MISSING:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return math.nan
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _to_text(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_to_text(v) for v in value)
    return str(value)


def _needle_text(value: Any) -> str:
    """Condition value as text; a null value is the literal "null", never the empty string."""
    if value is None:
        return "null"
    return _to_text(value)


def _strict_equal(left: Any, right: Any) -> bool:
    if left is _MISSING:
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQ.value: _strict_equal,
    ConditionOperator.NEQ.value: lambda left, right: not _strict_equal(left, right),
    ConditionOperator.GT.value: lambda left, right: _to_number(left) > _to_number(right),
    ConditionOperator.GTE.value: lambda left, right: _to_number(left) >= _to_number(right),
    ConditionOperator.LT.value: lambda left, right: _to_number(left) < _to_number(right),
    ConditionOperator.LTE.value: lambda left, right: _to_number(left) <= _to_number(right),
    ConditionOperator.CONTAINS.value: lambda left, right: _needle_text(right) in _to_text(left),
}


def evaluate_condition(payload: Dict[str, Any], condition: Condition) -> bool:
    compare = OPERATORS.get(condition.op)
    if compare is None:
        return False
    value = (payload or {}).get(condition.field, _MISSING)
    return compare(value, condition.value)


def evaluate_conditions(payload: Dict[str, Any], conditions: Iterable[Condition]) -> bool:
    return all(evaluate_condition(payload, c) for c in conditions)
