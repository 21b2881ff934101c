"""
Evaluation of a single router condition against an arbitrary input record.

Never raises: missing fields resolve to None, unparsable numbers and invalid
patterns evaluate to False.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Optional

import structlog

from flowrag.domain.routing.types import ConditionOperator, RouterCondition

logger = structlog.get_logger(__name__)

_MISSING = object()


def resolve_path(record: Any, path: str) -> Any:
    """
    Walks a dotted path through nested mappings and sequences.

    `"items.0.name"` indexes lists with integer segments. Any missing segment
    yields None. An empty path returns the record itself.
    """
    if not path:
        return record
    current = record
    for segment in str(path).split("."):
        current = _step(current, segment)
        if current is _MISSING:
            return None
    return current


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, dict):
        return current.get(segment, _MISSING)
    if isinstance(current, (list, tuple)):
        try:
            index = int(segment)
        except ValueError:
            return _MISSING
        if -len(current) <= index < len(current):
            return current[index]
        return _MISSING
    return _MISSING


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        try:
            parsed = float(str(value).strip())
        except ValueError:
            return None
    if math.isnan(parsed):
        return None
    return parsed


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _numeric(actual: Any, expected: Any, compare) -> bool:
    left = to_number(actual)
    right = to_number(expected)
    if left is None or right is None:
        return False
    return bool(compare(left, right))


def _matches(actual: Any, pattern: str) -> bool:
    try:
        return re.search(pattern, to_text(actual), re.IGNORECASE) is not None
    except re.error as exc:
        logger.warning("router_condition_invalid_pattern", pattern=pattern, error=str(exc))
        return False


def evaluate_condition(condition: RouterCondition, record: Any) -> bool:
    if not condition.enabled:
        return False

    actual = resolve_path(record, condition.field)
    operator = condition.operator
    expected = condition.value

    if operator == ConditionOperator.IS_EMPTY:
        return _is_empty(actual)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not _is_empty(actual)
    if operator == ConditionOperator.MATCHES:
        return _matches(actual, expected)
    if operator == ConditionOperator.GREATER_THAN:
        return _numeric(actual, expected, lambda a, b: a > b)
    if operator == ConditionOperator.LESS_THAN:
        return _numeric(actual, expected, lambda a, b: a < b)
    if operator == ConditionOperator.GREATER_OR_EQUAL:
        return _numeric(actual, expected, lambda a, b: a >= b)
    if operator == ConditionOperator.LESS_OR_EQUAL:
        return _numeric(actual, expected, lambda a, b: a <= b)

    left = to_text(actual).lower()
    right = to_text(expected).lower()
    if operator == ConditionOperator.EQUALS:
        return left == right
    if operator == ConditionOperator.NOT_EQUALS:
        return left != right
    if operator == ConditionOperator.CONTAINS:
        return right in left
    if operator == ConditionOperator.NOT_CONTAINS:
        return right not in left
    if operator == ConditionOperator.STARTS_WITH:
        return left.startswith(right)
    if operator == ConditionOperator.ENDS_WITH:
        return left.endswith(right)
    return False
