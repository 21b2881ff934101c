from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    MATCHES = "matches"


class DefaultBehavior(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    ERROR = "error"


DEFAULT_HANDLE = "default"


def branch_handle(condition_id: str) -> str:
    """Source handle name of the outgoing edge that a matching condition activates."""
    return f"branch-{condition_id}"


class RouterCondition(BaseModel):
    id: str = Field(min_length=1)
    name: str
    field: str = ""
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: str = ""
    enabled: bool = True


class RouterEvaluation(BaseModel):
    """
    Outcome of evaluating a router's ordered conditions against one input record.

    `per_condition_result` holds an entry for every condition that was considered;
    in first-match mode conditions after the winning one are absent.
    """

    matched_branch: Optional[str] = None
    matched_branches: List[str] = Field(default_factory=list)
    matched_condition_ids: List[str] = Field(default_factory=list)
    per_condition_result: Dict[str, bool] = Field(default_factory=dict)

    @property
    def has_match(self) -> bool:
        return self.matched_branch is not None
