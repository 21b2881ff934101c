from .condition_evaluator import evaluate_condition, resolve_path
from .router_engine import evaluate
from .types import (
    ConditionOperator,
    DefaultBehavior,
    RouterCondition,
    RouterEvaluation,
    branch_handle,
)
