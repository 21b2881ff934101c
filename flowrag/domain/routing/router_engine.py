from __future__ import annotations

from typing import Any, Sequence

import structlog

from flowrag.domain.routing.condition_evaluator import evaluate_condition
from flowrag.domain.routing.types import RouterCondition, RouterEvaluation

logger = structlog.get_logger(__name__)


def evaluate(
    conditions: Sequence[RouterCondition],
    input_record: Any,
    evaluate_all: bool = False,
) -> RouterEvaluation:
    """
    Evaluates ordered router conditions against one record.

    First-match mode stops at the first true condition; evaluate-all mode reports
    every matching branch, with the first of them as `matched_branch`.
    Conditions are never mutated.
    """
    results: dict[str, bool] = {}
    matched_names: list[str] = []
    matched_ids: list[str] = []

    for condition in conditions:
        outcome = evaluate_condition(condition, input_record)
        results[condition.id] = outcome
        if not outcome:
            continue
        matched_names.append(condition.name)
        matched_ids.append(condition.id)
        if not evaluate_all:
            break

    logger.debug(
        "router_conditions_evaluated",
        condition_count=len(conditions),
        evaluated=len(results),
        matched=matched_names,
        evaluate_all=evaluate_all,
    )
    return RouterEvaluation(
        matched_branch=matched_names[0] if matched_names else None,
        matched_branches=matched_names,
        matched_condition_ids=matched_ids,
        per_condition_result=results,
    )
