from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, cast

import structlog

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext, text_of
from flowrag.domain.graph.types import Node, NodeStatus, RouterPayload
from flowrag.domain.routing import router_engine
from flowrag.domain.routing.types import DEFAULT_HANDLE, DefaultBehavior, branch_handle

logger = structlog.get_logger(__name__)


def build_input_record(inputs: List[Node]) -> Dict[str, Any]:
    """
    The record conditions are evaluated against.

    Top-level keys describe the first input (its payload fields, `content`, `label`
    and `kind`); when that content is a JSON object its keys are merged on top.
    Every input is also available positionally under `inputs`.
    """
    record: Dict[str, Any] = {
        "inputs": [
            {"id": node.id, "kind": node.kind.value, "label": node.data.label, "content": text_of(node)}
            for node in inputs
        ]
    }
    if not inputs:
        record["content"] = ""
        return record

    primary = inputs[0]
    content = text_of(primary)
    record.update(primary.data.payload.model_dump(mode="json"))
    record.update({"content": content, "label": primary.data.label, "kind": primary.kind.value})
    try:
        parsed = json.loads(content) if content.strip() else None
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        record.update(parsed)
    return record


class RouterNodeHandler(INodeHandler):
    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        payload = cast(RouterPayload, node.data.payload)
        record = build_input_record(inputs)
        evaluation = router_engine.evaluate(payload.conditions, record, payload.evaluate_all)

        data: Dict[str, Any] = {
            "input_data": record,
            "evaluation_results": evaluation.per_condition_result,
            "matched_branch": evaluation.matched_branch,
            "matched_branches": evaluation.matched_branches,
            "last_evaluated_at": datetime.now(timezone.utc).isoformat(),
        }

        if evaluation.has_match:
            handles = frozenset(branch_handle(condition_id) for condition_id in evaluation.matched_condition_ids)
            logger.info("router_branch_selected", node_id=node.id, branches=evaluation.matched_branches)
            return HandlerResult(data=data, active_handles=handles)

        behavior = payload.default_behavior
        logger.info("router_no_match", node_id=node.id, default_behavior=behavior.value)
        if behavior == DefaultBehavior.CONTINUE:
            return HandlerResult(data=data, active_handles=frozenset({DEFAULT_HANDLE}))
        if behavior == DefaultBehavior.STOP:
            return HandlerResult(data=data, active_handles=frozenset())
        return HandlerResult(
            data=data,
            status=NodeStatus.ERROR,
            error="No router condition matched and the default behavior is 'error'.",
            active_handles=frozenset(),
        )
