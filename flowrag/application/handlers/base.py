from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Optional

from flowrag.domain.graph.types import (
    AssistantPayload,
    FileUploadPayload,
    GenerationPayload,
    Node,
    NodeKind,
    NodeStatus,
    ReferencePayload,
    TextPayload,
)

if TYPE_CHECKING:
    from flowrag.application.graph_store import GraphStore


@dataclass
class HandlerResult:
    """
    What a handler wants written back to its node.

    `data` is shallow-merged into the node data. `active_handles` restricts which
    outgoing edges (by source handle) the executor follows; None follows all of them.
    Edges without a source handle are always followed.
    """

    data: Dict[str, Any] = field(default_factory=dict)
    status: NodeStatus = NodeStatus.COMPLETE
    error: Optional[str] = None
    active_handles: Optional[FrozenSet[str]] = None


@dataclass(frozen=True)
class RunContext:
    run_id: str
    store: "GraphStore"
    cancel_event: asyncio.Event

    def upstream(self, node_id: str) -> List[Node]:
        """Current snapshots of the node's inputs, in edge order."""
        nodes = (self.store.get_node(input_id) for input_id in self.store.neighbors(node_id).inputs)
        return [node for node in nodes if node is not None]


class INodeHandler(ABC):
    @abstractmethod
    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        pass


def text_of(node: Node) -> str:
    """Primary textual content a node exposes to downstream nodes ("" when none)."""
    payload = node.data.payload
    if isinstance(payload, (TextPayload, ReferencePayload, FileUploadPayload)):
        return payload.content
    if isinstance(payload, (AssistantPayload, GenerationPayload)):
        return payload.generated_content or payload.prompt
    assembled = getattr(payload, "assembled_context", None)
    if isinstance(assembled, str):
        return assembled
    return ""


def first_text(inputs: Iterable[Node]) -> str:
    for node in inputs:
        text = text_of(node)
        if text.strip():
            return text
    return ""


def of_kind(inputs: Iterable[Node], *kinds: NodeKind) -> List[Node]:
    return [node for node in inputs if node.kind in kinds]
