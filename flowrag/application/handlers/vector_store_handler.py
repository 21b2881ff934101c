from __future__ import annotations

from typing import List, Optional, cast

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext
from flowrag.domain.graph.types import Node, NodeKind, VectorStorePayload
from flowrag.domain.retrieval.ports import IChunkRepository


def inherited_knowledge_base(inputs: List[Node]) -> Optional[str]:
    """Knowledge base selected on the nearest upstream embedding or vector store node."""
    for upstream in inputs:
        if upstream.kind in (NodeKind.EMBEDDING, NodeKind.VECTOR_STORE):
            knowledge_base_id = getattr(upstream.data.payload, "knowledge_base_id", None)
            if knowledge_base_id:
                return knowledge_base_id
    return None


class VectorStoreNodeHandler(INodeHandler):
    def __init__(self, repository: IChunkRepository):
        self.repository = repository

    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        payload = cast(VectorStorePayload, node.data.payload)
        knowledge_base_id = payload.knowledge_base_id or inherited_knowledge_base(inputs)
        stats = await self.repository.describe_partition(
            knowledge_base_id,
            preview_limit=payload.max_preview_chunks if payload.show_chunk_preview else 0,
            sort_order=payload.sort_order,
        )
        return HandlerResult(data={"knowledge_base_id": knowledge_base_id, "stats": stats})
