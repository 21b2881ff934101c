from __future__ import annotations

from typing import List, Optional, cast

import structlog

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext, first_text
from flowrag.application.handlers.vector_store_handler import inherited_knowledge_base
from flowrag.core.settings import settings
from flowrag.domain.exceptions import ConfigurationError, HandlerError
from flowrag.domain.graph.types import EmbeddingPayload, Node, NodeKind, RetrieverPayload
from flowrag.services.embedding_service import EmbeddingGenerator
from flowrag.services.retrieval.similarity_retriever import SimilarityRetriever

logger = structlog.get_logger(__name__)


def _embedding_dimensions(inputs: List[Node], context: RunContext) -> Optional[int]:
    for upstream in inputs:
        if upstream.kind == NodeKind.EMBEDDING:
            return cast(EmbeddingPayload, upstream.data.payload).settings.dimensions
    for upstream in inputs:
        if upstream.kind == NodeKind.VECTOR_STORE:
            dimensions = _embedding_dimensions(
                [node for node in context.upstream(upstream.id) if node.kind == NodeKind.EMBEDDING],
                context,
            )
            if dimensions is not None:
                return dimensions
    return None


class RetrieverNodeHandler(INodeHandler):
    def __init__(self, generator: EmbeddingGenerator, retriever: SimilarityRetriever):
        self.generator = generator
        self.retriever = retriever

    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        payload = cast(RetrieverPayload, node.data.payload)
        query = (first_text(inputs) or payload.query).strip()
        if not query:
            raise HandlerError("No query provided. Connect a Text node or type a query in the Retriever.")

        knowledge_base_id = payload.knowledge_base_id or inherited_knowledge_base(inputs)
        if not knowledge_base_id:
            raise ConfigurationError(
                "No knowledge base selected. Choose one in the Retriever or connect a Vector Store node that has one."
            )

        dimensions = _embedding_dimensions(inputs, context) or settings.EMBEDDING_DEFAULT_DIMENSIONS
        query_embedding = await self.generator.embed(query, dimensions)
        result = await self.retriever.retrieve(
            query_embedding.vector,
            top_k=payload.settings.top_k,
            threshold=payload.settings.threshold,
            knowledge_base_id=knowledge_base_id,
        )

        logger.info(
            "retriever_node_completed",
            node_id=node.id,
            knowledge_base_id=knowledge_base_id,
            found=len(result.documents),
            embedding_method=query_embedding.method,
        )
        return HandlerResult(
            data={
                "retrieved_documents": result.documents,
                "retrieval_metadata": {
                    "query": query,
                    "knowledge_base_id": knowledge_base_id,
                    "top_k": payload.settings.top_k,
                    "threshold": payload.settings.threshold,
                    "total_found": len(result.documents),
                    "candidates_considered": result.candidates_considered,
                    "near_miss_similarities": [round(doc.similarity, 4) for doc in result.near_misses],
                    "embedding_method": query_embedding.method,
                },
            }
        )
