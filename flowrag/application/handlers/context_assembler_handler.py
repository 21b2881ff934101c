from __future__ import annotations

from typing import List, cast

import structlog

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext, of_kind
from flowrag.domain.exceptions import HandlerError
from flowrag.domain.graph.types import ContextAssemblerPayload, Node, NodeKind, RetrieverPayload
from flowrag.domain.ingestion.chunking import estimate_tokens
from flowrag.domain.retrieval.types import RetrievedDocument
from flowrag.services.knowledge.context_assembler import assemble

logger = structlog.get_logger(__name__)

RECOMMENDED_THRESHOLD = 0.3


class ContextAssemblerNodeHandler(INodeHandler):
    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        payload = cast(ContextAssemblerPayload, node.data.payload)
        retrievers = [cast(RetrieverPayload, upstream.data.payload) for upstream in of_kind(inputs, NodeKind.RETRIEVER)]

        documents: List[RetrievedDocument] = []
        for retriever in retrievers:
            documents.extend(retriever.retrieved_documents)

        if not documents:
            ran = [retriever for retriever in retrievers if retriever.retrieval_metadata is not None]
            if ran:
                threshold = ran[0].settings.threshold
                raise HandlerError(
                    f"The retriever returned 0 documents at threshold {threshold:.2f}. "
                    f"Lower the threshold (recommended {RECOMMENDED_THRESHOLD}) or check the knowledge base."
                )
            raise HandlerError("No retrieved documents. Connect a Retriever node and run it first.")

        settings = payload.settings
        assembled = assemble(
            documents,
            max_tokens=settings.max_tokens,
            format=settings.format,
            separator=settings.separator,
            include_metadata=settings.include_metadata,
        )
        if assembled.nothing_fit:
            best = max(documents, key=lambda doc: doc.similarity)
            raise HandlerError(
                f"The most relevant document (~{estimate_tokens(best.content)} tokens) exceeds "
                f"the context budget of {settings.max_tokens} tokens. Increase Max Tokens."
            )

        logger.info(
            "context_assembled",
            node_id=node.id,
            documents_included=assembled.documents_included,
            total_documents=assembled.total_documents,
            estimated_tokens=assembled.total_tokens,
        )
        return HandlerResult(
            data={
                "assembled_context": assembled.text,
                "context_metadata": {
                    "documents_included": assembled.documents_included,
                    "total_documents": assembled.total_documents,
                    "estimated_tokens": assembled.total_tokens,
                    "format": assembled.format.value,
                },
            }
        )
