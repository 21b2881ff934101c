from __future__ import annotations

from typing import List, Optional, cast

import structlog

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext, first_text
from flowrag.domain.exceptions import HandlerError
from flowrag.domain.graph.types import ChunkerPayload, Node
from flowrag.domain.ingestion.chunking import TextChunker

logger = structlog.get_logger(__name__)


class ChunkerNodeHandler(INodeHandler):
    def __init__(self, chunker: Optional[TextChunker] = None):
        self.chunker = chunker or TextChunker()

    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        payload = cast(ChunkerPayload, node.data.payload)
        text = first_text(inputs)
        if not text.strip():
            raise HandlerError("No text to chunk. Connect a Text, Reference or File Upload node with content.")

        settings = payload.settings
        result = self.chunker.chunk_with_summary(
            text,
            strategy=settings.strategy,
            target_tokens=settings.chunk_size,
            overlap_tokens=settings.overlap,
            preserve_boundaries=settings.preserve_sentences,
        )
        logger.info(
            "chunker_node_completed",
            node_id=node.id,
            strategy=settings.strategy.value,
            total_chunks=result.total_chunks,
            total_tokens=result.total_tokens,
        )
        return HandlerResult(
            data={
                "chunks": result.chunks,
                "total_chunks": result.total_chunks,
                "total_tokens": result.total_tokens,
            }
        )
