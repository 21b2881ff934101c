from __future__ import annotations

import uuid
from collections import Counter
from typing import List, Optional, cast

import structlog

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext, of_kind
from flowrag.domain.exceptions import HandlerError
from flowrag.domain.graph.types import ChunkerPayload, EmbeddedChunk, EmbeddingPayload, Node, NodeKind
from flowrag.domain.ingestion.chunking import Chunk
from flowrag.domain.retrieval.ports import IChunkRepository
from flowrag.domain.retrieval.types import ChunkRecord
from flowrag.services.embedding_service import EmbeddingGenerator

logger = structlog.get_logger(__name__)

CHUNK_SOURCE_TAG = "chunker_node"


class EmbeddingNodeHandler(INodeHandler):
    """
    Embeds every chunk produced by the upstream chunker(s) and, when configured,
    persists them under the node's knowledge base. A node without a knowledge base
    writes to the unscoped partition, which only unfiltered searches see.
    """

    def __init__(self, generator: EmbeddingGenerator, repository: Optional[IChunkRepository] = None):
        self.generator = generator
        self.repository = repository

    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        payload = cast(EmbeddingPayload, node.data.payload)
        chunks: List[Chunk] = []
        for chunker in of_kind(inputs, NodeKind.CHUNKER):
            chunks.extend(cast(ChunkerPayload, chunker.data.payload).chunks)
        if not chunks:
            raise HandlerError("No chunks to embed. Connect a Chunker node with chunks and run it first.")

        settings = payload.settings
        embedded: List[EmbeddedChunk] = []
        methods: Counter[str] = Counter()
        for start in range(0, len(chunks), settings.batch_size):
            batch = chunks[start : start + settings.batch_size]
            outcomes = await self.generator.embed_many([chunk.content for chunk in batch], settings.dimensions)
            for chunk, outcome in zip(batch, outcomes):
                methods[outcome.method] += 1
                embedded.append(
                    EmbeddedChunk(
                        chunk_index=chunk.index,
                        token_count=chunk.token_count,
                        method=outcome.method,
                        vector=outcome.vector,
                    )
                )

        document_id = payload.document_id or str(uuid.uuid4())
        stored = 0
        if settings.store_in_db:
            if self.repository is None:
                raise HandlerError("Storage is enabled but no chunk repository is configured.")
            if payload.knowledge_base_id is None:
                logger.warning("embedding_node_unscoped_storage", node_id=node.id, document_id=document_id)
            stored = await self.repository.save_chunks(
                [
                    ChunkRecord(
                        content=chunk.content,
                        chunk_index=chunk.index,
                        document_id=document_id,
                        document_name=payload.document_name or "Untitled",
                        embedding=item.vector,
                        token_count=chunk.token_count,
                        knowledge_base_id=payload.knowledge_base_id,
                        metadata={"source": CHUNK_SOURCE_TAG, "embedding_method": item.method},
                    )
                    for chunk, item in zip(chunks, embedded)
                ]
            )

        logger.info(
            "embedding_node_completed",
            node_id=node.id,
            chunks=len(embedded),
            stored=stored,
            dimensions=settings.dimensions,
            method_counts=dict(methods),
        )
        return HandlerResult(
            data={
                "embeddings": embedded,
                "stored_count": stored,
                "method_counts": dict(methods),
                "document_id": document_id,
            }
        )
