"""
Nodes for the RAG Ingest Graph.
Implements Chunk -> Embed -> Index for loading a document into a knowledge base.
"""

from collections import Counter
from typing import Any, Dict

import structlog

from flowrag.domain.ingestion.chunking import TextChunker
from flowrag.domain.retrieval.ports import IChunkRepository
from flowrag.domain.retrieval.types import ChunkRecord
from flowrag.services.embedding_service import EmbeddingGenerator
from flowrag.workflows.rag_ingest.state import RagIngestState

logger = structlog.get_logger(__name__)


class RagIngestNodes:
    def __init__(self, generator: EmbeddingGenerator, repository: IChunkRepository, chunker: TextChunker | None = None):
        self.generator = generator
        self.repository = repository
        self.chunker = chunker or TextChunker()

    async def chunk_node(self, state: RagIngestState) -> Dict[str, Any]:
        try:
            chunks = self.chunker.chunk(
                state.get("text", ""),
                strategy=state.get("strategy", "paragraph"),
                target_tokens=int(state.get("chunk_size", 500)),
                overlap_tokens=int(state.get("overlap", 50)),
                preserve_boundaries=bool(state.get("preserve_sentences", True)),
            )
        except ValueError as exc:
            return {"status": "failed", "error": str(exc), "chunks": []}
        if not chunks:
            return {"status": "failed", "error": "document has no text to ingest", "chunks": []}
        logger.info("ingest_chunked", document=state.get("document_name"), chunks=len(chunks))
        return {"chunks": [chunk.model_dump() for chunk in chunks]}

    async def embed_node(self, state: RagIngestState) -> Dict[str, Any]:
        chunks = state.get("chunks", [])
        outcomes = await self.generator.embed_many(
            [chunk["content"] for chunk in chunks], int(state.get("dimensions", 1536))
        )
        methods = Counter(outcome.method for outcome in outcomes)
        return {"vectors": [outcome.vector for outcome in outcomes], "method_counts": dict(methods)}

    async def index_node(self, state: RagIngestState) -> Dict[str, Any]:
        chunks = state.get("chunks", [])
        vectors = state.get("vectors", [])
        records = [
            ChunkRecord(
                content=chunk["content"],
                chunk_index=chunk["index"],
                document_id=state["document_id"],
                document_name=state.get("document_name") or "Untitled",
                embedding=vector,
                token_count=chunk["token_count"],
                knowledge_base_id=state.get("knowledge_base_id"),
                metadata={"source": "ingest_workflow"},
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        indexed = await self.repository.save_chunks(records)
        return {"indexed_count": indexed, "status": "success", "error": None}


def route_after_chunking(state: RagIngestState) -> str:
    return "end" if state.get("status") == "failed" else "embed"
