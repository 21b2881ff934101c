"""
State definition for the RAG Ingest Graph.
"""
from typing import Any, Dict, List, Optional, TypedDict


class RagIngestState(TypedDict, total=False):
    # Input
    text: str
    document_name: str
    document_id: str
    knowledge_base_id: Optional[str]
    strategy: str
    chunk_size: int
    overlap: int
    preserve_sentences: bool
    dimensions: int

    # Internal Processing
    chunks: List[Dict[str, Any]]  # Chunk.model_dump()
    vectors: List[List[float]]
    method_counts: Dict[str, int]

    # Output
    status: str  # 'success', 'failed'
    error: Optional[str]
    indexed_count: int
