from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RetrievedDocument(BaseModel):
    """A chunk returned by similarity search, scored against the query vector."""

    content: str
    similarity: float = Field(ge=0.0, le=1.0)
    document_name: Optional[str] = None
    chunk_index: Optional[int] = None
    document_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChunkRecord(BaseModel):
    """A chunk persisted with its vector under a knowledge base partition."""

    content: str
    chunk_index: int = Field(ge=0)
    document_id: str
    document_name: str = "Untitled"
    embedding: List[float] = Field(min_length=1)
    token_count: int = Field(ge=0)
    knowledge_base_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PartitionStats(BaseModel):
    """Summary of what a knowledge base partition currently holds."""

    knowledge_base_id: Optional[str] = None
    chunk_count: int = 0
    document_count: int = 0
    preview: List[Dict[str, Any]] = Field(default_factory=list)
