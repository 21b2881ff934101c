from __future__ import annotations

from typing import List, Optional, Protocol

from flowrag.domain.retrieval.types import ChunkRecord, PartitionStats, RetrievedDocument


class IVectorIndex(Protocol):
    async def query(
        self,
        vector: List[float],
        knowledge_base_id: Optional[str],
        count: int,
        min_similarity: float,
    ) -> List[RetrievedDocument]:
        ...


class IChunkRepository(Protocol):
    async def save_chunks(self, records: List[ChunkRecord]) -> int:
        ...

    async def describe_partition(
        self,
        knowledge_base_id: Optional[str],
        preview_limit: int = 3,
        sort_order: str = "desc",
    ) -> PartitionStats:
        ...
