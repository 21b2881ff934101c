from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import List, Optional

import numpy as np
import structlog

from flowrag.domain.retrieval.types import ChunkRecord, PartitionStats, RetrievedDocument

logger = structlog.get_logger(__name__)


class InMemoryVectorRepository:
    """
    Cosine-similarity chunk index held in memory, optionally snapshotted to a JSON file.

    Implements both IChunkRepository and IVectorIndex. A `knowledge_base_id` of None
    on query means "search every partition".
    """

    def __init__(self, snapshot_path: Optional[str] = None):
        self._records: List[ChunkRecord] = []
        self._lock = threading.Lock()
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        if self.snapshot_path is not None and self.snapshot_path.exists():
            self._load_snapshot(self.snapshot_path)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    async def save_chunks(self, records: List[ChunkRecord]) -> int:
        if not records:
            return 0
        with self._lock:
            self._records.extend(records)
            snapshot = list(self._records)
        if self.snapshot_path is not None:
            self._write_snapshot(self.snapshot_path, snapshot)
        logger.info(
            "chunks_indexed",
            count=len(records),
            knowledge_base_id=records[0].knowledge_base_id,
            document_id=records[0].document_id,
        )
        return len(records)

    async def query(
        self,
        vector: List[float],
        knowledge_base_id: Optional[str],
        count: int,
        min_similarity: float,
    ) -> List[RetrievedDocument]:
        with self._lock:
            candidates = [
                record
                for record in self._records
                if knowledge_base_id is None or record.knowledge_base_id == knowledge_base_id
            ]
        if not candidates or count <= 0:
            return []

        query_vector = np.asarray(vector, dtype=np.float64)
        scored: List[tuple[float, int, ChunkRecord]] = []
        for position, record in enumerate(candidates):
            similarity = self._cosine(query_vector, np.asarray(record.embedding, dtype=np.float64))
            if similarity >= min_similarity:
                scored.append((similarity, position, record))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            RetrievedDocument(
                content=record.content,
                similarity=similarity,
                document_name=record.document_name,
                chunk_index=record.chunk_index,
                document_id=record.document_id,
                metadata=dict(record.metadata),
            )
            for similarity, _, record in scored[:count]
        ]

    async def describe_partition(
        self,
        knowledge_base_id: Optional[str],
        preview_limit: int = 3,
        sort_order: str = "desc",
    ) -> PartitionStats:
        with self._lock:
            records = [
                record
                for record in self._records
                if knowledge_base_id is None or record.knowledge_base_id == knowledge_base_id
            ]
        ordered = list(reversed(records)) if sort_order == "desc" else records
        return PartitionStats(
            knowledge_base_id=knowledge_base_id,
            chunk_count=len(records),
            document_count=len({record.document_id for record in records}),
            preview=[
                {
                    "content": record.content[:200],
                    "chunk_index": record.chunk_index,
                    "document_name": record.document_name,
                    "token_count": record.token_count,
                }
                for record in ordered[: max(0, int(preview_limit))]
            ],
        )

    @staticmethod
    def _cosine(left: np.ndarray, right: np.ndarray) -> float:
        if left.shape != right.shape:
            return 0.0
        denominator = float(np.linalg.norm(left) * np.linalg.norm(right))
        if denominator == 0.0:
            return 0.0
        raw = float(np.dot(left, right) / denominator)
        return min(1.0, max(0.0, raw))

    def _load_snapshot(self, path: Path) -> None:
        payload = json.loads(path.read_text(encoding="utf-8"))
        rows = payload.get("records", []) if isinstance(payload, dict) else []
        self._records = [ChunkRecord.model_validate(row) for row in rows]
        logger.info("vector_snapshot_loaded", path=str(path), count=len(self._records))

    @staticmethod
    def _write_snapshot(path: Path, records: List[ChunkRecord]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"records": [record.model_dump(mode="json") for record in records]}
        path.write_text(json.dumps(payload), encoding="utf-8")
