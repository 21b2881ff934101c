from __future__ import annotations

from typing import List, Optional, Sequence

import structlog
from pydantic import BaseModel, Field

from flowrag.core.settings import settings
from flowrag.domain.retrieval.ports import IVectorIndex
from flowrag.domain.retrieval.types import RetrievedDocument

logger = structlog.get_logger(__name__)

NEAR_MISS_LIMIT = 3


class RetrievalResult(BaseModel):
    documents: List[RetrievedDocument] = Field(default_factory=list)
    near_misses: List[RetrievedDocument] = Field(default_factory=list)
    candidates_considered: int = 0


def rank_documents(
    candidates: Sequence[RetrievedDocument],
    top_k: int,
    threshold: float,
) -> RetrievalResult:
    """
    Keeps candidates with similarity >= threshold, best first, at most `top_k`.

    Ties keep the candidates' incoming order. The best candidates below the
    threshold are reported as near misses so callers can suggest a lower cutoff.
    """
    limit = max(0, int(top_k))
    ordered = sorted(candidates, key=lambda doc: -doc.similarity)
    accepted = [doc for doc in ordered if doc.similarity >= threshold]
    rejected = [doc for doc in ordered if doc.similarity < threshold]
    return RetrievalResult(
        documents=accepted[:limit],
        near_misses=rejected[:NEAR_MISS_LIMIT],
        candidates_considered=len(candidates),
    )


class SimilarityRetriever:
    def __init__(
        self,
        index: IVectorIndex,
        *,
        overfetch_min: Optional[int] = None,
        base_threshold: Optional[float] = None,
    ):
        self.index = index
        self.overfetch_min = max(1, int(overfetch_min or settings.RETRIEVAL_OVERFETCH_MIN))
        self.base_threshold = float(
            settings.RETRIEVAL_BASE_THRESHOLD if base_threshold is None else base_threshold
        )

    def candidate_count(self, top_k: int) -> int:
        return max(int(top_k) * 2, self.overfetch_min)

    async def retrieve(
        self,
        query_vector: List[float],
        top_k: int,
        threshold: float,
        knowledge_base_id: Optional[str] = None,
    ) -> RetrievalResult:
        if int(top_k) < 1:
            raise ValueError("top_k must be at least 1")
        if not 0.0 <= float(threshold) <= 1.0:
            raise ValueError("threshold must be within [0, 1]")

        candidates = await self.index.query(
            query_vector,
            knowledge_base_id,
            self.candidate_count(top_k),
            self.base_threshold,
        )
        result = rank_documents(candidates, top_k, threshold)

        if candidates and not result.documents:
            logger.info(
                "retrieval_all_below_threshold",
                threshold=threshold,
                best_similarity=result.near_misses[0].similarity if result.near_misses else None,
                candidates=len(candidates),
            )
        logger.debug(
            "retrieval_completed",
            knowledge_base_id=knowledge_base_id,
            top_k=top_k,
            threshold=threshold,
            returned=len(result.documents),
        )
        return result
