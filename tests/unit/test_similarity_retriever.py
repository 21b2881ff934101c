from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from flowrag.domain.retrieval.types import ChunkRecord, RetrievedDocument
from flowrag.infrastructure.repositories.in_memory_vector_repository import InMemoryVectorRepository
from flowrag.services.retrieval.similarity_retriever import SimilarityRetriever, rank_documents


def _doc(content: str, similarity: float) -> RetrievedDocument:
    return RetrievedDocument(content=content, similarity=similarity, document_name=f"{content}.md")


def _record(content: str, embedding: List[float], kb: Optional[str] = "kb-1", index: int = 0) -> ChunkRecord:
    return ChunkRecord(
        content=content,
        chunk_index=index,
        document_id=f"doc-{content}",
        document_name=f"{content}.md",
        embedding=embedding,
        token_count=1,
        knowledge_base_id=kb,
    )


class _DummyIndex:
    def __init__(self, documents: List[RetrievedDocument]):
        self.documents = documents
        self.calls: list[tuple[Optional[str], int, float]] = []

    async def query(self, vector, knowledge_base_id, count, min_similarity):
        self.calls.append((knowledge_base_id, count, min_similarity))
        return list(self.documents)


def test_rank_documents_filters_orders_and_limits() -> None:
    candidates = [_doc("a", 0.2), _doc("b", 0.9), _doc("c", 0.5), _doc("d", 0.7)]

    result = rank_documents(candidates, top_k=2, threshold=0.4)

    assert [doc.content for doc in result.documents] == ["b", "d"]
    assert [doc.content for doc in result.near_misses] == ["a"]
    assert result.candidates_considered == 4


def test_rank_documents_keeps_incoming_order_for_ties() -> None:
    candidates = [_doc("first", 0.6), _doc("second", 0.6), _doc("third", 0.8)]

    result = rank_documents(candidates, top_k=5, threshold=0.0)

    assert [doc.content for doc in result.documents] == ["third", "first", "second"]


def test_threshold_above_every_candidate_returns_nothing() -> None:
    result = rank_documents([_doc("a", 0.5), _doc("b", 0.6)], top_k=5, threshold=0.95)

    assert result.documents == []
    assert [doc.similarity for doc in result.near_misses] == [0.6, 0.5]


def test_retriever_overfetches_candidates() -> None:
    index = _DummyIndex([_doc("a", 0.9)])
    retriever = SimilarityRetriever(index, overfetch_min=20, base_threshold=0.0)

    asyncio.run(retriever.retrieve([1.0, 0.0], top_k=3, threshold=0.3, knowledge_base_id="kb-1"))
    asyncio.run(retriever.retrieve([1.0, 0.0], top_k=15, threshold=0.3, knowledge_base_id="kb-1"))

    assert index.calls == [("kb-1", 20, 0.0), ("kb-1", 30, 0.0)]


def test_retriever_validates_arguments() -> None:
    retriever = SimilarityRetriever(_DummyIndex([]), overfetch_min=20, base_threshold=0.0)

    with pytest.raises(ValueError, match="top_k"):
        asyncio.run(retriever.retrieve([1.0], top_k=0, threshold=0.3))
    with pytest.raises(ValueError, match="threshold"):
        asyncio.run(retriever.retrieve([1.0], top_k=3, threshold=1.5))


def test_empty_corpus_returns_empty_result() -> None:
    retriever = SimilarityRetriever(InMemoryVectorRepository(), overfetch_min=20, base_threshold=0.0)

    result = asyncio.run(retriever.retrieve([1.0, 0.0], top_k=5, threshold=0.0, knowledge_base_id="kb-1"))

    assert result.documents == []
    assert result.candidates_considered == 0


def test_repository_scores_cosine_and_clamps_negatives() -> None:
    repository = InMemoryVectorRepository()

    async def _run() -> List[RetrievedDocument]:
        await repository.save_chunks(
            [
                _record("aligned", [1.0, 0.0]),
                _record("partial", [0.6, 0.8], index=1),
                _record("opposite", [-1.0, 0.0], index=2),
            ]
        )
        return await repository.query([1.0, 0.0], "kb-1", 10, 0.0)

    documents = asyncio.run(_run())

    assert [doc.content for doc in documents] == ["aligned", "partial", "opposite"]
    assert documents[0].similarity == pytest.approx(1.0)
    assert documents[1].similarity == pytest.approx(0.6)
    assert documents[2].similarity == 0.0


def test_repository_respects_partitions() -> None:
    repository = InMemoryVectorRepository()

    async def _run() -> tuple[list, list, list]:
        await repository.save_chunks([_record("one", [1.0, 0.0], kb="kb-1")])
        await repository.save_chunks([_record("two", [1.0, 0.0], kb="kb-2")])
        first = await repository.query([1.0, 0.0], "kb-1", 10, 0.0)
        everything = await repository.query([1.0, 0.0], None, 10, 0.0)
        missing = await repository.query([1.0, 0.0], "kb-3", 10, 0.0)
        return first, everything, missing

    first, everything, missing = asyncio.run(_run())

    assert [doc.content for doc in first] == ["one"]
    assert [doc.content for doc in everything] == ["one", "two"]
    assert missing == []


def test_repository_snapshot_round_trip(tmp_path) -> None:
    path = tmp_path / "vectors.json"
    asyncio.run(InMemoryVectorRepository(str(path)).save_chunks([_record("kept", [0.0, 1.0])]))

    reloaded = InMemoryVectorRepository(str(path))
    stats = asyncio.run(reloaded.describe_partition("kb-1"))

    assert len(reloaded) == 1
    assert stats.chunk_count == 1
    assert stats.preview[0]["content"] == "kept"
