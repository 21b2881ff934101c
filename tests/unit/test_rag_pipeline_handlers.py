from __future__ import annotations

import asyncio

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from flowrag.application.graph_executor import GraphExecutor, RunState
from flowrag.application.graph_store import GraphStore
from flowrag.application.handlers.registry import build_default_registry
from flowrag.domain.graph.types import NodeStatus
from flowrag.infrastructure.repositories.in_memory_vector_repository import InMemoryVectorRepository
from flowrag.services.embedding_service import EmbeddingGenerator

DOCUMENT = "Paris is the capital of France."


def _executor(store: GraphStore, repository: InMemoryVectorRepository | None = None) -> GraphExecutor:
    registry = build_default_registry(
        repository=repository or InMemoryVectorRepository(),
        generator=EmbeddingGenerator(use_configured_provider=False),
        llm=FakeListChatModel(responses=["Paris."]),
    )
    return GraphExecutor(store, registry, reject_cycles=True)


def _template(query: str) -> tuple[GraphStore, dict]:
    store = GraphStore()
    ids = store.load_rag_pipeline_template()
    store.update_node_data(ids["document"], {"content": DOCUMENT})
    store.update_node_data(ids["query"], {"content": query})
    return store, ids


def test_template_pipeline_answers_from_indexed_document() -> None:
    store, ids = _template(DOCUMENT)
    repository = InMemoryVectorRepository()

    report = asyncio.run(_executor(store, repository).run())

    assert report.state == RunState.SUCCEEDED
    assert report.failed_nodes == []
    assert len(repository) == 1

    chunker = store.get_node(ids["chunker"])
    assert chunker is not None and chunker.data.payload.total_chunks == 1

    embedding = store.get_node(ids["embedding"])
    assert embedding is not None
    assert embedding.data.payload.stored_count == 1
    assert embedding.data.payload.method_counts == {"fallback": 1}

    vector_store = store.get_node(ids["vector_store"])
    assert vector_store is not None and vector_store.data.payload.stats.chunk_count == 1

    retriever = store.get_node(ids["retriever"])
    assert retriever is not None
    documents = retriever.data.payload.retrieved_documents
    assert len(documents) == 1
    assert documents[0].similarity == pytest.approx(1.0)
    assert retriever.data.payload.retrieval_metadata["knowledge_base_id"] == "default"

    assembler = store.get_node(ids["context_assembler"])
    assert assembler is not None
    assert assembler.data.payload.assembled_context.startswith("[Document 1]\nSource: Untitled (100% relevant)")
    assert DOCUMENT in assembler.data.payload.assembled_context

    assistant = store.get_node(ids["assistant"])
    assert assistant is not None
    assert assistant.data.status == NodeStatus.COMPLETE
    assert assistant.data.payload.generated_content == "Paris."


def test_threshold_above_every_match_explains_empty_retrieval() -> None:
    store, ids = _template("Completely unrelated words about volcanic geology")
    store.update_node_data(ids["retriever"], {"settings": {"top_k": 5, "threshold": 0.99}})

    report = asyncio.run(_executor(store).run())

    assert report.state == RunState.SUCCEEDED
    retriever = store.get_node(ids["retriever"])
    assert retriever is not None and retriever.data.payload.retrieved_documents == []
    assert retriever.data.payload.retrieval_metadata["near_miss_similarities"]
    error = report.records[ids["context_assembler"]].error or ""
    assert "0 documents at threshold 0.99" in error
    assert "recommended 0.3" in error


def test_retriever_without_knowledge_base_is_a_configuration_error() -> None:
    store = GraphStore()
    store.add_node("text", node_id="query")
    store.add_node("retriever", node_id="retriever")
    store.connect("query", "retriever")
    store.update_node_data("query", {"content": "anything"})

    report = asyncio.run(_executor(store).run())

    assert report.failed_nodes == ["retriever"]
    assert "No knowledge base selected" in (report.records["retriever"].error or "")


def test_retriever_without_query_is_an_error() -> None:
    store = GraphStore()
    store.add_node("retriever", node_id="retriever")
    store.update_node_data("retriever", {"knowledge_base_id": "kb-1"})

    report = asyncio.run(_executor(store).run())

    assert "No query provided" in (report.records["retriever"].error or "")


def test_embedding_without_chunks_is_an_error() -> None:
    store = GraphStore()
    store.add_node("embedding", node_id="embedding")

    report = asyncio.run(_executor(store).run())

    assert report.failed_nodes == ["embedding"]
    assert "No chunks to embed" in (report.records["embedding"].error or "")


def test_chunker_without_text_is_an_error() -> None:
    store = GraphStore()
    store.add_node("text", node_id="empty")
    store.add_node("chunker", node_id="chunker")
    store.connect("empty", "chunker")

    report = asyncio.run(_executor(store).run())

    assert "No text to chunk" in (report.records["chunker"].error or "")


def test_oversized_document_exceeds_context_budget() -> None:
    store, ids = _template(DOCUMENT)
    store.update_node_data(ids["context_assembler"], {"settings": {"max_tokens": 2}})

    report = asyncio.run(_executor(store).run())

    assert "exceeds the context budget of 2 tokens" in (report.records[ids["context_assembler"]].error or "")
