from __future__ import annotations

from flowrag.domain.retrieval.types import RetrievedDocument
from flowrag.services.knowledge.context_assembler import assemble


def _doc(content: str, similarity: float, name: str | None = None) -> RetrievedDocument:
    return RetrievedDocument(content=content, similarity=similarity, document_name=name)


def test_structured_header_includes_source_and_relevance() -> None:
    context = assemble([_doc("Alpha", 0.9, "a.md")], max_tokens=100)

    assert context.text == "[Document 1]\nSource: a.md (90% relevant)\n\nAlpha"
    assert context.documents_included == 1
    assert context.total_tokens == 2


def test_documents_are_ranked_and_cut_at_the_budget() -> None:
    documents = [
        _doc("x" * 40, 0.5, "low.md"),
        _doc("y" * 40, 0.9, "high.md"),
        _doc("z" * 40, 0.7, "mid.md"),
    ]

    context = assemble(documents, max_tokens=25, format="concatenated", separator="|")

    assert context.text == "y" * 40 + "|" + "z" * 40
    assert context.documents_included == 2
    assert context.total_documents == 3
    assert context.total_tokens == 20
    assert not context.nothing_fit


def test_assembly_stops_at_first_document_that_does_not_fit() -> None:
    documents = [_doc("a" * 8, 0.9), _doc("b" * 80, 0.8), _doc("c" * 4, 0.7)]

    context = assemble(documents, max_tokens=10, format="concatenated")

    assert context.documents_included == 1
    assert context.text == "a" * 8


def test_oversized_first_document_means_nothing_fit() -> None:
    context = assemble([_doc("w" * 400, 0.9, "big.md")], max_tokens=10)

    assert context.text == ""
    assert context.documents_included == 0
    assert context.nothing_fit


def test_no_documents_is_not_a_budget_problem() -> None:
    context = assemble([], max_tokens=10)

    assert context.text == ""
    assert not context.nothing_fit


def test_markdown_format_and_metadata_toggle() -> None:
    documents = [_doc("Body", 0.5, "notes.md")]

    with_metadata = assemble(documents, max_tokens=100, format="markdown")
    without_metadata = assemble(documents, max_tokens=100, format="markdown", include_metadata=False)

    assert with_metadata.text == "### Document 1\n*Source: notes.md (50% relevant)*\n\nBody"
    assert without_metadata.text == "### Document 1\n\nBody"


def test_equal_similarity_keeps_input_order() -> None:
    documents = [_doc("first", 0.6), _doc("second", 0.6)]

    context = assemble(documents, max_tokens=100, format="concatenated", separator=" ")

    assert context.text == "first second"
