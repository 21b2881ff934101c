from __future__ import annotations

from typing import List, Sequence

import structlog
from pydantic import BaseModel

from flowrag.domain.graph.types import ContextFormat
from flowrag.domain.ingestion.chunking.token_estimator import estimate_tokens
from flowrag.domain.retrieval.types import RetrievedDocument

logger = structlog.get_logger(__name__)


class AssembledContext(BaseModel):
    text: str = ""
    documents_included: int = 0
    total_documents: int = 0
    total_tokens: int = 0
    format: ContextFormat = ContextFormat.STRUCTURED

    @property
    def nothing_fit(self) -> bool:
        """Documents were offered but the first one already exceeded the budget."""
        return self.total_documents > 0 and self.documents_included == 0


def _render(document: RetrievedDocument, position: int, fmt: ContextFormat, include_metadata: bool) -> str:
    if fmt == ContextFormat.CONCATENATED:
        return document.content

    relevance = round(document.similarity * 100)
    if fmt == ContextFormat.MARKDOWN:
        header = f"### Document {position}"
        if include_metadata and document.document_name:
            header += f"\n*Source: {document.document_name} ({relevance}% relevant)*"
        return f"{header}\n\n{document.content}"

    header = f"[Document {position}]"
    if include_metadata and document.document_name:
        header += f"\nSource: {document.document_name}"
    if document.similarity:
        header += f" ({relevance}% relevant)"
    return f"{header}\n\n{document.content}"


def assemble(
    documents: Sequence[RetrievedDocument],
    max_tokens: int,
    format: ContextFormat | str = ContextFormat.STRUCTURED,
    separator: str = "\n\n---\n\n",
    include_metadata: bool = True,
) -> AssembledContext:
    """
    Builds a prompt context from retrieved documents within a token budget.

    Documents are taken best-first (stable on ties) and included whole while the
    running estimate of their contents stays within `max_tokens`; assembly stops at
    the first document that does not fit, so the result is always a prefix of the
    ranked list.
    """
    fmt = ContextFormat(format)
    budget = max(0, int(max_tokens))
    ranked = sorted(documents, key=lambda doc: -doc.similarity)

    rendered: List[str] = []
    total_tokens = 0
    for document in ranked:
        document_tokens = estimate_tokens(document.content)
        if total_tokens + document_tokens > budget:
            break
        total_tokens += document_tokens
        rendered.append(_render(document, len(rendered) + 1, fmt, include_metadata))

    result = AssembledContext(
        text=separator.join(rendered),
        documents_included=len(rendered),
        total_documents=len(ranked),
        total_tokens=total_tokens,
        format=fmt,
    )
    if result.nothing_fit:
        logger.warning(
            "context_budget_exhausted_by_first_document",
            max_tokens=budget,
            first_document_tokens=estimate_tokens(ranked[0].content),
        )
    return result
