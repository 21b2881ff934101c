"""
Connection compatibility rules between node kinds.

`classify` is pure and cheap; callers recompute it whenever an edge is drawn or
created instead of storing the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet

from flowrag.domain.graph.types import ConnectionValidity, NodeKind, node_label

K = NodeKind

RAG_PIPELINE_KINDS: FrozenSet[NodeKind] = frozenset(
    {K.CHUNKER, K.EMBEDDING, K.RETRIEVER, K.CONTEXT_ASSEMBLER, K.VECTOR_STORE}
)

PURE_SOURCE_KINDS: FrozenSet[NodeKind] = frozenset({K.TEXT, K.REFERENCE, K.FILE_UPLOAD})

TERMINAL_OUTPUT_KINDS: FrozenSet[NodeKind] = frozenset(
    {
        K.REPORT_GENERATOR,
        K.DOCUMENT_GENERATOR,
        K.INFOGRAPHIC_GENERATOR,
        K.PRESENTATION_GENERATOR,
        K.MINDMAP_GENERATOR,
        K.VIDEO_GENERATOR,
    }
)

_OUTPUT_GENERATORS = frozenset(
    {
        K.REPORT_GENERATOR,
        K.DOCUMENT_GENERATOR,
        K.INFOGRAPHIC_GENERATOR,
        K.PRESENTATION_GENERATOR,
        K.MINDMAP_GENERATOR,
    }
)


@dataclass(frozen=True)
class ConnectionRule:
    valid_targets: FrozenSet[NodeKind]
    valid_sources: FrozenSet[NodeKind]


def _rule(targets, sources) -> ConnectionRule:
    return ConnectionRule(valid_targets=frozenset(targets), valid_sources=frozenset(sources))


CONNECTION_RULES: Dict[NodeKind, ConnectionRule] = {
    K.TEXT: _rule([K.ASSISTANT, K.TEXT_ANALYZER, K.CHUNKER, K.IMAGE_GENERATOR, K.RETRIEVER, K.ROUTER], []),
    K.REFERENCE: _rule([K.ASSISTANT, K.IMAGE_GENERATOR, K.CHUNKER, K.ROUTER], []),
    K.FILE_UPLOAD: _rule([K.CHUNKER, K.ASSISTANT, K.TEXT_ANALYZER], []),
    K.VECTOR_STORE: _rule([K.RETRIEVER], [K.EMBEDDING]),
    K.ASSISTANT: _rule(
        [K.IMAGE_GENERATOR, K.VIDEO_GENERATOR, K.TEXT_ANALYZER, K.ROUTER, K.ASSISTANT, *_OUTPUT_GENERATORS],
        [K.TEXT, K.REFERENCE, K.FILE_UPLOAD, K.CONTEXT_ASSEMBLER, K.RETRIEVER, K.ASSISTANT, K.ROUTER, K.API_CONNECTOR],
    ),
    K.TEXT_ANALYZER: _rule(
        [*_OUTPUT_GENERATORS, K.ASSISTANT, K.ROUTER],
        [K.TEXT, K.ASSISTANT, K.REFERENCE, K.FILE_UPLOAD],
    ),
    K.CHUNKER: _rule([K.EMBEDDING], [K.TEXT, K.REFERENCE, K.FILE_UPLOAD]),
    K.EMBEDDING: _rule([K.VECTOR_STORE, K.RETRIEVER], [K.CHUNKER]),
    K.RETRIEVER: _rule([K.CONTEXT_ASSEMBLER, K.ASSISTANT], [K.VECTOR_STORE, K.EMBEDDING, K.TEXT]),
    K.CONTEXT_ASSEMBLER: _rule([K.ASSISTANT], [K.RETRIEVER]),
    K.IMAGE_GENERATOR: _rule([K.VIDEO_GENERATOR], [K.ASSISTANT, K.TEXT, K.REFERENCE]),
    K.VIDEO_GENERATOR: _rule([], [K.IMAGE_GENERATOR]),
    K.REPORT_GENERATOR: _rule([], [K.TEXT_ANALYZER, K.ASSISTANT]),
    K.DOCUMENT_GENERATOR: _rule([], [K.TEXT_ANALYZER, K.ASSISTANT]),
    K.INFOGRAPHIC_GENERATOR: _rule([], [K.TEXT_ANALYZER, K.ASSISTANT]),
    K.PRESENTATION_GENERATOR: _rule([], [K.TEXT_ANALYZER, K.ASSISTANT]),
    K.MINDMAP_GENERATOR: _rule([], [K.TEXT_ANALYZER, K.ASSISTANT]),
    K.API_CONNECTOR: _rule([K.ASSISTANT, K.ROUTER], [K.ASSISTANT, K.TEXT, K.ROUTER]),
    K.ROUTER: _rule(
        [K.ASSISTANT, K.TEXT_ANALYZER, K.API_CONNECTOR, *_OUTPUT_GENERATORS],
        [K.TEXT, K.REFERENCE, K.ASSISTANT, K.TEXT_ANALYZER, K.API_CONNECTOR],
    ),
}


@dataclass(frozen=True)
class ConnectionClassification:
    validity: ConnectionValidity
    message: str
    is_rag: bool

    @property
    def allowed(self) -> bool:
        return self.validity != ConnectionValidity.INVALID


def is_rag_link(source_kind: NodeKind | str, target_kind: NodeKind | str) -> bool:
    return NodeKind(source_kind) in RAG_PIPELINE_KINDS and NodeKind(target_kind) in RAG_PIPELINE_KINDS


def _hard_contract_violation(source: NodeKind, target: NodeKind) -> str | None:
    if source in TERMINAL_OUTPUT_KINDS:
        return f"{node_label(source)} is a terminal output and cannot feed other nodes"
    if target in PURE_SOURCE_KINDS:
        return f"{node_label(target)} is an input node and cannot receive connections"
    if source == K.IMAGE_GENERATOR and target != K.VIDEO_GENERATOR:
        return f"{node_label(source)} produces images and can only connect to {node_label(K.VIDEO_GENERATOR)}"
    if target == K.VIDEO_GENERATOR and source != K.IMAGE_GENERATOR:
        return f"{node_label(target)} only accepts input from {node_label(K.IMAGE_GENERATOR)}"
    return None


def classify(source_kind: NodeKind | str, target_kind: NodeKind | str) -> ConnectionClassification:
    """
    Classifies an edge between two node kinds as valid, warning or invalid.

    Invalid means a hard type contract is broken. Otherwise the compatibility table
    decides: both sides listing each other is valid, anything else is a warning.
    """
    source = NodeKind(source_kind)
    target = NodeKind(target_kind)
    rag = is_rag_link(source, target)

    violation = _hard_contract_violation(source, target)
    if violation is not None:
        return ConnectionClassification(ConnectionValidity.INVALID, violation, rag)

    source_rule = CONNECTION_RULES.get(source)
    target_rule = CONNECTION_RULES.get(target)
    source_allows = bool(source_rule and target in source_rule.valid_targets)
    target_allows = bool(target_rule and source in target_rule.valid_sources)

    if source_allows and target_allows:
        return ConnectionClassification(
            ConnectionValidity.VALID,
            f"{node_label(source)} can connect to {node_label(target)}",
            rag,
        )
    if source_allows or target_allows:
        return ConnectionClassification(
            ConnectionValidity.WARNING,
            "Connection may work but is not optimal",
            rag,
        )
    return ConnectionClassification(
        ConnectionValidity.WARNING,
        f"{node_label(source)} to {node_label(target)} is not a recommended connection",
        rag,
    )
