"""
The single mutation surface for nodes and edges.

Nodes are immutable snapshots: every update swaps in a new Node object, so a
handler holding a reference never observes a half-applied change.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import structlog

from flowrag.domain.exceptions import ConnectionRejectedError, GraphIntegrityError
from flowrag.domain.graph.connection_rules import classify
from flowrag.domain.graph.types import (
    ConnectionValidity,
    Edge,
    EdgeData,
    GraphDocument,
    Node,
    NodeKind,
    Position,
    node_label,
)

logger = structlog.get_logger(__name__)

TEMPLATE_KNOWLEDGE_BASE_ID = "default"


@dataclass(frozen=True)
class Neighbors:
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]


def _new_node_id(kind: NodeKind) -> str:
    return f"{kind.value}-{uuid.uuid4().hex[:12]}"


def _edge_id(source: str, target: str, source_handle: Optional[str], target_handle: Optional[str]) -> str:
    return f"edge-{source}{source_handle or ''}-{target}{target_handle or ''}"


class GraphStore:
    def __init__(self, document: Optional[GraphDocument] = None):
        self._lock = threading.RLock()
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._selected_node_id: Optional[str] = None
        if document is not None:
            self.load_document(document)

    # -- reads -------------------------------------------------------------

    def get_node(self, node_id: str) -> Optional[Node]:
        with self._lock:
            return self._nodes.get(node_id)

    def nodes(self) -> List[Node]:
        with self._lock:
            return list(self._nodes.values())

    def edges(self) -> List[Edge]:
        with self._lock:
            return list(self._edges.values())

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        with self._lock:
            return self._edges.get(edge_id)

    @property
    def selected_node_id(self) -> Optional[str]:
        with self._lock:
            return self._selected_node_id

    def neighbors(self, node_id: str) -> Neighbors:
        """Inputs and outputs derived from the current edge set, in edge order, without duplicates."""
        with self._lock:
            inputs: List[str] = []
            outputs: List[str] = []
            for edge in self._edges.values():
                if edge.target == node_id and edge.source not in inputs:
                    inputs.append(edge.source)
                if edge.source == node_id and edge.target not in outputs:
                    outputs.append(edge.target)
            return Neighbors(inputs=tuple(inputs), outputs=tuple(outputs))

    def edges_from(self, node_id: str) -> List[Edge]:
        with self._lock:
            return [edge for edge in self._edges.values() if edge.source == node_id]

    def edge_data(self, edge_id: str) -> Optional[EdgeData]:
        """Rendering data for an edge, recomputed from the connection rules on every call."""
        with self._lock:
            edge = self._edges.get(edge_id)
            if edge is None:
                return None
            source = self._nodes[edge.source]
            target = self._nodes[edge.target]
        classification = classify(source.kind, target.kind)
        return EdgeData(
            source_kind=source.kind,
            target_kind=target.kind,
            validity=classification.validity,
            is_rag_link=classification.is_rag,
            message=classification.message,
        )

    # -- mutations ---------------------------------------------------------

    def add_node(
        self,
        kind: NodeKind | str,
        position: Optional[Position] = None,
        *,
        label: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> str:
        resolved = NodeKind(kind)
        with self._lock:
            new_id = node_id or _new_node_id(resolved)
            if new_id in self._nodes:
                raise GraphIntegrityError(f"node '{new_id}' already exists")
            self._nodes[new_id] = Node.create(new_id, resolved, position=position, label=label)
        logger.debug("graph_node_added", node_id=new_id, kind=resolved.value)
        return new_id

    def update_node_data(self, node_id: str, partial: Dict[str, Any]) -> Optional[Node]:
        """Shallow-merges `partial` into the node's data. Absent nodes are ignored."""
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return None
            updated = node.model_copy(update={"data": node.data.merged(partial)})
            self._nodes[node_id] = updated
            return updated

    def move_node(self, node_id: str, position: Position) -> None:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is not None:
                self._nodes[node_id] = node.model_copy(update={"position": position})

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> str:
        with self._lock:
            source = self._nodes.get(source_id)
            target = self._nodes.get(target_id)
            if source is None or target is None:
                missing = source_id if source is None else target_id
                raise ConnectionRejectedError(
                    f"node '{missing}' does not exist", source_id=source_id, target_id=target_id
                )
            if source_id == target_id:
                raise ConnectionRejectedError(
                    f"{node_label(source.kind)} cannot connect to itself",
                    source_id=source_id,
                    target_id=target_id,
                )

            classification = classify(source.kind, target.kind)
            if classification.validity == ConnectionValidity.INVALID:
                logger.info(
                    "graph_connection_rejected",
                    source_kind=source.kind.value,
                    target_kind=target.kind.value,
                    reason=classification.message,
                )
                raise ConnectionRejectedError(
                    classification.message, source_id=source_id, target_id=target_id
                )

            candidate = Edge(
                id=_edge_id(source_id, target_id, source_handle, target_handle),
                source=source_id,
                target=target_id,
                source_handle=source_handle,
                target_handle=target_handle,
            )
            for existing in self._edges.values():
                if existing.same_connection(candidate):
                    return existing.id
            self._edges[candidate.id] = candidate

        if classification.validity == ConnectionValidity.WARNING:
            logger.info(
                "graph_connection_warning",
                source_kind=source.kind.value,
                target_kind=target.kind.value,
                message=classification.message,
            )
        return candidate.id

    def delete_node(self, node_id: str) -> None:
        with self._lock:
            if self._nodes.pop(node_id, None) is None:
                return
            self._edges = {
                edge_id: edge
                for edge_id, edge in self._edges.items()
                if edge.source != node_id and edge.target != node_id
            }
            if self._selected_node_id == node_id:
                self._selected_node_id = None

    def delete_edge(self, edge_id: str) -> None:
        with self._lock:
            self._edges.pop(edge_id, None)

    def select_node(self, node_id: Optional[str]) -> None:
        with self._lock:
            if node_id is not None and node_id not in self._nodes:
                raise GraphIntegrityError(f"node '{node_id}' does not exist")
            self._selected_node_id = node_id

    def clear(self) -> None:
        with self._lock:
            self._nodes = {}
            self._edges = {}
            self._selected_node_id = None

    # -- documents ---------------------------------------------------------

    def load_document(self, document: GraphDocument) -> None:
        """
        Replaces the whole graph. Duplicate ids, dangling edges and edges that break a
        hard type contract are rejected and leave the current graph untouched.
        """
        nodes: Dict[str, Node] = {}
        for node in document.nodes:
            if node.id in nodes:
                raise GraphIntegrityError(f"duplicate node id '{node.id}'")
            nodes[node.id] = node

        edges: Dict[str, Edge] = {}
        for edge in document.edges:
            if edge.id in edges:
                raise GraphIntegrityError(f"duplicate edge id '{edge.id}'")
            if edge.source not in nodes or edge.target not in nodes:
                raise GraphIntegrityError(
                    f"edge '{edge.id}' references a missing node ({edge.source} -> {edge.target})"
                )
            classification = classify(nodes[edge.source].kind, nodes[edge.target].kind)
            if edge.source == edge.target or classification.validity == ConnectionValidity.INVALID:
                raise GraphIntegrityError(f"edge '{edge.id}' is not a permitted connection")
            edges[edge.id] = edge

        with self._lock:
            self._nodes = nodes
            self._edges = edges
            self._selected_node_id = None
        logger.info("graph_document_loaded", node_count=len(nodes), edge_count=len(edges))

    def to_document(self) -> GraphDocument:
        with self._lock:
            return GraphDocument(nodes=list(self._nodes.values()), edges=list(self._edges.values()))

    def load_rag_pipeline_template(self) -> Dict[str, str]:
        """
        Replaces the graph with a ready-made RAG pipeline and returns node ids by role:

        document text -> chunker -> embedding -> vector store -> retriever <- query text,
        retriever -> context assembler -> assistant.
        """
        self.clear()
        layout = {
            "document": (NodeKind.TEXT, Position(x=50, y=100), "Source Document"),
            "chunker": (NodeKind.CHUNKER, Position(x=350, y=100), None),
            "embedding": (NodeKind.EMBEDDING, Position(x=650, y=100), None),
            "vector_store": (NodeKind.VECTOR_STORE, Position(x=950, y=100), None),
            "query": (NodeKind.TEXT, Position(x=950, y=350), "User Query"),
            "retriever": (NodeKind.RETRIEVER, Position(x=1250, y=200), None),
            "context_assembler": (NodeKind.CONTEXT_ASSEMBLER, Position(x=1550, y=200), None),
            "assistant": (NodeKind.ASSISTANT, Position(x=1850, y=200), None),
        }
        ids = {
            role: self.add_node(kind, position, label=label, node_id=f"{role.replace('_', '-')}-template")
            for role, (kind, position, label) in layout.items()
        }
        self.update_node_data(ids["embedding"], {"knowledge_base_id": TEMPLATE_KNOWLEDGE_BASE_ID})
        self.update_node_data(ids["vector_store"], {"knowledge_base_id": TEMPLATE_KNOWLEDGE_BASE_ID})

        for source, target in (
            ("document", "chunker"),
            ("chunker", "embedding"),
            ("embedding", "vector_store"),
            ("vector_store", "retriever"),
            ("query", "retriever"),
            ("retriever", "context_assembler"),
            ("context_assembler", "assistant"),
        ):
            self.connect(ids[source], ids[target])
        logger.info("rag_pipeline_template_loaded", node_count=len(ids))
        return ids
