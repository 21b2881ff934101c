"""
Graph data model: nodes with kind-tagged payloads, edges, and the persisted document.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from flowrag.domain.ingestion.chunking.facade import Chunk, ChunkStrategy
from flowrag.domain.retrieval.types import PartitionStats, RetrievedDocument
from flowrag.domain.routing.types import DefaultBehavior, RouterCondition


class NodeKind(str, Enum):
    TEXT = "text"
    REFERENCE = "reference"
    FILE_UPLOAD = "fileUpload"
    VECTOR_STORE = "vectorStore"
    ASSISTANT = "assistant"
    TEXT_ANALYZER = "textAnalyzer"
    CHUNKER = "chunker"
    EMBEDDING = "embedding"
    RETRIEVER = "retriever"
    CONTEXT_ASSEMBLER = "contextAssembler"
    IMAGE_GENERATOR = "imageGenerator"
    VIDEO_GENERATOR = "videoGenerator"
    REPORT_GENERATOR = "reportGenerator"
    DOCUMENT_GENERATOR = "documentGenerator"
    INFOGRAPHIC_GENERATOR = "infographicGenerator"
    PRESENTATION_GENERATOR = "presentationGenerator"
    MINDMAP_GENERATOR = "mindmapGenerator"
    API_CONNECTOR = "apiConnector"
    ROUTER = "router"


class NodeCategory(str, Enum):
    SOURCE = "source"
    PROCESSOR = "processor"
    GENERATOR = "generator"
    OUTPUT = "output"


class NodeStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class ConnectionValidity(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


class ContextFormat(str, Enum):
    STRUCTURED = "structured"
    CONCATENATED = "concatenated"
    MARKDOWN = "markdown"


NODE_LABELS: Dict[NodeKind, str] = {
    NodeKind.TEXT: "Text Input",
    NodeKind.REFERENCE: "Reference",
    NodeKind.FILE_UPLOAD: "File Upload",
    NodeKind.VECTOR_STORE: "Vector Store",
    NodeKind.ASSISTANT: "AI Assistant",
    NodeKind.TEXT_ANALYZER: "Text Analyzer",
    NodeKind.CHUNKER: "Text Chunker",
    NodeKind.EMBEDDING: "Embedding Generator",
    NodeKind.RETRIEVER: "Retriever",
    NodeKind.CONTEXT_ASSEMBLER: "Context Assembler",
    NodeKind.IMAGE_GENERATOR: "Image Generator",
    NodeKind.VIDEO_GENERATOR: "Video Generator",
    NodeKind.REPORT_GENERATOR: "Report Generator",
    NodeKind.DOCUMENT_GENERATOR: "Document Generator",
    NodeKind.INFOGRAPHIC_GENERATOR: "Infographic Generator",
    NodeKind.PRESENTATION_GENERATOR: "Presentation Generator",
    NodeKind.MINDMAP_GENERATOR: "Mind Map Generator",
    NodeKind.API_CONNECTOR: "API Connector",
    NodeKind.ROUTER: "Conditional Router",
}

NODE_CATEGORIES: Dict[NodeKind, NodeCategory] = {
    NodeKind.TEXT: NodeCategory.SOURCE,
    NodeKind.REFERENCE: NodeCategory.SOURCE,
    NodeKind.FILE_UPLOAD: NodeCategory.SOURCE,
    NodeKind.VECTOR_STORE: NodeCategory.SOURCE,
    NodeKind.ASSISTANT: NodeCategory.PROCESSOR,
    NodeKind.TEXT_ANALYZER: NodeCategory.PROCESSOR,
    NodeKind.CHUNKER: NodeCategory.PROCESSOR,
    NodeKind.EMBEDDING: NodeCategory.PROCESSOR,
    NodeKind.RETRIEVER: NodeCategory.PROCESSOR,
    NodeKind.CONTEXT_ASSEMBLER: NodeCategory.PROCESSOR,
    NodeKind.API_CONNECTOR: NodeCategory.PROCESSOR,
    NodeKind.ROUTER: NodeCategory.PROCESSOR,
    NodeKind.IMAGE_GENERATOR: NodeCategory.GENERATOR,
    NodeKind.VIDEO_GENERATOR: NodeCategory.GENERATOR,
    NodeKind.REPORT_GENERATOR: NodeCategory.OUTPUT,
    NodeKind.DOCUMENT_GENERATOR: NodeCategory.OUTPUT,
    NodeKind.INFOGRAPHIC_GENERATOR: NodeCategory.OUTPUT,
    NodeKind.PRESENTATION_GENERATOR: NodeCategory.OUTPUT,
    NodeKind.MINDMAP_GENERATOR: NodeCategory.OUTPUT,
}


def node_label(kind: NodeKind | str) -> str:
    try:
        return NODE_LABELS[NodeKind(kind)]
    except ValueError:
        return str(kind)


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    # Front-end-only fields (colors, ui flags) survive a load/save round trip.
    model_config = ConfigDict(extra="allow")


class TextPayload(_Payload):
    kind: Literal["text"] = "text"
    content: str = ""


class ReferencePayload(_Payload):
    kind: Literal["reference"] = "reference"
    content: str = ""
    url: Optional[str] = None


class FileUploadPayload(_Payload):
    kind: Literal["fileUpload"] = "fileUpload"
    content: str = ""
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class ChunkerSettings(BaseModel):
    strategy: ChunkStrategy = ChunkStrategy.PARAGRAPH
    chunk_size: int = Field(500, ge=1)
    overlap: int = Field(50, ge=0)
    preserve_sentences: bool = True


class ChunkerPayload(_Payload):
    kind: Literal["chunker"] = "chunker"
    settings: ChunkerSettings = Field(default_factory=ChunkerSettings)
    chunks: List[Chunk] = Field(default_factory=list)
    total_chunks: int = 0
    total_tokens: int = 0


class EmbeddingSettings(BaseModel):
    model: str = "text-embedding-3-small"
    dimensions: int = Field(1536, ge=1)
    batch_size: int = Field(100, ge=1)
    store_in_db: bool = True


class EmbeddedChunk(BaseModel):
    chunk_index: int
    token_count: int
    method: Literal["semantic", "fallback"]
    vector: List[float]


class EmbeddingPayload(_Payload):
    kind: Literal["embedding"] = "embedding"
    settings: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    knowledge_base_id: Optional[str] = None
    document_name: Optional[str] = None
    document_id: Optional[str] = None
    embeddings: List[EmbeddedChunk] = Field(default_factory=list)
    stored_count: int = 0
    method_counts: Dict[str, int] = Field(default_factory=dict)


class VectorStorePayload(_Payload):
    kind: Literal["vectorStore"] = "vectorStore"
    knowledge_base_id: Optional[str] = None
    show_chunk_preview: bool = True
    max_preview_chunks: int = Field(3, ge=0)
    sort_by: Literal["date", "name", "chunks"] = "date"
    sort_order: Literal["asc", "desc"] = "desc"
    stats: Optional[PartitionStats] = None


class RetrieverSettings(BaseModel):
    top_k: int = Field(5, ge=1)
    threshold: float = Field(0.3, ge=0.0, le=1.0)


class RetrieverPayload(_Payload):
    kind: Literal["retriever"] = "retriever"
    settings: RetrieverSettings = Field(default_factory=RetrieverSettings)
    query: str = ""
    knowledge_base_id: Optional[str] = None
    retrieved_documents: List[RetrievedDocument] = Field(default_factory=list)
    retrieval_metadata: Optional[Dict[str, Any]] = None


class ContextAssemblerSettings(BaseModel):
    max_tokens: int = Field(4000, ge=1)
    include_metadata: bool = True
    separator: str = "\n\n---\n\n"
    format: ContextFormat = ContextFormat.STRUCTURED


class ContextAssemblerPayload(_Payload):
    kind: Literal["contextAssembler"] = "contextAssembler"
    settings: ContextAssemblerSettings = Field(default_factory=ContextAssemblerSettings)
    assembled_context: str = ""
    context_metadata: Optional[Dict[str, Any]] = None


class RouterPayload(_Payload):
    kind: Literal["router"] = "router"
    conditions: List[RouterCondition] = Field(default_factory=list)
    evaluate_all: bool = False
    default_behavior: DefaultBehavior = DefaultBehavior.CONTINUE
    input_data: Optional[Dict[str, Any]] = None
    evaluation_results: Dict[str, bool] = Field(default_factory=dict)
    matched_branch: Optional[str] = None
    matched_branches: List[str] = Field(default_factory=list)
    last_evaluated_at: Optional[str] = None


class AssistantPayload(_Payload):
    kind: Literal["assistant"] = "assistant"
    prompt: str = ""
    system_prompt: Optional[str] = None
    generated_content: str = ""
    temperature: Optional[float] = None


GENERATION_KINDS = Literal[
    "textAnalyzer",
    "imageGenerator",
    "videoGenerator",
    "reportGenerator",
    "documentGenerator",
    "infographicGenerator",
    "presentationGenerator",
    "mindmapGenerator",
    "apiConnector",
]


class GenerationPayload(_Payload):
    """Payload of generator, analyzer and connector kinds whose work is delegated elsewhere."""

    kind: GENERATION_KINDS
    prompt: str = ""
    generated_content: str = ""


NodePayload = Annotated[
    Union[
        TextPayload,
        ReferencePayload,
        FileUploadPayload,
        ChunkerPayload,
        EmbeddingPayload,
        VectorStorePayload,
        RetrieverPayload,
        ContextAssemblerPayload,
        RouterPayload,
        AssistantPayload,
        GenerationPayload,
    ],
    Field(discriminator="kind"),
]

_PAYLOAD_TYPES: Dict[NodeKind, type[_Payload]] = {
    NodeKind.TEXT: TextPayload,
    NodeKind.REFERENCE: ReferencePayload,
    NodeKind.FILE_UPLOAD: FileUploadPayload,
    NodeKind.CHUNKER: ChunkerPayload,
    NodeKind.EMBEDDING: EmbeddingPayload,
    NodeKind.VECTOR_STORE: VectorStorePayload,
    NodeKind.RETRIEVER: RetrieverPayload,
    NodeKind.CONTEXT_ASSEMBLER: ContextAssemblerPayload,
    NodeKind.ROUTER: RouterPayload,
    NodeKind.ASSISTANT: AssistantPayload,
}


def default_payload(kind: NodeKind | str) -> _Payload:
    """Kind-appropriate payload with the default settings."""
    resolved = NodeKind(kind)
    payload_type = _PAYLOAD_TYPES.get(resolved)
    if payload_type is None:
        return GenerationPayload(kind=resolved.value)
    return payload_type()


# ---------------------------------------------------------------------------
# Nodes, edges and documents
# ---------------------------------------------------------------------------

COMMON_DATA_FIELDS = frozenset({"label", "status", "error", "description"})


class NodeData(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    status: NodeStatus = NodeStatus.IDLE
    error: Optional[str] = None
    description: Optional[str] = None
    payload: NodePayload

    @property
    def is_processing(self) -> bool:
        return self.status == NodeStatus.PROCESSING

    @property
    def is_complete(self) -> bool:
        return self.status == NodeStatus.COMPLETE

    def merged(self, partial: Dict[str, Any]) -> "NodeData":
        """
        Shallow merge: common keys replace common fields, `payload` (a dict) and any
        other key merge into the payload. The result is re-validated.
        """
        common = self.model_dump(exclude={"payload"})
        payload = self.payload.model_dump()
        for key, value in partial.items():
            if key in COMMON_DATA_FIELDS:
                common[key] = value
            elif key == "payload" and isinstance(value, dict):
                payload.update(value)
            elif key == "payload" and isinstance(value, BaseModel):
                payload.update(value.model_dump())
            else:
                payload[key] = value
        payload["kind"] = self.payload.kind
        return NodeData.model_validate({**common, "payload": payload})


class Node(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    kind: NodeKind
    position: Position = Field(default_factory=Position)
    data: NodeData

    @model_validator(mode="after")
    def _validate_payload_kind(self) -> "Node":
        if self.data.payload.kind != self.kind.value:
            raise ValueError(
                f"payload kind '{self.data.payload.kind}' does not match node kind '{self.kind.value}'"
            )
        return self

    @classmethod
    def create(
        cls,
        node_id: str,
        kind: NodeKind | str,
        position: Optional[Position] = None,
        label: Optional[str] = None,
    ) -> "Node":
        resolved = NodeKind(kind)
        return cls(
            id=node_id,
            kind=resolved,
            position=position or Position(),
            data=NodeData(label=label or node_label(resolved), payload=default_payload(resolved)),
        )


class Edge(BaseModel):
    """Directed connection. Handles persist as `sourceHandle` / `targetHandle`, the canvas layout."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    source: str
    target: str
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")

    def same_connection(self, other: "Edge") -> bool:
        return (
            self.source == other.source
            and self.target == other.target
            and self.source_handle == other.source_handle
            and self.target_handle == other.target_handle
        )


class EdgeData(BaseModel):
    """Derived view of an edge; computed on read from the connection rules."""

    source_kind: NodeKind
    target_kind: NodeKind
    validity: ConnectionValidity
    is_rag_link: bool
    message: str


class GraphDocument(BaseModel):
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
