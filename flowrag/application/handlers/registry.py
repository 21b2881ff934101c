from __future__ import annotations

from typing import Dict, Optional

from langchain_core.language_models.chat_models import BaseChatModel

from flowrag.application.handlers.base import INodeHandler
from flowrag.application.handlers.chunker_handler import ChunkerNodeHandler
from flowrag.application.handlers.context_assembler_handler import ContextAssemblerNodeHandler
from flowrag.application.handlers.embedding_handler import EmbeddingNodeHandler
from flowrag.application.handlers.generation_handler import KIND_INSTRUCTIONS, PromptedGenerationHandler
from flowrag.application.handlers.retriever_handler import RetrieverNodeHandler
from flowrag.application.handlers.router_handler import RouterNodeHandler
from flowrag.application.handlers.source_handler import SourceNodeHandler
from flowrag.application.handlers.vector_store_handler import VectorStoreNodeHandler
from flowrag.core.settings import settings
from flowrag.domain.graph.types import NodeKind
from flowrag.infrastructure.repositories.in_memory_vector_repository import InMemoryVectorRepository
from flowrag.services.embedding_service import EmbeddingGenerator
from flowrag.services.retrieval.similarity_retriever import SimilarityRetriever


class HandlerRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[NodeKind, INodeHandler] = {}

    def register(self, kind: NodeKind | str, handler: INodeHandler) -> None:
        self._handlers[NodeKind(kind)] = handler

    def get(self, kind: NodeKind | str) -> Optional[INodeHandler]:
        return self._handlers.get(NodeKind(kind))

    def __contains__(self, kind: object) -> bool:
        try:
            return NodeKind(kind) in self._handlers  # type: ignore[arg-type]
        except ValueError:
            return False


def build_default_registry(
    *,
    repository: Optional[InMemoryVectorRepository] = None,
    generator: Optional[EmbeddingGenerator] = None,
    llm: Optional[BaseChatModel] = None,
) -> HandlerRegistry:
    """
    Wires every built-in handler. Image, video and API connector nodes have no
    built-in handler; running them records a node error.
    """
    repository = repository or InMemoryVectorRepository(settings.VECTOR_STORE_PATH)
    generator = generator or EmbeddingGenerator.get_instance()

    registry = HandlerRegistry()
    source = SourceNodeHandler()
    for kind in (NodeKind.TEXT, NodeKind.REFERENCE, NodeKind.FILE_UPLOAD):
        registry.register(kind, source)
    registry.register(NodeKind.CHUNKER, ChunkerNodeHandler())
    registry.register(NodeKind.EMBEDDING, EmbeddingNodeHandler(generator, repository))
    registry.register(NodeKind.VECTOR_STORE, VectorStoreNodeHandler(repository))
    registry.register(NodeKind.RETRIEVER, RetrieverNodeHandler(generator, SimilarityRetriever(repository)))
    registry.register(NodeKind.CONTEXT_ASSEMBLER, ContextAssemblerNodeHandler())
    registry.register(NodeKind.ROUTER, RouterNodeHandler())

    generation = PromptedGenerationHandler(llm=llm)
    for kind in KIND_INSTRUCTIONS:
        registry.register(kind, generation)
    return registry
