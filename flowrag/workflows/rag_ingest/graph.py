"""
The RAG Ingest Graph.
Loads one document into a knowledge base outside of a canvas run.
Structure: Chunk -> Embed -> Index
"""

from langgraph.graph import END, StateGraph

from flowrag.domain.retrieval.ports import IChunkRepository
from flowrag.services.embedding_service import EmbeddingGenerator
from flowrag.workflows.rag_ingest.nodes import RagIngestNodes, route_after_chunking
from flowrag.workflows.rag_ingest.state import RagIngestState


def build_rag_ingest_graph(generator: EmbeddingGenerator, repository: IChunkRepository):
    nodes = RagIngestNodes(generator, repository)

    # 1. Initialize Graph
    workflow = StateGraph(RagIngestState)

    # 2. Add Nodes
    workflow.add_node("chunk", nodes.chunk_node)
    workflow.add_node("embed", nodes.embed_node)
    workflow.add_node("index", nodes.index_node)

    # 3. Define Edges
    workflow.set_entry_point("chunk")
    workflow.add_conditional_edges(
        "chunk",
        route_after_chunking,
        {
            "embed": "embed",
            "end": END,
        },
    )
    workflow.add_edge("embed", "index")
    workflow.add_edge("index", END)

    # 4. Compile
    return workflow.compile()
