from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Optional, Sequence

import structlog

from flowrag.application.graph_executor import GraphExecutor, RunReport, RunState
from flowrag.application.graph_store import GraphStore
from flowrag.application.handlers.registry import build_default_registry
from flowrag.core.settings import settings
from flowrag.domain.exceptions import FlowragError
from flowrag.infrastructure.observability.logger_config import configure_structlog
from flowrag.infrastructure.repositories.in_memory_vector_repository import InMemoryVectorRepository
from flowrag.persistence.graph_serializer import load_graph, save_graph
from flowrag.services.embedding_service import EmbeddingGenerator
from flowrag.workflows.rag_ingest.graph import build_rag_ingest_graph

logger = structlog.get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="flowrag", description="Run node graphs and manage RAG knowledge bases")
    parser.add_argument("--log-format", choices=["json", "console"], help="Override LOG_FORMAT")
    parser.add_argument("--vector-store", help="Vector snapshot file (overrides VECTOR_STORE_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Execute a graph document")
    run.add_argument("graph", help="Graph document (JSON)")
    run.add_argument("--output", help="Where to write the graph after the run (default: overwrite input)")
    run.add_argument("--deadline", type=float, help="Run deadline in seconds")
    run.add_argument(
        "--allow-cycles",
        action="store_true",
        help="Run cyclic graphs with visit-once semantics instead of rejecting them",
    )

    ingest = subparsers.add_parser("ingest", help="Chunk, embed and index a text file")
    ingest.add_argument("file", help="UTF-8 text file")
    ingest.add_argument("--knowledge-base", required=True, help="Target knowledge base id")
    ingest.add_argument("--document-name", help="Display name (default: file name)")
    ingest.add_argument(
        "--strategy", default="paragraph", choices=["sentence", "paragraph", "fixed", "semantic"]
    )
    ingest.add_argument("--chunk-size", type=int, default=500)
    ingest.add_argument("--overlap", type=int, default=50)
    ingest.add_argument("--dimensions", type=int, default=settings.EMBEDDING_DEFAULT_DIMENSIONS)

    template = subparsers.add_parser("template", help="Write the RAG pipeline template graph")
    template.add_argument("output", help="Destination JSON file")
    return parser.parse_args(argv)


def _summarize(report: RunReport) -> dict[str, Any]:
    return {
        "run_id": report.run_id,
        "state": report.state.value,
        "visited": report.visit_order,
        "errors": {node_id: report.records[node_id].error for node_id in report.failed_nodes},
        "run_error": report.error,
        "duration_ms": report.duration_ms,
    }


async def _run_graph(args: argparse.Namespace, repository: InMemoryVectorRepository) -> int:
    store = GraphStore(load_graph(args.graph))
    generator = EmbeddingGenerator.get_instance()
    executor = GraphExecutor(
        store,
        build_default_registry(repository=repository, generator=generator),
        reject_cycles=False if args.allow_cycles else None,
        deadline_seconds=args.deadline,
    )
    try:
        report = await executor.run()
    finally:
        await generator.close()
    save_graph(store.to_document(), args.output or args.graph)
    print(json.dumps(_summarize(report), indent=2))
    return 0 if report.state == RunState.SUCCEEDED else 1


async def _ingest(args: argparse.Namespace, repository: InMemoryVectorRepository) -> int:
    path = Path(args.file)
    generator = EmbeddingGenerator.get_instance()
    graph = build_rag_ingest_graph(generator, repository)
    try:
        final_state = await graph.ainvoke(
            {
                "text": path.read_text(encoding="utf-8"),
                "document_name": args.document_name or path.name,
                "document_id": str(uuid.uuid4()),
                "knowledge_base_id": args.knowledge_base,
                "strategy": args.strategy,
                "chunk_size": args.chunk_size,
                "overlap": args.overlap,
                "preserve_sentences": True,
                "dimensions": args.dimensions,
            }
        )
    finally:
        await generator.close()
    print(
        json.dumps(
            {
                "status": final_state.get("status"),
                "error": final_state.get("error"),
                "indexed_count": final_state.get("indexed_count", 0),
                "method_counts": final_state.get("method_counts", {}),
            },
            indent=2,
        )
    )
    return 0 if final_state.get("status") == "success" else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_structlog(log_format=args.log_format)

    if args.command == "template":
        store = GraphStore()
        store.load_rag_pipeline_template()
        print(save_graph(store.to_document(), args.output))
        return 0

    repository = InMemoryVectorRepository(args.vector_store or settings.VECTOR_STORE_PATH)
    try:
        if args.command == "run":
            return asyncio.run(_run_graph(args, repository))
        return asyncio.run(_ingest(args, repository))
    except (FlowragError, OSError) as exc:
        message = getattr(exc, "message", None) or str(exc)
        logger.error("cli_command_failed", command=args.command, error=message)
        print(f"error: {message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
