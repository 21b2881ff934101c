from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from flowrag.domain.exceptions import GraphIntegrityError
from flowrag.domain.graph.types import GraphDocument

logger = structlog.get_logger(__name__)


def load_graph(path: str | Path) -> GraphDocument:
    """Reads a graph document; malformed JSON or schema violations raise GraphIntegrityError."""
    source = Path(path)
    raw = source.read_text(encoding="utf-8")
    try:
        document = GraphDocument.model_validate_json(raw)
    except ValidationError as exc:
        raise GraphIntegrityError(
            f"invalid graph document '{source}': {exc.error_count()} validation error(s)"
        ) from exc
    logger.debug("graph_document_read", path=str(source), nodes=len(document.nodes), edges=len(document.edges))
    return document


def save_graph(document: GraphDocument, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(document.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
    logger.debug("graph_document_written", path=str(target))
    return target
