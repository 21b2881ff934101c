from __future__ import annotations

from typing import List

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext
from flowrag.domain.graph.types import Node


class SourceNodeHandler(INodeHandler):
    """Text, reference and file inputs carry their content already; running them only marks them complete."""

    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        return HandlerResult()
