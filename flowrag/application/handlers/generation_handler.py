from __future__ import annotations

from typing import Callable, Dict, List, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from tenacity import retry, stop_after_attempt, wait_exponential

from flowrag.application.handlers.base import HandlerResult, INodeHandler, RunContext, text_of
from flowrag.core.llm import get_llm
from flowrag.domain.exceptions import ExternalServiceError, HandlerError
from flowrag.domain.graph.types import Node, NodeKind

logger = structlog.get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant inside a content pipeline. Use the provided context "
    "when it is relevant and say so when it does not contain the answer."
)

KIND_INSTRUCTIONS: Dict[NodeKind, str] = {
    NodeKind.ASSISTANT: DEFAULT_SYSTEM_PROMPT,
    NodeKind.TEXT_ANALYZER: (
        "Analyze the input text. Report its main topics, tone, key entities and a short summary."
    ),
    NodeKind.REPORT_GENERATOR: "Write a structured report in markdown with an executive summary and sections.",
    NodeKind.DOCUMENT_GENERATOR: "Write a well-organized document in markdown based on the input.",
    NodeKind.INFOGRAPHIC_GENERATOR: (
        "Produce the content outline of an infographic: a title, key figures and short captions."
    ),
    NodeKind.PRESENTATION_GENERATOR: (
        "Produce a slide deck outline in markdown; one '##' heading per slide with bullet points."
    ),
    NodeKind.MINDMAP_GENERATOR: "Produce a mind map as a nested markdown list rooted at the central topic.",
}


class PromptedGenerationHandler(INodeHandler):
    """
    Text generation for the assistant, analyzer and document-style output nodes.

    The chat model is resolved lazily so graphs without generation nodes run
    without any provider configured. Models built by the factory honour the
    node's `temperature`, one cached model per temperature; an injected `llm`
    is used as-is.
    """

    def __init__(
        self,
        llm: Optional[BaseChatModel] = None,
        llm_factory: Callable[..., BaseChatModel] = get_llm,
    ):
        self._llm = llm
        self._llm_factory = llm_factory
        self._models: Dict[Optional[float], BaseChatModel] = {}

    def _get_llm(self, temperature: Optional[float] = None) -> BaseChatModel:
        if self._llm is not None:
            return self._llm
        if temperature not in self._models:
            self._models[temperature] = self._llm_factory(temperature=temperature)
        return self._models[temperature]

    def build_messages(self, node: Node, inputs: List[Node]) -> List[BaseMessage]:
        payload = node.data.payload
        instructions = getattr(payload, "system_prompt", None) or KIND_INSTRUCTIONS.get(
            node.kind, DEFAULT_SYSTEM_PROMPT
        )
        context_blocks: List[str] = []
        for upstream in inputs:
            text = text_of(upstream).strip()
            if text:
                context_blocks.append(f"## {upstream.data.label}\n{text}")
        prompt = str(getattr(payload, "prompt", "") or "").strip()
        if not prompt and not context_blocks:
            raise HandlerError("Nothing to generate from. Write a prompt or connect an input node.")

        sections: List[str] = []
        if context_blocks:
            sections.append("Context:\n\n" + "\n\n".join(context_blocks))
        if prompt:
            sections.append(f"Instruction:\n{prompt}")
        return [SystemMessage(content=instructions), HumanMessage(content="\n\n".join(sections))]

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10), reraise=True)
    async def _invoke(self, llm: BaseChatModel, messages: List[BaseMessage]) -> str:
        response = await llm.ainvoke(messages)
        content = response.content
        if isinstance(content, list):
            content = "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in content)
        return str(content or "")

    async def handle(self, node: Node, inputs: List[Node], context: RunContext) -> HandlerResult:
        messages = self.build_messages(node, inputs)
        llm = self._get_llm(getattr(node.data.payload, "temperature", None))
        try:
            generated = await self._invoke(llm, messages)
        except Exception as exc:
            raise ExternalServiceError(f"generation failed: {exc}", service="generation") from exc

        logger.info("generation_node_completed", node_id=node.id, kind=node.kind.value, chars=len(generated))
        return HandlerResult(data={"generated_content": generated})
