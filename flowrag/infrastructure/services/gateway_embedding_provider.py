from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from flowrag.core.settings import settings
from flowrag.domain.exceptions import ExternalServiceError
from flowrag.domain.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(__name__)

_SYSTEM_PROMPT = (
    "You are an embedding generator. Given text, output ONLY a JSON array of "
    "floating point numbers between -1 and 1 that captures the semantic meaning "
    "of the text. Output nothing else."
)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ExternalServiceError):
        return exc.status is not None and (exc.status == 429 or exc.status >= 500)
    return isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError))


class GatewayEmbeddingProvider(IEmbeddingProvider):
    """
    Asks an OpenAI-compatible chat-completions gateway for an embedding-like array.

    The model is only asked for a short array (at most
    EMBEDDING_GATEWAY_MAX_REQUESTED_DIMENSIONS numbers); the caller pads it to the
    requested width.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model_name: Optional[str] = None,
    ):
        self.api_key = str(api_key or "").strip()
        self.base_url = str(base_url or settings.EMBEDDING_GATEWAY_URL or "")
        self._model_name = str(model_name or settings.EMBEDDING_GATEWAY_MODEL)
        self._timeout_seconds = float(settings.EMBEDDING_GATEWAY_TIMEOUT_SECONDS or 30.0)
        self._max_attempts = max(1, int(settings.EMBEDDING_GATEWAY_MAX_ATTEMPTS or 1))
        self._max_requested = max(1, int(settings.EMBEDDING_GATEWAY_MAX_REQUESTED_DIMENSIONS or 64))
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def provider_name(self) -> str:
        return "gateway"

    @property
    def model_name(self) -> str:
        return self._model_name

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def build_payload(self, text: str, dimensions: int) -> Dict[str, Any]:
        requested = min(max(1, int(dimensions)), self._max_requested)
        return {
            "model": self._model_name,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"Generate a {requested}-dimensional embedding vector for this text. "
                        f"Output only the JSON array:\n\n{text}"
                    ),
                },
            ],
            "temperature": 0,
        }

    async def embed_text(self, text: str, dimensions: int) -> str:
        if not self.base_url:
            raise ExternalServiceError("embedding gateway URL is not configured", service="embedding")
        payload = self.build_payload(text, dimensions)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception(_is_transient),
                reraise=True,
            ):
                with attempt:
                    return await self._post(payload)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ExternalServiceError(
                f"embedding_gateway_unreachable:{type(exc).__name__}", service="embedding"
            ) from exc
        raise ExternalServiceError("embedding_gateway_no_attempts", service="embedding")

    async def _post(self, payload: Dict[str, Any]) -> str:
        session = await self._get_session()
        async with session.post(self.base_url, json=payload) as response:
            if response.status >= 400:
                body = await response.text()
                raise ExternalServiceError(
                    f"embedding_gateway_error:{response.status}:{body[:240]}",
                    service="embedding",
                    status=response.status,
                )
            data = await response.json(content_type=None)

        choices = data.get("choices") if isinstance(data, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else {}
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            logger.warning("embedding_gateway_unexpected_shape", keys=sorted(data) if isinstance(data, dict) else None)
            return ""
        return content
