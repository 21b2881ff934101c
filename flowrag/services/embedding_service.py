import asyncio
import re
import threading
from dataclasses import dataclass
from typing import List, Literal, Optional, Sequence

import numpy as np
import structlog

from flowrag.core.settings import settings
from flowrag.domain.exceptions import ExternalServiceError
from flowrag.domain.interfaces.embedding_provider import IEmbeddingProvider
from flowrag.infrastructure.services.gateway_embedding_provider import GatewayEmbeddingProvider

logger = structlog.get_logger(__name__)

EmbeddingMethod = Literal["semantic", "fallback"]

_ARRAY_PATTERN = re.compile(r"\[[\d\s,.\-+eE]+\]")
_HASH_SLOT_SCALE = 0.0001
_PAD_NOISE_SCALE = 0.1


@dataclass(frozen=True)
class EmbeddingOutcome:
    vector: List[float]
    method: EmbeddingMethod


def djb2(word: str) -> int:
    value = 5381
    for char in word:
        value = ((value << 5) + value + ord(char)) & 0xFFFFFFFF
    return value


def _normalize(vector: np.ndarray) -> np.ndarray:
    magnitude = float(np.linalg.norm(vector))
    return vector / (magnitude or 1.0)


def hash_embedding(text: str, dimensions: int) -> List[float]:
    """
    Deterministic bag-of-words vector used when no semantic embedding is available.

    Every slot is tanh of the mean of sin(hash * slot * 1e-4) over the word hashes,
    then the vector is L2-normalised. Identical input gives a bit-identical vector.
    """
    words = str(text or "").lower().strip().split()
    tokens = [word for word in words if len(word) > 2] or words or [""]
    hashes = np.array([djb2(token) for token in tokens], dtype=np.float64)
    slots = np.arange(1, int(dimensions) + 1, dtype=np.float64)
    values = np.tanh(np.sin(np.outer(hashes, slots) * _HASH_SLOT_SCALE).mean(axis=0))
    return _normalize(values).tolist()


def parse_vector(raw: str) -> Optional[List[float]]:
    """Extracts the first numeric JSON-style array from a textual model response."""
    match = _ARRAY_PATTERN.search(str(raw or ""))
    if match is None:
        return None
    parts = [part.strip() for part in match.group(0)[1:-1].split(",")]
    try:
        values = [float(part) for part in parts if part]
    except ValueError:
        return None
    if not values or not all(np.isfinite(values)):
        return None
    return values


def fit_dimensions(values: Sequence[float], dimensions: int) -> List[float]:
    """
    Truncates, or pads by cycling the existing entries plus a small deterministic
    sin-based perturbation, to exactly `dimensions` entries.
    """
    if len(values) >= dimensions:
        return [float(v) for v in values[:dimensions]]
    fitted = [float(v) for v in values]
    base = len(values)
    while len(fitted) < dimensions:
        position = len(fitted)
        noise = (np.sin(position * 7) + 1) / 2 * _PAD_NOISE_SCALE
        fitted.append(float(values[position % base]) + float(noise) - _PAD_NOISE_SCALE / 2)
    return fitted


class EmbeddingGenerator:
    """
    Facade for text embeddings.
    Tries the configured provider first and falls back to the deterministic hash
    vector on any failure, so callers always receive a unit vector of the requested width.
    """

    _instance: Optional["EmbeddingGenerator"] = None
    _instance_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "EmbeddingGenerator":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def __init__(self, provider: Optional[IEmbeddingProvider] = None, *, use_configured_provider: bool = True):
        if provider is None and use_configured_provider and settings.embedding_gateway_enabled:
            provider = GatewayEmbeddingProvider(api_key=str(settings.EMBEDDING_GATEWAY_API_KEY))
        self.provider = provider
        self.input_max_chars = max(1, int(settings.EMBEDDING_INPUT_MAX_CHARS))
        self.embedding_concurrency = max(1, int(settings.EMBEDDING_CONCURRENCY))

    async def embed(self, text: str, dimensions: int) -> EmbeddingOutcome:
        if int(dimensions) < 1:
            raise ValueError("dimensions must be at least 1")
        dims = int(dimensions)

        if self.provider is not None:
            vector = await self._embed_semantic(str(text or ""), dims)
            if vector is not None:
                return EmbeddingOutcome(vector=vector, method="semantic")

        return EmbeddingOutcome(vector=hash_embedding(text, dims), method="fallback")

    async def embed_many(self, texts: Sequence[str], dimensions: int) -> List[EmbeddingOutcome]:
        # One semaphore per call: the shared generator outlives any single event loop.
        semaphore = asyncio.Semaphore(self.embedding_concurrency)

        async def _bounded(text: str) -> EmbeddingOutcome:
            async with semaphore:
                return await self.embed(text, dimensions)

        return list(await asyncio.gather(*(_bounded(text) for text in texts)))

    async def _embed_semantic(self, text: str, dimensions: int) -> Optional[List[float]]:
        provider = self.provider
        if provider is None:
            return None
        try:
            raw = await provider.embed_text(text[: self.input_max_chars], dimensions)
        except ExternalServiceError as exc:
            logger.warning(
                "embedding_provider_failed_fallback",
                provider=provider.provider_name,
                status=exc.status,
                error=exc.message,
            )
            return None
        except Exception as exc:
            logger.warning(
                "embedding_provider_crashed_fallback",
                provider=provider.provider_name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

        values = parse_vector(raw)
        if values is None:
            logger.warning(
                "embedding_response_unparseable_fallback",
                provider=provider.provider_name,
                preview=str(raw or "")[:120],
            )
            return None

        if not any(values):
            logger.warning("embedding_response_zero_vector_fallback", provider=provider.provider_name)
            return None
        fitted = np.asarray(fit_dimensions(values, dimensions), dtype=np.float64)
        return _normalize(fitted).tolist()

    async def close(self) -> None:
        if self.provider is not None:
            await self.provider.close()
