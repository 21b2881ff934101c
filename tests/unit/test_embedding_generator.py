from __future__ import annotations

import asyncio
import math

import pytest

from flowrag.domain.exceptions import ExternalServiceError
from flowrag.domain.interfaces.embedding_provider import IEmbeddingProvider
from flowrag.services.embedding_service import (
    EmbeddingGenerator,
    djb2,
    fit_dimensions,
    hash_embedding,
    parse_vector,
)


class _DummyProvider(IEmbeddingProvider):
    def __init__(self, response: str = "", error: Exception | None = None, delay: float = 0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.received: list[str] = []
        self.closed = False

    async def embed_text(self, text: str, dimensions: int) -> str:
        self.received.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self) -> None:
        self.closed = True

    @property
    def provider_name(self) -> str:
        return "dummy"

    @property
    def model_name(self) -> str:
        return "dummy-model"


def _norm(vector: list[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


def test_djb2_matches_reference_values() -> None:
    assert djb2("") == 5381
    assert djb2("a") == 5381 * 33 + ord("a")
    assert 0 <= djb2("a much longer word that overflows 32 bits") < 2**32


def test_fallback_vector_is_unit_length_and_deterministic() -> None:
    generator = EmbeddingGenerator(use_configured_provider=False)

    async def _run() -> None:
        first = await generator.embed("Vector search finds similar passages", 64)
        second = await generator.embed("Vector search finds similar passages", 64)

        assert first.method == "fallback"
        assert len(first.vector) == 64
        assert _norm(first.vector) == pytest.approx(1.0)
        assert first.vector == second.vector

    asyncio.run(_run())


def test_fallback_uses_all_words_when_none_is_long() -> None:
    assert hash_embedding("a an", 16) != hash_embedding("", 16)
    assert _norm(hash_embedding("", 16)) == pytest.approx(1.0)


def test_dimensions_must_be_positive() -> None:
    generator = EmbeddingGenerator(use_configured_provider=False)

    with pytest.raises(ValueError, match="dimensions"):
        asyncio.run(generator.embed("text", 0))


def test_semantic_vector_is_padded_and_normalized() -> None:
    provider = _DummyProvider(response="Sure! [0.1, 0.2, 0.3]")
    generator = EmbeddingGenerator(provider)

    outcome = asyncio.run(generator.embed("hello world", 10))

    assert outcome.method == "semantic"
    assert len(outcome.vector) == 10
    assert _norm(outcome.vector) == pytest.approx(1.0)
    assert outcome.vector[1] / outcome.vector[0] == pytest.approx(2.0)


def test_provider_input_is_truncated() -> None:
    provider = _DummyProvider(response="[1, 2]")
    generator = EmbeddingGenerator(provider)

    asyncio.run(generator.embed("z" * 5000, 4))

    assert len(provider.received[0]) == generator.input_max_chars


@pytest.mark.parametrize(
    "provider",
    [
        _DummyProvider(error=ExternalServiceError("boom", service="embedding", status=500)),
        _DummyProvider(response="I cannot do that"),
        _DummyProvider(response="[0, 0, 0]"),
        _DummyProvider(error=RuntimeError("connection reset by SDK")),
        _DummyProvider(error=KeyError("choices")),
    ],
)
def test_provider_problems_fall_back_to_hash_vector(provider: _DummyProvider) -> None:
    generator = EmbeddingGenerator(provider)

    outcome = asyncio.run(generator.embed("fallback please", 32))

    assert outcome.method == "fallback"
    assert outcome.vector == hash_embedding("fallback please", 32)


def test_embed_many_preserves_input_order() -> None:
    generator = EmbeddingGenerator(use_configured_provider=False)
    texts = ["first passage", "second passage", "third passage"]

    outcomes = asyncio.run(generator.embed_many(texts, 8))

    assert [outcome.vector for outcome in outcomes] == [hash_embedding(text, 8) for text in texts]


def test_embed_many_can_be_reused_across_event_loops() -> None:
    generator = EmbeddingGenerator(_DummyProvider(response="[0.5, 0.5]", delay=0.01))
    generator.embedding_concurrency = 1

    first = asyncio.run(generator.embed_many(["a", "b", "c"], 8))
    second = asyncio.run(generator.embed_many(["a", "b", "c"], 8))

    assert [outcome.method for outcome in first + second] == ["semantic"] * 6
    assert first[0].vector == second[0].vector


def test_parse_vector_rejects_garbage() -> None:
    assert parse_vector("[0.5, -1e-3, 2]") == [0.5, -0.001, 2.0]
    assert parse_vector("no array here") is None
    assert parse_vector("[1, 2, -]") is None


def test_fit_dimensions_truncates_and_pads() -> None:
    assert fit_dimensions([1.0, 2.0, 3.0], 2) == [1.0, 2.0]
    padded = fit_dimensions([1.0, 2.0], 5)
    assert len(padded) == 5
    assert padded[:2] == [1.0, 2.0]
    assert padded == fit_dimensions([1.0, 2.0], 5)


def test_close_releases_provider() -> None:
    provider = _DummyProvider()
    asyncio.run(EmbeddingGenerator(provider).close())

    assert provider.closed is True
