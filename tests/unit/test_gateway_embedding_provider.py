from __future__ import annotations

import asyncio

import aiohttp
import pytest

from flowrag.core.settings import settings
from flowrag.domain.exceptions import ExternalServiceError
from flowrag.infrastructure.services.gateway_embedding_provider import GatewayEmbeddingProvider, _is_transient


def test_payload_requests_a_short_array() -> None:
    provider = GatewayEmbeddingProvider(api_key="k", base_url="https://gateway.local/v1", model_name="m")

    payload = provider.build_payload("hello", 1536)

    assert payload["model"] == "m"
    assert payload["temperature"] == 0
    assert "64-dimensional" in payload["messages"][1]["content"]
    assert payload["messages"][1]["content"].endswith("hello")
    assert "8-dimensional" in provider.build_payload("hello", 8)["messages"][1]["content"]


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ExternalServiceError("rate limited", service="embedding", status=429), True),
        (ExternalServiceError("upstream", service="embedding", status=503), True),
        (ExternalServiceError("bad request", service="embedding", status=400), False),
        (ExternalServiceError("no status", service="embedding"), False),
        (aiohttp.ClientConnectionError(), True),
        (asyncio.TimeoutError(), True),
        (ValueError("nope"), False),
    ],
)
def test_transient_classification(exc: BaseException, expected: bool) -> None:
    assert _is_transient(exc) is expected


def test_missing_gateway_url_is_an_external_service_error(monkeypatch) -> None:
    monkeypatch.setattr(settings, "EMBEDDING_GATEWAY_URL", None)
    provider = GatewayEmbeddingProvider(api_key="k")

    with pytest.raises(ExternalServiceError, match="not configured"):
        asyncio.run(provider.embed_text("hello", 16))


def test_profile_reports_provider_and_model() -> None:
    provider = GatewayEmbeddingProvider(api_key="k", base_url="https://gateway.local/v1", model_name="m")

    assert provider.profile() == {"provider": "gateway", "model": "m"}
