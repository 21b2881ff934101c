from __future__ import annotations

from flowrag.core.settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_labels_are_normalized() -> None:
    config = _settings(LOG_LEVEL=" debug ", LOG_FORMAT="CONSOLE", ENVIRONMENT=" Production ")

    assert config.LOG_LEVEL == "DEBUG"
    assert config.LOG_FORMAT == "console"
    assert config.ENVIRONMENT == "production"
    assert config.is_deployed_environment


def test_non_positive_deadline_means_unbounded() -> None:
    assert _settings(EXECUTOR_DEADLINE_SECONDS="0").EXECUTOR_DEADLINE_SECONDS is None
    assert _settings(EXECUTOR_DEADLINE_SECONDS="").EXECUTOR_DEADLINE_SECONDS is None
    assert _settings(EXECUTOR_DEADLINE_SECONDS="2.5").EXECUTOR_DEADLINE_SECONDS == 2.5


def test_throughput_controls_are_clamped() -> None:
    config = _settings(EMBEDDING_CONCURRENCY=0, RETRIEVAL_OVERFETCH_MIN=-3, EMBEDDING_INPUT_MAX_CHARS=0)

    assert config.EMBEDDING_CONCURRENCY == 1
    assert config.RETRIEVAL_OVERFETCH_MIN == 1
    assert config.EMBEDDING_INPUT_MAX_CHARS == 1


def test_gateway_requires_url_and_key() -> None:
    assert not _settings(
        EMBEDDING_GATEWAY_URL="https://gateway.local/v1", EMBEDDING_GATEWAY_API_KEY=None
    ).embedding_gateway_enabled
    assert _settings(
        EMBEDDING_GATEWAY_URL="https://gateway.local/v1", EMBEDDING_GATEWAY_API_KEY="secret"
    ).embedding_gateway_enabled
