import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


PROJECT_ROOT = Path(__file__).resolve().parents[2]
ROOT_ENV = PROJECT_ROOT / ".env"
ROOT_ENV_LOCAL = PROJECT_ROOT / ".env.local"


class Settings(BaseSettings):
    """
    flowrag - Global Configuration Registry
    Centralizes all environment variables using Pydantic Settings.
    """

    model_config = SettingsConfigDict(
        env_file=(str(ROOT_ENV), str(ROOT_ENV_LOCAL)),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"
    ENVIRONMENT: str = "development"

    # Embedding gateway (OpenAI-compatible chat completions endpoint)
    EMBEDDING_GATEWAY_URL: Optional[str] = None
    EMBEDDING_GATEWAY_API_KEY: Optional[str] = None
    EMBEDDING_GATEWAY_MODEL: str = "google/gemini-2.5-flash"
    EMBEDDING_GATEWAY_TIMEOUT_SECONDS: float = 30.0
    EMBEDDING_GATEWAY_MAX_ATTEMPTS: int = 3
    EMBEDDING_GATEWAY_MAX_REQUESTED_DIMENSIONS: int = 64
    EMBEDDING_INPUT_MAX_CHARS: int = 1000
    EMBEDDING_DEFAULT_DIMENSIONS: int = 1536
    EMBEDDING_CONCURRENCY: int = 5

    # Retrieval
    RETRIEVAL_OVERFETCH_MIN: int = 20
    RETRIEVAL_BASE_THRESHOLD: float = Field(0.0, ge=0.0, le=1.0)
    VECTOR_STORE_PATH: Optional[str] = None

    # Graph execution
    EXECUTOR_DEADLINE_SECONDS: Optional[float] = None
    EXECUTOR_REJECT_CYCLES: bool = True

    # Generation providers
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL_NAME: str = "llama-3.3-70b-versatile"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL_NAME: str = "gemini-2.5-flash"
    ASSISTANT_TEMPERATURE: float = 0.7

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def _normalize_environment_label(cls, value: str | None) -> str:
        return str(value or "").strip().lower()

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str | None) -> str:
        return str(value or "INFO").strip().upper()

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def _normalize_log_format(cls, value: str | None) -> str:
        return str(value or "json").strip().lower()

    @field_validator("EXECUTOR_DEADLINE_SECONDS", mode="before")
    @classmethod
    def _normalize_deadline(cls, value: object) -> Optional[float]:
        if value is None or str(value).strip() == "":
            return None
        parsed = float(str(value))
        return parsed if parsed > 0 else None

    @property
    def is_deployed_environment(self) -> bool:
        return self.ENVIRONMENT in {"staging", "production", "prod"}

    @property
    def embedding_gateway_enabled(self) -> bool:
        return bool(self.EMBEDDING_GATEWAY_URL and self.EMBEDDING_GATEWAY_API_KEY)

    @model_validator(mode="after")
    def _clamp_throughput_controls(self) -> "Settings":
        self.EMBEDDING_CONCURRENCY = max(1, int(self.EMBEDDING_CONCURRENCY))
        self.EMBEDDING_GATEWAY_MAX_ATTEMPTS = max(1, int(self.EMBEDDING_GATEWAY_MAX_ATTEMPTS))
        self.EMBEDDING_GATEWAY_MAX_REQUESTED_DIMENSIONS = max(
            1, int(self.EMBEDDING_GATEWAY_MAX_REQUESTED_DIMENSIONS)
        )
        self.EMBEDDING_INPUT_MAX_CHARS = max(1, int(self.EMBEDDING_INPUT_MAX_CHARS))
        self.RETRIEVAL_OVERFETCH_MIN = max(1, int(self.RETRIEVAL_OVERFETCH_MIN))
        if self.is_deployed_environment and not self.embedding_gateway_enabled:
            logger.warning(
                "Embedding gateway is not configured in a deployed environment; "
                "vectors will use the deterministic hash fallback",
                extra={"environment": self.ENVIRONMENT},
            )
        return self


settings = Settings()  # type: ignore[call-arg]
