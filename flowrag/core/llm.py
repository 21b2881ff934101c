from typing import Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel

from flowrag.core.settings import settings
from flowrag.domain.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


def get_llm(
    temperature: Optional[float] = None,
    prefer_provider: str = "auto",
) -> BaseChatModel:
    """
    Returns the configured chat model for assistant and generator nodes.
    Prioritizes Groq -> Gemini unless a provider is preferred explicitly.
    """
    if temperature is None:
        temperature = settings.ASSISTANT_TEMPERATURE

    def _build_groq() -> Optional[BaseChatModel]:
        if not settings.GROQ_API_KEY:
            return None
        try:
            from langchain_groq import ChatGroq
        except ImportError:
            logger.warning("llm_provider_package_missing", provider="groq", package="langchain-groq")
            return None
        return ChatGroq(
            model=settings.GROQ_MODEL_NAME,
            temperature=temperature,
            api_key=settings.GROQ_API_KEY,
        )

    def _build_gemini() -> Optional[BaseChatModel]:
        if not settings.GEMINI_API_KEY:
            return None
        try:
            from langchain_google_genai import ChatGoogleGenerativeAI
        except ImportError:
            logger.warning("llm_provider_package_missing", provider="gemini", package="langchain-google-genai")
            return None
        return ChatGoogleGenerativeAI(
            model=settings.GEMINI_MODEL_NAME,
            temperature=temperature,
            google_api_key=settings.GEMINI_API_KEY,
        )

    normalized_preference = (prefer_provider or "auto").strip().lower()
    if normalized_preference == "gemini":
        provider_order = ["gemini", "groq"]
    else:
        provider_order = ["groq", "gemini"]

    for provider in provider_order:
        model = _build_groq() if provider == "groq" else _build_gemini()
        if model is not None:
            return model

    raise ConfigurationError(
        "No AI provider configured. Set GROQ_API_KEY or GEMINI_API_KEY and install the provider extra."
    )
