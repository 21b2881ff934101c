from abc import ABC, abstractmethod
from typing import Any, Dict


class IEmbeddingProvider(ABC):
    """
    Interface for text-to-vector services.
    Providers return the raw textual response; parsing and shaping happen in the
    embedding service so malformed output can fall back deterministically.
    """

    @abstractmethod
    async def embed_text(self, text: str, dimensions: int) -> str:
        """
        Requests a vector of `dimensions` numbers for `text` and returns the raw response body.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Stable provider identifier (e.g. 'gateway')."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Configured model identifier."""
        pass

    def profile(self) -> Dict[str, Any]:
        """Provider-agnostic profile metadata for traceability."""
        return {
            "provider": str(self.provider_name),
            "model": str(self.model_name),
        }
