"""Base embedding client interface.

Defines the contract that all embedding clients must implement.
"""

import asyncio
from abc import ABC, abstractmethod


class EmbeddingClient(ABC):
    """Abstract base class for embedding clients."""

    batch_concurrency: int = 10

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Args:
            text: Query or tool text

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: If the provider call fails
        """
        pass

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, at most batch_concurrency calls in flight.

        Texts are processed in fixed-size slices; order is preserved.
        """
        vectors: list[list[float]] = []
        size = max(1, self.batch_concurrency)
        for start in range(0, len(texts), size):
            batch = texts[start : start + size]
            vectors.extend(await asyncio.gather(*(self.embed(text) for text in batch)))
        return vectors

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier (e.g., 'text-embedding-3-small')."""
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the vector size produced by the model."""
        pass


class EmbeddingError(Exception):
    """Base exception for embedding client errors."""

    pass


class EmbeddingAuthError(EmbeddingError):
    """Authentication error with embedding provider."""

    pass


class EmbeddingRateLimitError(EmbeddingError):
    """Rate limit exceeded."""

    pass
