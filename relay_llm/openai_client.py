"""OpenAI embedding client.

Used for:
- Query embeddings for tool and routine retrieval
- Tool embeddings written back during catalog backfill
"""

import os

from openai import APIError, AsyncOpenAI, AuthenticationError, RateLimitError

from .client import EmbeddingAuthError, EmbeddingClient, EmbeddingError, EmbeddingRateLimitError


class OpenAIEmbeddingClient(EmbeddingClient):
    """text-embedding-3 client."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        max_input_chars: int = 8000,
        batch_concurrency: int = 10,
        organization: str | None = None,
    ):
        """Initialize OpenAI embedding client.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            model: Embedding model
            dimensions: Output vector size (768 or 1536)
            max_input_chars: Inputs are truncated to this many characters
            batch_concurrency: In-flight calls per embed_many slice
            organization: Optional organization ID
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise EmbeddingAuthError("OPENAI_API_KEY not found in environment")

        self.client = AsyncOpenAI(api_key=self.api_key, organization=organization)
        self._model = model
        self._dimensions = dimensions
        self.max_input_chars = max_input_chars
        self.batch_concurrency = batch_concurrency

    @classmethod
    def from_settings(cls, settings) -> "OpenAIEmbeddingClient":
        return cls(
            api_key=settings.OPENAI_API_KEY or None,
            model=settings.EMBEDDING_MODEL,
            dimensions=settings.EMBEDDING_DIMENSIONS,
            max_input_chars=settings.EMBED_MAX_INPUT_CHARS,
            batch_concurrency=settings.EMBED_BATCH_CONCURRENCY,
        )

    @property
    def model_name(self) -> str:
        """Return model identifier."""
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingAuthError: Invalid API key
            EmbeddingRateLimitError: Rate limit exceeded
            EmbeddingError: Other API errors
        """
        try:
            response = await self.client.embeddings.create(
                model=self._model,
                input=text[: self.max_input_chars],
                dimensions=self._dimensions,
            )
        except AuthenticationError as e:
            raise EmbeddingAuthError(f"OpenAI authentication failed: {e}") from e
        except RateLimitError as e:
            raise EmbeddingRateLimitError(f"OpenAI rate limit exceeded: {e}") from e
        except APIError as e:
            raise EmbeddingError(f"OpenAI API error: {e}") from e

        return list(response.data[0].embedding)
