"""Relay-Core Embedding Integration.

Embeddings drive semantic tool and routine retrieval:
- Query embeddings per conversational turn
- Tool embeddings for catalog backfill
"""

from .client import EmbeddingAuthError, EmbeddingClient, EmbeddingError, EmbeddingRateLimitError
from .embeddings import tool_embedding_text
from .openai_client import OpenAIEmbeddingClient

__all__ = [
    "EmbeddingClient",
    "EmbeddingError",
    "EmbeddingAuthError",
    "EmbeddingRateLimitError",
    "OpenAIEmbeddingClient",
    "tool_embedding_text",
]
