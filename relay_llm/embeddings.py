"""Embedding text conventions for tools."""

from relay_tools.base import ToolDescriptor

DEFAULT_MAX_INPUT_CHARS = 8000


def tool_embedding_text(tool: ToolDescriptor, max_chars: int = DEFAULT_MAX_INPUT_CHARS) -> str:
    """'{name}: {description} ({method} {path})', truncated for the embedding model."""
    return f"{tool.name}: {tool.description or ''} ({tool.method} {tool.path})"[:max_chars]
