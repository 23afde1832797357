"""Built-in introspection tools.

search_tools lets the model find tools that were not surfaced this turn.
System tools are always kept when the tool list is capped.
"""

from typing import Any

from relay_llm.client import EmbeddingClient, EmbeddingError
from relay_obs.logging import get_logger
from relay_tools.base import ToolMetadata

from .store import CatalogStore, ToolGroup

logger = get_logger(__name__)

SEARCH_TOOLS_KEY = "search_tools"


class SearchToolsTool:
    """Semantic search across the agent's template and tenant tool groups."""

    key = SEARCH_TOOLS_KEY
    description = (
        "Search for available API tools by describing what you need. Use this when you "
        "need a tool that is not in your current set. Returns matching tools with their "
        "names, descriptions, methods, and paths."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": (
                    'Natural language description of what tool you need (e.g., "cancel a '
                    'subscription", "get customer details", "create a refund")'
                ),
            },
        },
        "required": ["query"],
    }

    def __init__(
        self,
        store: CatalogStore,
        embedder: EmbeddingClient,
        groups: list[ToolGroup],
        limit: int = 10,
    ):
        self.store = store
        self.embedder = embedder
        self.groups = groups
        self.limit = limit
        self.metadata = ToolMetadata(system=True)

    async def execute(self, args: dict[str, Any]) -> dict[str, Any]:
        """Execute tool action."""
        query = str((args or {}).get("query") or "").strip()
        if not query:
            return {"message": "Describe the tool you need in the query field.", "tools": []}

        try:
            embedding = await self.embedder.embed(query)
        except EmbeddingError as e:
            logger.warning("catalog.search_unavailable", error=str(e))
            return {"message": f"Tool search is unavailable right now: {e}", "tools": []}

        results: list[dict[str, Any]] = []
        for group in self.groups:
            matches = await self.store.search_tools(group, embedding, self.limit)
            if not matches:
                continue
            tools = {
                tool.id: tool
                for tool in await self.store.get_tools_by_ids(
                    group.origin, [m.tool_id for m in matches]
                )
            }
            for match in matches:
                tool = tools.get(match.tool_id)
                if tool is None:
                    continue
                results.append(
                    {
                        "name": tool.name,
                        "description": tool.description or "",
                        "method": tool.method,
                        "path": tool.path,
                        "similarity": round(match.similarity * 100),
                    }
                )

        results.sort(key=lambda r: r["similarity"], reverse=True)
        top = results[: self.limit]
        logger.info("catalog.search_tools", groups=len(self.groups), results=len(top))

        if not top:
            return {
                "message": (
                    "No matching tools found. Try a different search query or check if the "
                    "required API source is connected."
                ),
                "tools": [],
            }
        return {
            "message": f"Found {len(top)} matching tools. You can now call any of these tools directly.",
            "tools": [
                {
                    "name": r["name"],
                    "description": r["description"],
                    "method": r["method"],
                    "path": r["path"],
                    "match": f"{r['similarity']}%",
                }
                for r in top
            ],
        }


def create_system_tools(
    store: CatalogStore,
    embedder: EmbeddingClient | None,
    groups: list[ToolGroup],
    limit: int = 10,
) -> list[SearchToolsTool]:
    """System tools for an agent; search_tools only when a database group exists."""
    if embedder is None or not any(group.ids for group in groups):
        return []
    return [SearchToolsTool(store, embedder, [g for g in groups if g.ids], limit)]
