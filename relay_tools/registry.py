"""Tool Registry.

Callable tools surfaced to the model for one turn, keyed by tool key.
"""

from typing import Iterator

from relay_tools.base import RiskLevel, Tool


class ToolRegistry:
    """Tool registry with key lookup and metadata filtering."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool; a later tool with the same key replaces the earlier one."""
        self._tools[tool.key] = tool

    def get(self, key: str) -> Tool | None:
        """Get tool by key."""
        return self._tools.get(key)

    def keys(self) -> list[str]:
        return list(self._tools)

    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def filter_by_risk(self, risk_level: RiskLevel) -> list[Tool]:
        return [t for t in self._tools.values() if t.metadata.risk_level is risk_level]

    def requiring_confirmation(self) -> list[Tool]:
        """Tools whose calls must be confirmed by the user before running."""
        return [
            t
            for t in self._tools.values()
            if t.metadata.requires_confirmation or t.metadata.risk_level is RiskLevel.DANGEROUS
        ]

    def system_tools(self) -> list[Tool]:
        return [t for t in self._tools.values() if t.metadata.system]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, key: str) -> bool:
        return key in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())
