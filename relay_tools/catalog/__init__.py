"""Tool catalog: per-turn loading and selection of callable tools."""

from .capping import cap_tools, tool_priority
from .converter import CallableTool, ToolConverter, build_input_schema, sanitize_tool_key
from .loader import AgentToolCatalog, ToolCatalogLoader, partition_sources
from .quota import RetrievalMode, allocate_quota, choose_retrieval
from .routines import RoutineMatch, RoutineMatcher, routine_confidence
from .store import CatalogStore, RoutineCandidate, ToolCoverage, ToolGroup, ToolMatch
from .system_tools import SearchToolsTool, create_system_tools

__all__ = [
    "AgentToolCatalog",
    "CallableTool",
    "CatalogStore",
    "RetrievalMode",
    "RoutineCandidate",
    "RoutineMatch",
    "RoutineMatcher",
    "SearchToolsTool",
    "ToolCatalogLoader",
    "ToolConverter",
    "ToolCoverage",
    "ToolGroup",
    "ToolMatch",
    "allocate_quota",
    "build_input_schema",
    "cap_tools",
    "choose_retrieval",
    "create_system_tools",
    "partition_sources",
    "routine_confidence",
    "sanitize_tool_key",
    "tool_priority",
]
