"""Relay-Core Tool Routing.

Protocol connections to tool servers, the invocation executor and the
per-turn tool catalog loader.
"""

from relay_tools.base import (
    AgentSource,
    AuthKind,
    Credential,
    RiskLevel,
    Routine,
    Tool,
    ToolCallResult,
    ToolDescriptor,
    ToolMetadata,
    ToolOrigin,
    ToolSource,
    TransportKind,
)
from relay_tools.executor import ToolExecutor, format_tool_result
from relay_tools.registry import ToolRegistry

__all__ = [
    "AgentSource",
    "AuthKind",
    "Credential",
    "RiskLevel",
    "Routine",
    "Tool",
    "ToolCallResult",
    "ToolDescriptor",
    "ToolExecutor",
    "ToolMetadata",
    "ToolOrigin",
    "ToolRegistry",
    "ToolSource",
    "TransportKind",
    "format_tool_result",
]
