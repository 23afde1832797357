"""Tool server protocol adapter.

JSON-RPC connections to tool servers over a spawned process (stdio) or
stateless HTTP, pooled per source id.

Usage:
    from relay_tools.adapters.protocol import ConnectionPool

    pool = ConnectionPool()
    tools = await pool.list_tools(source, credentials)
    raw = await pool.call_tool(source, "search", {"query": "q"}, credentials)
    await pool.disconnect_all()
"""

from .connection import ConnectionState, ProtocolConnection
from .hints import build_source_guidance, post_process_result, pre_process_args
from .http import HttpConnection
from .jsonrpc import RequestIdSequence
from .parser import ParsedToolResult, convert_tool, determine_risk_level, parse_tool_result
from .pool import ConnectionPool
from .stdio import StdioConnection

__all__ = [
    "ConnectionPool",
    "ConnectionState",
    "HttpConnection",
    "ParsedToolResult",
    "ProtocolConnection",
    "RequestIdSequence",
    "StdioConnection",
    "build_source_guidance",
    "convert_tool",
    "determine_risk_level",
    "parse_tool_result",
    "post_process_result",
    "pre_process_args",
]
