"""Callable-tool conversion.

Turns descriptors into tools the model can call: a provider-safe key, a
merged input schema, a description carrying method/path and confirmation
marker, and an execute closure bound to the source and credentials.
"""

import re
from typing import Any, Awaitable, Callable

from relay_tools.base import (
    READ_METHODS,
    AgentSource,
    Credential,
    ToolDescriptor,
    ToolMetadata,
    ToolSource,
)
from relay_tools.executor import ToolExecutor, format_tool_result

KEY_NAME_MAX = 55
KEY_ID_CHARS = 8


def sanitize_tool_key(name: str, tool_id: str) -> str:
    """Identifier of at most 64 chars: cleaned name (<= 55) + '_' + first 8 id chars."""
    key = re.sub(r"[^A-Za-z0-9_]", "_", name)
    key = re.sub(r"_+", "_", key).strip("_")[:KEY_NAME_MAX]
    short_id = re.sub(r"[^A-Za-z0-9_]", "_", tool_id)[:KEY_ID_CHARS]
    return f"{key}_{short_id}"


def deep_clean_schema(value: Any) -> Any:
    """Replace "None"/"null"/null type values with "string", recursively."""
    if value is None:
        return {"type": "string"}
    if isinstance(value, list):
        return [deep_clean_schema(item) for item in value]
    if not isinstance(value, dict):
        return value

    cleaned: dict[str, Any] = {}
    for key, item in value.items():
        if key == "type" and item in ("None", "null", None):
            cleaned[key] = "string"
        elif isinstance(item, (dict, list)):
            cleaned[key] = deep_clean_schema(item)
        else:
            cleaned[key] = item
    return cleaned


def build_input_schema(tool: ToolDescriptor) -> dict[str, Any]:
    """Merge path/query parameters and body properties into one object schema."""
    params = deep_clean_schema(tool.parameters or {})
    body = deep_clean_schema(tool.request_body or {})
    properties: dict[str, Any] = {}
    required: list[str] = []

    for name, schema in (params.get("properties") or {}).items():
        if not isinstance(schema, dict):
            continue
        prop = {k: v for k, v in schema.items() if k != "in"}
        prop["type"] = prop.get("type") or "string"
        prop.setdefault("description", f"{schema.get('in') or 'query'} parameter: {name}")
        properties[name] = prop
    required.extend(params.get("required") or [])

    for name, schema in (body.get("properties") or {}).items():
        if not isinstance(schema, dict):
            continue
        properties[name] = {**schema, "type": schema.get("type") or "string"}
    required.extend(body.get("required") or [])

    schema: dict[str, Any] = {"properties": properties}
    if required:
        schema["required"] = list(dict.fromkeys(required))
    schema["type"] = "object"
    return schema


def describe_tool(tool: ToolDescriptor) -> str:
    parts = [tool.description, f"({tool.method} {tool.path})"]
    if tool.needs_confirmation:
        parts.append("[requires confirmation]")
    return " ".join(part for part in parts if part)


class CallableTool:
    """A tool bound to its executor closure."""

    def __init__(
        self,
        key: str,
        description: str,
        input_schema: dict[str, Any],
        metadata: ToolMetadata,
        handler: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]],
    ):
        self.key = key
        self.description = description
        self.input_schema = input_schema
        self.metadata = metadata
        self._handler = handler

    @property
    def needs_approval(self) -> bool:
        return self.metadata.requires_confirmation

    async def execute(self, args: dict[str, Any]) -> dict[str, Any]:
        """Execute tool action."""
        return await self._handler(args or {})

    def __repr__(self) -> str:
        return f"CallableTool(key={self.key!r})"


class ToolConverter:
    """Converts descriptors for one agent turn."""

    def __init__(self, executor: ToolExecutor, result_max_chars: int = 10240):
        self.executor = executor
        self.result_max_chars = result_max_chars

    def convert(
        self,
        tools: list[ToolDescriptor],
        agent_sources: list[AgentSource],
        credentials: dict[str, Credential],
        caller_id: str | None = None,
    ) -> list[CallableTool]:
        """Convert descriptors, skipping those whose source is not linked.

        Agents with read permission on a source only get GET/HEAD/OPTIONS tools.
        """
        by_source = {link.source.id: link for link in agent_sources}
        by_template = {
            link.source.template_id: link for link in agent_sources if link.source.template_id
        }

        converted: list[CallableTool] = []
        for tool in tools:
            link = by_source.get(tool.source_id or "") or by_template.get(tool.template_id or "")
            if link is None:
                continue
            if link.read_only and tool.method.upper() not in READ_METHODS:
                continue
            converted.append(
                self.convert_one(tool, link.source, credentials.get(link.source.id), caller_id)
            )
        return converted

    def convert_one(
        self,
        tool: ToolDescriptor,
        source: ToolSource,
        credential: Credential | None,
        caller_id: str | None = None,
    ) -> CallableTool:
        executor = self.executor
        max_chars = self.result_max_chars

        async def handler(args: dict[str, Any]) -> dict[str, Any]:
            result = await executor.execute_tool(tool, source, args, credential, caller_id)
            return {
                "record": {
                    "tool_id": tool.id,
                    "tool_name": tool.name,
                    "source_id": source.id,
                    "source_name": source.name,
                    "method": tool.method,
                    "target": result.target,
                    "arguments": args,
                    "status": result.status,
                    "body": result.body,
                    "duration_ms": result.duration_ms,
                    "error": result.error,
                },
                "result": format_tool_result(result, max_chars),
            }

        return CallableTool(
            key=sanitize_tool_key(tool.name, tool.id),
            description=describe_tool(tool),
            input_schema=build_input_schema(tool),
            metadata=ToolMetadata(
                tool_id=tool.id,
                source_id=source.id,
                origin=tool.origin,
                method=tool.method,
                path=tool.path,
                risk_level=tool.risk_level,
                requires_confirmation=tool.needs_confirmation,
            ),
            handler=handler,
        )
