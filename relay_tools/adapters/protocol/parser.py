"""Tool server listing and result parsing.

Converts tools/list entries into ToolDescriptors and unwraps tools/call
result envelopes into a single summarizable value.
"""

import json
import re
from typing import Any

from pydantic import BaseModel

from relay_tools.base import RiskLevel, ToolDescriptor, ToolOrigin

PROTOCOL_METHOD = "MCP"

DANGEROUS_KEYWORDS = (
    "delete", "remove", "destroy", "drop", "truncate", "clear",
    "purge", "wipe", "reset", "revoke", "terminate", "kill",
    "cancel", "disable", "deactivate", "suspend", "ban", "block",
)

MODERATE_KEYWORDS = (
    "update", "modify", "edit", "change", "set", "patch",
    "write", "create", "insert", "add", "post", "put",
    "send", "execute", "run", "trigger", "invoke",
)

SAFE_KEYWORDS = (
    "get", "list", "read", "fetch", "query", "search",
    "find", "show", "describe", "inspect", "view", "check",
)

TAG_KEYWORDS = {
    "file": ("file", "directory", "folder", "path", "read", "write"),
    "database": ("database", "db", "sql", "query", "table", "record"),
    "git": ("git", "commit", "branch", "repository", "repo"),
    "api": ("api", "http", "request", "response", "endpoint"),
    "auth": ("auth", "token", "credential", "password", "login"),
    "search": ("search", "find", "query", "filter"),
    "notification": ("notify", "alert", "message", "email", "sms"),
}


class ParsedToolResult(BaseModel):
    """Unwrapped tools/call result."""

    is_error: bool = False
    text: str = ""
    data: Any = None


def determine_risk_level(name: str, description: str | None = "") -> RiskLevel:
    """Classify a tool by keywords in its name and description.

    Dangerous keywords anywhere win; a safe verb at the start marks it safe;
    otherwise moderate keywords anywhere mark it moderate. Default is safe.
    """
    lowered_name = name.lower()
    text = f"{lowered_name} {(description or '').lower()}"

    if any(keyword in text for keyword in DANGEROUS_KEYWORDS):
        return RiskLevel.DANGEROUS
    if lowered_name.startswith(SAFE_KEYWORDS):
        return RiskLevel.SAFE
    if any(keyword in text for keyword in MODERATE_KEYWORDS):
        return RiskLevel.MODERATE
    return RiskLevel.SAFE


def humanize_name(name: str) -> str:
    """'read_file' / 'listUsers' / 'get-item' -> 'Read File' / 'List Users' / 'Get Item'."""
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", name.replace("_", " "))
    spaced = spaced.replace("-", " ")
    return " ".join(word[:1].upper() + word[1:].lower() for word in spaced.split(" "))


def convert_input_schema(input_schema: dict[str, Any] | None) -> dict[str, Any]:
    if not input_schema:
        return {"type": "object", "properties": {}}
    schema: dict[str, Any] = {
        "type": input_schema.get("type") or "object",
        "properties": input_schema.get("properties") or {},
        "required": input_schema.get("required") or [],
    }
    if "additionalProperties" in input_schema:
        schema["additionalProperties"] = input_schema["additionalProperties"]
    return schema


def extract_tags(name: str, description: str | None = "") -> list[str]:
    text = f"{name} {description or ''}".lower()
    tags = [tag for tag, keywords in TAG_KEYWORDS.items() if any(k in text for k in keywords)]
    if determine_risk_level(name, description) is RiskLevel.DANGEROUS:
        tags.append("destructive")
    return tags


def convert_tool(
    listing: dict[str, Any],
    source_id: str,
    origin: ToolOrigin = ToolOrigin.LIVE,
) -> ToolDescriptor:
    """Convert one tools/list entry to a ToolDescriptor.

    Args:
        listing: Tool definition (name, description, inputSchema)
        source_id: Owning source
        origin: Catalog the descriptor belongs to

    Returns:
        Descriptor with method "MCP"; confirmation required iff dangerous
    """
    name = listing["name"]
    description = listing.get("description") or ""
    risk = determine_risk_level(name, description)
    return ToolDescriptor(
        id=f"{source_id}:{name}",
        name=humanize_name(name),
        description=description or f"Execute {name}",
        method=PROTOCOL_METHOD,
        path=name,
        protocol_tool_name=name,
        parameters=convert_input_schema(listing.get("inputSchema")),
        risk_level=risk,
        requires_confirmation=risk is RiskLevel.DANGEROUS,
        source_id=source_id,
        origin=origin,
        tags=extract_tags(name, description),
    )


def parse_tool_result(raw: dict[str, Any] | None) -> ParsedToolResult:
    """Unwrap a tools/call result envelope.

    Text blocks are concatenated, image and resource blocks rendered as
    placeholders; text that looks like a JSON object/array is decoded into data.
    """
    if not raw:
        return ParsedToolResult()

    is_error = bool(raw.get("isError"))
    parts: list[str] = []
    for block in raw.get("content") or []:
        kind = block.get("type")
        if kind == "text":
            parts.append(block.get("text") or "")
        elif kind == "image":
            parts.append(f"[Image: {block.get('mimeType') or 'image'}]")
        elif kind == "resource":
            resource = block.get("resource") or block
            parts.append(f"[Resource: {resource.get('uri')}]")
            if resource.get("text"):
                parts.append("\n" + resource["text"])

    text = "".join(parts)
    data = None
    trimmed = text.strip()
    if (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    ):
        try:
            data = json.loads(trimmed)
        except ValueError:
            data = None
    if data is None and raw.get("structuredContent") is not None:
        data = raw["structuredContent"]

    return ParsedToolResult(is_error=is_error, text=text, data=data)
