"""Template runtime hints for tool servers.

Hints live on the shared template (ToolSource.hints) and adjust calls at
runtime, so every org using the template picks up a fix at once:

    {
        "list_expansion": {"param": "expand", "default": ["*"], "tool_patterns": ["list_*"]},
        "llm_guidance": "Use the expand parameter to get full objects.",
        "response": {"unwrap_data": false, "detect_thin": true}
    }
"""

from typing import Any, Iterable

from relay_obs.logging import get_logger
from relay_tools.base import ToolSource

logger = get_logger(__name__)


def matches_pattern(tool_name: str, pattern: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith("*"):
        return tool_name.startswith(pattern[:-1])
    if pattern.startswith("*"):
        return tool_name.endswith(pattern[1:])
    return tool_name == pattern


def matches_any_pattern(tool_name: str, patterns: Iterable[str] | None) -> bool:
    patterns = list(patterns or [])
    if not patterns:
        return True
    return any(matches_pattern(tool_name, pattern) for pattern in patterns)


def pre_process_args(
    args: dict[str, Any], tool_name: str, hints: dict[str, Any] | None
) -> dict[str, Any]:
    """Apply list-expansion defaults the model left out."""
    if not hints:
        return args

    processed = dict(args)
    expansion = hints.get("list_expansion")
    if expansion and matches_any_pattern(tool_name, expansion.get("tool_patterns")):
        param = expansion.get("param") or "expand"
        if processed.get(param) in (None, "") and "default" in expansion:
            processed[param] = expansion["default"]
            logger.debug("protocol.hint_applied", tool=tool_name, param=param)
    return processed


def detect_thin_results(data: Any) -> bool:
    """True when a list result carries little more than ids."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        keys = data[0].keys()
        return len(keys) <= 2 and "id" in keys
    return False


def post_process_result(data: Any, tool_name: str, hints: dict[str, Any] | None) -> Any:
    """Unwrap ``data`` envelopes and flag thin results."""
    if not hints:
        return data

    response_hints = hints.get("response") or {}
    processed = data
    if response_hints.get("unwrap_data") and isinstance(processed, dict) and processed.get("data"):
        processed = processed["data"]

    if response_hints.get("detect_thin", True) and detect_thin_results(processed):
        logger.warning("protocol.thin_result", tool=tool_name)
    return processed


def build_source_guidance(sources: Iterable[ToolSource]) -> str:
    """Combine template guidance for prompt assembly; empty when none."""
    lines = [
        f"**{source.name}:** {source.hints['llm_guidance']}"
        for source in sources
        if source.hints.get("llm_guidance")
    ]
    if not lines:
        return ""
    return "\n### Source-Specific Tips\n" + "\n".join(lines)
