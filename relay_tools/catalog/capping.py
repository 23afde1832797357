"""Hard ceiling on surfaced tools.

When too many tools are callable, read-type tools are kept first, then
create-type tools, then everything else; ties go to the shorter key.
System tools are never dropped and count against the ceiling.
"""

from typing import Sequence

from relay_tools.base import READ_METHODS, Tool
from relay_tools.exceptions import CapacityWarning

READ_VERBS = (
    "get", "list", "read", "fetch", "search", "find", "query", "show", "describe", "view", "check",
)
CREATE_VERBS = ("create", "add", "insert", "new", "post", "send")

PRIORITY_READ = 0
PRIORITY_CREATE = 1
PRIORITY_OTHER = 2


def tool_priority(tool: Tool) -> int:
    method = (tool.metadata.method or "").upper()
    name = tool.key.lower()
    if method in READ_METHODS or name.startswith(READ_VERBS):
        return PRIORITY_READ
    if method == "POST" or name.startswith(CREATE_VERBS):
        return PRIORITY_CREATE
    return PRIORITY_OTHER


def cap_tools(
    tools: Sequence[Tool],
    system_tools: Sequence[Tool],
    ceiling: int = 128,
) -> tuple[list[Tool], CapacityWarning | None]:
    """Apply the ceiling.

    Returns:
        (surfaced tools with system tools last, advisory when anything was dropped)
    """
    budget = max(0, ceiling - len(system_tools))
    if len(tools) <= budget:
        return [*tools, *system_tools], None

    ranked = sorted(tools, key=lambda t: (tool_priority(t), len(t.key)))
    kept = ranked[:budget]
    warning = CapacityWarning(
        dropped=len(tools) - len(kept),
        kept=len(kept) + len(system_tools),
        ceiling=ceiling,
    )
    return [*kept, *system_tools], warning
