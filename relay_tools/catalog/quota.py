"""Quota allocation and per-group retrieval policy."""

from enum import Enum

from .store import ToolCoverage


class RetrievalMode(str, Enum):
    LOAD_ALL = "load_all"
    SEMANTIC = "semantic"


def allocate_quota(group_count: int, total: int = 15, floor: int = 5) -> int:
    """Per-group share of the retrieval budget.

    A single contributing group receives the whole budget; otherwise the
    budget is split evenly and floored at ``floor``.
    """
    if group_count <= 1:
        return total
    return max(floor, total // group_count)


def choose_retrieval(
    coverage: ToolCoverage,
    has_query: bool,
    threshold: int = 20,
    coverage_min: float = 0.5,
) -> RetrievalMode:
    """Decide how a group contributes tools.

    Small groups load everything. Larger groups use semantic retrieval only
    with a query and enough embedded tools; otherwise they load everything
    rather than drop tools that lack embeddings.
    """
    if coverage.total <= threshold:
        return RetrievalMode.LOAD_ALL
    if has_query and coverage.ratio >= coverage_min:
        return RetrievalMode.SEMANTIC
    return RetrievalMode.LOAD_ALL
