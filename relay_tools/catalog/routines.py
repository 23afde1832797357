"""Routine shortcut.

A routine whose stored prompt is close to the user's query, and which has
worked often enough, supplies its ordered tool chain directly instead of
per-group retrieval.
"""

from pydantic import BaseModel, Field

from relay_config import Settings
from relay_obs.logging import get_logger
from relay_obs.metrics import routine_shortcut_total
from relay_tools.base import Routine, ToolDescriptor, ToolOrigin
from relay_tools.exceptions import RoutineFallbackError

from .store import CatalogStore, ToolGroup

logger = get_logger(__name__)


class RoutineMatch(BaseModel):
    """An accepted routine and how much of its chain resolved."""

    routine_id: str
    name: str
    similarity: float
    confidence: float
    resolved: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)


def routine_confidence(success_count: int, failure_count: int, min_samples: int = 3) -> float:
    """Bayesian-smoothed success rate; 0.5 until min_samples runs are recorded."""
    total = success_count + failure_count
    if total < min_samples:
        return 0.5
    return (success_count + 1) / (total + 2)


class RoutineMatcher:
    """Finds and resolves a confidently matching routine."""

    def __init__(self, store: CatalogStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def match(
        self,
        org_id: str,
        query_embedding: list[float],
        groups: list[ToolGroup],
    ) -> tuple[RoutineMatch, list[ToolDescriptor]] | None:
        """Return the accepted routine with its resolved chain, or None.

        Raises:
            RoutineFallbackError: A routine was accepted but too much of its
                chain could not be resolved
        """
        candidates = await self.store.search_routines(
            org_id, query_embedding, self.settings.ROUTINE_SEARCH_LIMIT
        )
        for candidate in sorted(candidates, key=lambda c: c.similarity, reverse=True):
            if candidate.similarity < self.settings.ROUTINE_SIMILARITY_MIN:
                break

            routine = await self.store.get_routine(candidate.routine_id)
            if routine is None or not routine.tool_chain:
                continue

            confidence = routine_confidence(
                routine.success_count, routine.failure_count, self.settings.ROUTINE_MIN_SAMPLES
            )
            if confidence < self.settings.ROUTINE_CONFIDENCE_MIN:
                routine_shortcut_total.labels(outcome="rejected").inc()
                logger.info(
                    "catalog.routine_rejected",
                    routine_id=routine.id,
                    similarity=round(candidate.similarity, 3),
                    confidence=round(confidence, 3),
                )
                continue

            return await self._accept(routine, candidate.similarity, confidence, groups)

        return None

    async def _accept(
        self,
        routine: Routine,
        similarity: float,
        confidence: float,
        groups: list[ToolGroup],
    ) -> tuple[RoutineMatch, list[ToolDescriptor]]:
        tools, missing = await self.resolve_chain(routine.tool_chain, groups)
        chain_length = len(dict.fromkeys(routine.tool_chain))
        if not tools or len(missing) / chain_length > self.settings.ROUTINE_MAX_MISSING_RATIO:
            raise RoutineFallbackError(
                f"Routine {routine.id} resolved {len(tools)}/{chain_length} tools"
            )

        match = RoutineMatch(
            routine_id=routine.id,
            name=routine.name,
            similarity=similarity,
            confidence=confidence,
            resolved=[tool.id for tool in tools],
            missing=missing,
        )
        routine_shortcut_total.labels(outcome="accepted").inc()
        logger.info(
            "catalog.routine_matched",
            routine_id=routine.id,
            similarity=round(similarity, 3),
            confidence=round(confidence, 3),
            resolved=len(tools),
            missing=len(missing),
        )
        return match, tools

    async def resolve_chain(
        self, chain: list[str], groups: list[ToolGroup]
    ) -> tuple[list[ToolDescriptor], list[str]]:
        """Look chain ids up across both tool tables, in chain order.

        Only tools belonging to the agent's groups count as resolved.

        Returns:
            (resolved tools in chain order, unresolved ids)
        """
        wanted = list(dict.fromkeys(chain))
        allowed = {group.origin: set(group.ids) for group in groups}

        found: dict[str, ToolDescriptor] = {}
        for origin, owner in ((ToolOrigin.TENANT, "source_id"), (ToolOrigin.TEMPLATE, "template_id")):
            if origin not in allowed:
                continue
            remaining = [tool_id for tool_id in wanted if tool_id not in found]
            if not remaining:
                break
            for tool in await self.store.get_tools_by_ids(origin, remaining):
                if getattr(tool, owner) in allowed[origin]:
                    found[tool.id] = tool

        resolved = [found[tool_id] for tool_id in wanted if tool_id in found]
        missing = [tool_id for tool_id in wanted if tool_id not in found]
        return resolved, missing
