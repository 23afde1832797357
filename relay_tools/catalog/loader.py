"""Tool Catalog Loader & Selector.

For one conversational turn, decides which tools the model may call:

1. Routine shortcut (query + org): a confidently matched routine supplies
   its ordered tool chain.
2. Otherwise per-group retrieval: tenant and template groups share a fixed
   budget; small or poorly embedded groups load everything, the rest use
   semantic retrieval.
3. Live tools listed from HTTP tool servers and system tools are merged in.
4. The hard ceiling is applied with read-first priority.

Loading degrades rather than fails: missing credentials, missing embeddings,
unresolvable routines and unreachable tool servers all produce warnings.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from relay_config import Settings, get_settings
from relay_llm.client import EmbeddingClient, EmbeddingError
from relay_llm.embeddings import tool_embedding_text
from relay_obs.logging import bound_call_context, get_logger
from relay_obs.metrics import (
    catalog_tools_selected,
    catalog_truncations_total,
    routine_shortcut_total,
)
from relay_obs.tracing import get_tracer
from relay_tools.adapters.protocol.parser import convert_tool
from relay_tools.base import AgentSource, Credential, ToolDescriptor, ToolOrigin, TransportKind
from relay_tools.exceptions import RoutineFallbackError, SourceSkippedWarning, ToolRoutingError
from relay_tools.executor import ToolExecutor
from relay_tools.registry import ToolRegistry

from .capping import cap_tools
from .converter import ToolConverter
from .quota import RetrievalMode, allocate_quota, choose_retrieval
from .routines import RoutineMatch, RoutineMatcher
from .store import CatalogStore, ToolGroup
from .system_tools import create_system_tools

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class AgentToolCatalog(BaseModel):
    """Tools selected for one model invocation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    tools: list[Any] = Field(default_factory=list)
    rows: list[ToolDescriptor] = Field(default_factory=list)
    source_ids: list[str] = Field(default_factory=list)
    warnings: list[Warning] = Field(default_factory=list)
    matched_routine: RoutineMatch | None = None

    def registry(self) -> ToolRegistry:
        return ToolRegistry(self.tools)


class SourcePartition(BaseModel):
    live: list[AgentSource] = Field(default_factory=list)
    template: list[AgentSource] = Field(default_factory=list)
    tenant: list[AgentSource] = Field(default_factory=list)

    def groups(self) -> list[ToolGroup]:
        groups = []
        template_ids = tuple(dict.fromkeys(link.source.template_id for link in self.template))
        if template_ids:
            groups.append(ToolGroup(origin=ToolOrigin.TEMPLATE, ids=template_ids))
        tenant_ids = tuple(link.source.id for link in self.tenant)
        if tenant_ids:
            groups.append(ToolGroup(origin=ToolOrigin.TENANT, ids=tenant_ids))
        return groups


def partition_sources(agent_sources: list[AgentSource]) -> SourcePartition:
    """Split sources into live HTTP tool servers, shared-template and tenant-owned."""
    partition = SourcePartition()
    for link in agent_sources:
        if link.source.transport is TransportKind.PROTOCOL_HTTP:
            partition.live.append(link)
        elif link.source.template_id:
            partition.template.append(link)
        else:
            partition.tenant.append(link)
    return partition


class ToolCatalogLoader:
    """Assembles the callable tool list for an agent turn."""

    def __init__(
        self,
        store: CatalogStore,
        executor: ToolExecutor,
        embedder: EmbeddingClient | None = None,
        settings: Settings | None = None,
    ):
        """Initialize loader.

        Args:
            store: Catalog store (sources, credentials, tools, routines)
            executor: Executor bound into every callable tool
            embedder: Embedding client; without one, retrieval always loads everything
            settings: Budgets and thresholds (defaults to get_settings())
        """
        self.store = store
        self.executor = executor
        self.embedder = embedder
        self.settings = settings or get_settings()
        self.routines = RoutineMatcher(store, self.settings)
        self.converter = ToolConverter(executor, self.settings.TOOL_RESULT_MAX_CHARS)

    async def load_agent_tools(
        self,
        agent_id: str,
        user_id: str,
        source_filter: list[str] | None = None,
        user_query: str | None = None,
        org_id: str | None = None,
        caller_id: str | None = None,
    ) -> AgentToolCatalog:
        """Select the tools to surface for one model invocation.

        Args:
            agent_id: Agent whose linked sources are considered
            user_id: User whose credentials are bound into the tools
            source_filter: Restrict to these source ids
            user_query: Latest user message, enables semantic retrieval
            org_id: Org for routine lookup
            caller_id: Forwarded to REST calls (defaults to user_id)

        Returns:
            AgentToolCatalog with tools, rows, source ids, warnings and matched routine
        """
        with bound_call_context(agent_id=agent_id, user_id=user_id), tracer.start_as_current_span(
            "catalog.load_agent_tools"
        ) as span:
            span.set_attribute("catalog.agent_id", agent_id)
            catalog = await self._load(
                agent_id, user_id, source_filter, user_query, org_id, caller_id or user_id
            )
            span.set_attribute("catalog.tools", len(catalog.tools))
            span.set_attribute("catalog.routine", catalog.matched_routine is not None)
        return catalog

    async def _load(
        self,
        agent_id: str,
        user_id: str,
        source_filter: list[str] | None,
        user_query: str | None,
        org_id: str | None,
        caller_id: str,
    ) -> AgentToolCatalog:
        agent_sources = await self.store.get_agent_sources(agent_id)
        if source_filter is not None:
            allowed = set(source_filter)
            agent_sources = [link for link in agent_sources if link.source.id in allowed]

        source_ids = [link.source.id for link in agent_sources]
        credentials = (
            await self.store.get_active_credentials(user_id, source_ids) if source_ids else {}
        )
        partition = partition_sources(agent_sources)
        groups = partition.groups()
        warnings: list[Warning] = []

        query_embedding = await self._embed_query(user_query)

        matched_routine = None
        rows: list[ToolDescriptor] | None = None
        if query_embedding is not None and org_id and groups:
            shortcut = await self._try_routine(org_id, query_embedding, groups)
            if shortcut is not None:
                matched_routine, rows = shortcut
        if rows is None:
            rows = await self._retrieve(groups, query_embedding)

        live_rows = await self._list_live_tools(partition.live, credentials, warnings)
        all_rows = [*rows, *live_rows]

        callables = self.converter.convert(all_rows, agent_sources, credentials, caller_id)
        system_tools = create_system_tools(
            self.store, self.embedder, groups, self.settings.SYSTEM_SEARCH_LIMIT
        )
        tools, cap_warning = cap_tools(callables, system_tools, self.settings.MAX_CALLABLE_TOOLS)
        if cap_warning is not None:
            warnings.append(cap_warning)
            catalog_truncations_total.inc()
            logger.warning(
                "catalog.truncated",
                agent_id=agent_id,
                dropped=cap_warning.dropped,
                ceiling=cap_warning.ceiling,
            )

        catalog_tools_selected.observe(len(tools))
        logger.info(
            "catalog.loaded",
            agent_id=agent_id,
            sources=len(source_ids),
            rows=len(rows),
            live=len(live_rows),
            tools=len(tools),
            routine=matched_routine.routine_id if matched_routine else None,
        )
        return AgentToolCatalog(
            tools=tools,
            rows=all_rows,
            source_ids=source_ids,
            warnings=warnings,
            matched_routine=matched_routine,
        )

    # ------------------------------------------------------------------------
    # STAGES
    # ------------------------------------------------------------------------

    async def _embed_query(self, user_query: str | None) -> list[float] | None:
        if not user_query or not user_query.strip() or self.embedder is None:
            return None
        try:
            return await self.embedder.embed(user_query)
        except EmbeddingError as e:
            logger.warning("catalog.query_embedding_failed", error=str(e))
            return None

    async def _try_routine(
        self,
        org_id: str,
        query_embedding: list[float],
        groups: list[ToolGroup],
    ) -> tuple[RoutineMatch, list[ToolDescriptor]] | None:
        try:
            return await self.routines.match(org_id, query_embedding, groups)
        except RoutineFallbackError as e:
            routine_shortcut_total.labels(outcome="fallback").inc()
            logger.info("catalog.routine_fallback", reason=str(e))
        except Exception as e:
            routine_shortcut_total.labels(outcome="error").inc()
            logger.warning("catalog.routine_lookup_failed", error=str(e), exc_info=True)
        return None

    async def _retrieve(
        self, groups: list[ToolGroup], query_embedding: list[float] | None
    ) -> list[ToolDescriptor]:
        coverages = {group: await self.store.get_coverage(group) for group in groups}
        contributing = [group for group in groups if coverages[group].total > 0]
        quota = allocate_quota(
            len(contributing), self.settings.TOOL_BUDGET_TOTAL, self.settings.TOOL_QUOTA_FLOOR
        )

        rows: list[ToolDescriptor] = []
        seen: set[str] = set()
        for group in contributing:
            coverage = coverages[group]
            mode = choose_retrieval(
                coverage,
                has_query=query_embedding is not None,
                threshold=self.settings.TOOL_LOAD_ALL_THRESHOLD,
                coverage_min=self.settings.EMBEDDING_COVERAGE_MIN,
            )
            if mode is RetrievalMode.SEMANTIC:
                group_rows = await self._semantic(group, query_embedding, quota)
            else:
                group_rows = await self.store.list_tools(group)
                if coverage.total > self.settings.TOOL_LOAD_ALL_THRESHOLD:
                    await self._backfill(group, group_rows)

            logger.info(
                "catalog.group_loaded",
                origin=group.origin.value,
                mode=mode.value,
                total=coverage.total,
                embedded=coverage.embedded,
                loaded=len(group_rows),
            )
            for row in group_rows:
                if row.id not in seen:
                    seen.add(row.id)
                    rows.append(row)
        return rows

    async def _semantic(
        self, group: ToolGroup, query_embedding: list[float], limit: int
    ) -> list[ToolDescriptor]:
        matches = await self.store.search_tools(group, query_embedding, limit)
        hydrated = {
            tool.id: tool
            for tool in await self.store.get_tools_by_ids(
                group.origin, [match.tool_id for match in matches]
            )
        }
        return [hydrated[m.tool_id] for m in matches if m.tool_id in hydrated]

    async def _backfill(self, group: ToolGroup, rows: list[ToolDescriptor]) -> None:
        if not self.settings.CATALOG_BACKFILL_EMBEDDINGS or self.embedder is None:
            return
        pending = [row for row in rows if not row.embedded]
        if not pending:
            return
        texts = [tool_embedding_text(row, self.settings.EMBED_MAX_INPUT_CHARS) for row in pending]
        try:
            vectors = await self.embedder.embed_many(texts)
        except EmbeddingError as e:
            logger.warning("catalog.backfill_failed", origin=group.origin.value, error=str(e))
            return
        await self.store.save_tool_embeddings(
            group.origin, {row.id: vector for row, vector in zip(pending, vectors)}
        )
        logger.info("catalog.backfilled", origin=group.origin.value, count=len(pending))

    async def _list_live_tools(
        self,
        live: list[AgentSource],
        credentials: dict[str, Credential],
        warnings: list[Warning],
    ) -> list[ToolDescriptor]:
        rows: list[ToolDescriptor] = []
        for link in live:
            source = link.source
            credential = credentials.get(source.id)
            if credential is None:
                self._skip(warnings, source.id, source.name, "no credentials stored")
                continue
            try:
                listings = await self.executor.pool.list_tools(source, credential)
            except ToolRoutingError as e:
                self._skip(warnings, source.id, source.name, str(e))
                continue
            rows.extend(
                convert_tool(listing, source.id, ToolOrigin.LIVE)
                for listing in listings
                if listing.get("name")
            )
        return rows

    @staticmethod
    def _skip(warnings: list[Warning], source_id: str, source_name: str, reason: str) -> None:
        warnings.append(SourceSkippedWarning(source_id, source_name, reason))
        logger.info("catalog.source_skipped", source_id=source_id, reason=reason)
