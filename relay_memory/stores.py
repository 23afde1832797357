"""Catalog Store Adapters.

Postgres-backed catalog store: sources, credentials, tool rows of both
tables, routines, and pgvector similarity search through the
search_*_semantic_<dim> SQL functions.
"""

import uuid
from typing import Any

from sqlalchemy import literal_column, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relay_tools.base import (
    AgentSource,
    AuthKind,
    Credential,
    RequestEncoding,
    RiskLevel,
    Routine,
    ToolDescriptor,
    ToolOrigin,
    ToolSource,
    TransportKind,
)
from relay_tools.catalog.store import RoutineCandidate, ToolCoverage, ToolGroup, ToolMatch

from .models import (
    AgentSourceLink,
    ApiSource,
    RoutineRow,
    SourceTemplate,
    TemplateToolRow,
    ToolRow,
    UserApiCredential,
)

SUPPORTED_DIMENSIONS = (768, 1536)

# origin -> (model, owner column, search function)
TOOL_TABLES = {
    ToolOrigin.TENANT: (ToolRow, "source_id", "search_tools_semantic"),
    ToolOrigin.TEMPLATE: (TemplateToolRow, "template_id", "search_template_tools_semantic"),
}


# ============================================================================
# ROW CONVERSION
# ============================================================================


def as_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def as_uuids(values) -> list[uuid.UUID]:
    return [as_uuid(value) for value in values]


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def vector_literal(embedding: list[float]) -> str:
    """pgvector text input, e.g. '[0.1,0.2]'."""
    return "[" + ",".join(repr(float(v)) for v in embedding) + "]"


def source_transport(source_type: str | None, mcp_transport: str | None) -> TransportKind:
    if source_type != "mcp":
        return TransportKind.REST
    if mcp_transport == "http":
        return TransportKind.PROTOCOL_HTTP
    return TransportKind.PROTOCOL_STDIO


def to_tool_source(row: ApiSource, template: SourceTemplate | None = None) -> ToolSource:
    encoding = RequestEncoding.JSON
    if template is not None and template.content_type == RequestEncoding.FORM.value:
        encoding = RequestEncoding.FORM
    return ToolSource(
        id=str(row.id),
        name=row.name,
        transport=source_transport(row.source_type, row.mcp_transport),
        base_url=row.base_url,
        server_uri=row.mcp_server_uri,
        auth_type=AuthKind(row.auth_type or AuthKind.NONE.value),
        template_id=str(row.template_id) if row.template_id else None,
        env={str(k): str(v) for k, v in (row.mcp_env or {}).items()},
        hints=(template.mcp_hints or {}) if template is not None else {},
        request_encoding=encoding,
    )


def to_descriptor(row: Any, origin: ToolOrigin, embedded: bool = False) -> ToolDescriptor:
    return ToolDescriptor(
        id=str(row.id),
        name=row.name,
        description=row.description or "",
        method=row.method,
        path=row.path,
        protocol_tool_name=row.mcp_tool_name,
        parameters=row.parameters or {"type": "object", "properties": {}},
        request_body=row.request_body,
        risk_level=RiskLevel(row.risk_level or RiskLevel.SAFE.value),
        requires_confirmation=bool(row.requires_confirmation),
        source_id=str(row.source_id) if origin is ToolOrigin.TENANT else None,
        template_id=str(row.template_id) if origin is ToolOrigin.TEMPLATE else None,
        origin=origin,
        tags=list(row.tags or []),
        embedded=embedded,
    )


def to_routine(row: RoutineRow) -> Routine:
    return Routine(
        id=str(row.id),
        name=row.name,
        prompt=row.prompt or "",
        org_id=str(row.org_id) if row.org_id else None,
        tool_chain=[str(tool_id) for tool_id in (row.tool_chain or [])],
        success_count=row.success_count or 0,
        failure_count=row.failure_count or 0,
    )


# ============================================================================
# POSTGRES CATALOG STORE
# ============================================================================


class PgCatalogStore:
    """CatalogStore over Postgres + pgvector.

    Tenant and template tool tables go through one origin-keyed code path;
    only the model, owner column and search function differ.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_dimensions: int = 1536,
    ):
        """Initialize store.

        Args:
            session_factory: Async session factory (relay_memory.database)
            embedding_dimensions: 768 or 1536; selects embedding_<dim> columns

        Raises:
            ValueError: Unsupported dimensions
        """
        if embedding_dimensions not in SUPPORTED_DIMENSIONS:
            raise ValueError(f"Unsupported embedding dimensions: {embedding_dimensions}")
        self.session_factory = session_factory
        self.dimensions = embedding_dimensions
        self.embedding_column = f"embedding_{embedding_dimensions}"

    # ------------------------------------------------------------------------
    # SOURCES & CREDENTIALS
    # ------------------------------------------------------------------------

    async def get_agent_sources(self, agent_id: str) -> list[AgentSource]:
        stmt = (
            select(AgentSourceLink.permission, ApiSource, SourceTemplate)
            .join(ApiSource, ApiSource.id == AgentSourceLink.source_id)
            .outerjoin(SourceTemplate, SourceTemplate.id == ApiSource.template_id)
            .where(AgentSourceLink.agent_id == as_uuid(agent_id), ApiSource.is_active.is_(True))
            .order_by(ApiSource.name)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                AgentSource(source=to_tool_source(source, template), permission=permission)
                for permission, source, template in result.all()
            ]

    async def get_active_credentials(
        self, user_id: str, source_ids: list[str]
    ) -> dict[str, Credential]:
        if not source_ids:
            return {}
        stmt = select(UserApiCredential).where(
            UserApiCredential.user_id == as_uuid(user_id),
            UserApiCredential.source_id.in_(as_uuids(source_ids)),
            UserApiCredential.is_active.is_(True),
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {
                str(row.source_id): Credential(
                    source_id=str(row.source_id),
                    user_id=str(row.user_id),
                    label=row.label,
                    secrets=row.credentials or {},
                )
                for row in result.scalars().all()
            }

    # ------------------------------------------------------------------------
    # TOOLS
    # ------------------------------------------------------------------------

    async def get_coverage(self, group: ToolGroup) -> ToolCoverage:
        model, owner, _ = TOOL_TABLES[group.origin]
        stmt = text(
            f"SELECT count(*) AS total, count({self.embedding_column}) AS embedded "
            f"FROM {model.__tablename__} "
            f"WHERE {owner} = ANY(CAST(:ids AS uuid[])) AND is_active = true"
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt, {"ids": as_uuids(group.ids)})).one()
            return ToolCoverage(total=row.total or 0, embedded=row.embedded or 0)

    async def list_tools(self, group: ToolGroup) -> list[ToolDescriptor]:
        model, owner, _ = TOOL_TABLES[group.origin]
        embedded = literal_column(
            f"{model.__tablename__}.{self.embedding_column} IS NOT NULL"
        ).label("embedded")
        stmt = (
            select(model, embedded)
            .where(getattr(model, owner).in_(as_uuids(group.ids)), model.is_active.is_(True))
            .order_by(model.name)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [to_descriptor(row, group.origin, bool(flag)) for row, flag in result.all()]

    async def search_tools(
        self, group: ToolGroup, embedding: list[float], limit: int
    ) -> list[ToolMatch]:
        _, _, function = TOOL_TABLES[group.origin]
        stmt = text(
            f"SELECT tool_id, similarity FROM {function}_{self.dimensions}("
            "CAST(:ids AS uuid[]), CAST(:embedding AS vector), :limit)"
        )
        params = {"ids": as_uuids(group.ids), "embedding": vector_literal(embedding), "limit": limit}
        async with self.session_factory() as session:
            result = await session.execute(stmt, params)
            return [
                ToolMatch(tool_id=str(row.tool_id), similarity=float(row.similarity))
                for row in result.all()
            ]

    async def get_tools_by_ids(self, origin: ToolOrigin, ids: list[str]) -> list[ToolDescriptor]:
        ids = [tool_id for tool_id in ids if is_uuid(tool_id)]
        if not ids:
            return []
        model, _, _ = TOOL_TABLES[origin]
        stmt = select(model).where(model.id.in_(as_uuids(ids)), model.is_active.is_(True))
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [to_descriptor(row, origin) for row in result.scalars().all()]

    async def save_tool_embeddings(
        self, origin: ToolOrigin, vectors: dict[str, list[float]]
    ) -> None:
        if not vectors:
            return
        model, _, _ = TOOL_TABLES[origin]
        stmt = text(
            f"UPDATE {model.__tablename__} SET {self.embedding_column} = CAST(:embedding AS vector) "
            "WHERE id = CAST(:id AS uuid)"
        )
        async with self.session_factory() as session:
            await session.execute(
                stmt,
                [{"id": as_uuid(tool_id), "embedding": vector_literal(v)} for tool_id, v in vectors.items()],
            )
            await session.commit()

    # ------------------------------------------------------------------------
    # ROUTINES
    # ------------------------------------------------------------------------

    async def search_routines(
        self, org_id: str, embedding: list[float], limit: int
    ) -> list[RoutineCandidate]:
        stmt = text(
            f"SELECT routine_id, similarity FROM search_routines_semantic_{self.dimensions}("
            "CAST(:org_id AS uuid), CAST(:embedding AS vector), :limit)"
        )
        params = {"org_id": as_uuid(org_id), "embedding": vector_literal(embedding), "limit": limit}
        async with self.session_factory() as session:
            result = await session.execute(stmt, params)
            return [
                RoutineCandidate(routine_id=str(row.routine_id), similarity=float(row.similarity))
                for row in result.all()
            ]

    async def get_routine(self, routine_id: str) -> Routine | None:
        async with self.session_factory() as session:
            row = await session.get(RoutineRow, as_uuid(routine_id))
            return to_routine(row) if row is not None else None

