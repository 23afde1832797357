"""Catalog store interface.

The loader and system tools read sources, credentials, tool rows and
routines through this protocol. Tenant-owned and shared-template tool
tables are addressed through one origin-tagged ToolGroup.
"""

from typing import Protocol

from pydantic import BaseModel, ConfigDict

from relay_tools.base import AgentSource, Credential, Routine, ToolDescriptor, ToolOrigin


class ToolGroup(BaseModel):
    """A database-backed tool group.

    ids are source ids for tenant groups and template ids for template groups.
    """

    model_config = ConfigDict(frozen=True)

    origin: ToolOrigin
    ids: tuple[str, ...]

    @property
    def label(self) -> str:
        return self.origin.value


class ToolCoverage(BaseModel):
    """Active tool count and how many carry an embedding."""

    total: int = 0
    embedded: int = 0

    @property
    def ratio(self) -> float:
        return self.embedded / self.total if self.total else 0.0


class ToolMatch(BaseModel):
    tool_id: str
    similarity: float


class RoutineCandidate(BaseModel):
    routine_id: str
    similarity: float


class CatalogStore(Protocol):
    """Read access to the tool catalog (plus embedding write-back)."""

    async def get_agent_sources(self, agent_id: str) -> list[AgentSource]:
        """Sources linked to an agent, with the agent's permission on each."""
        ...

    async def get_active_credentials(
        self, user_id: str, source_ids: list[str]
    ) -> dict[str, Credential]:
        """The active credential per source id for a user."""
        ...

    async def get_coverage(self, group: ToolGroup) -> ToolCoverage:
        ...

    async def list_tools(self, group: ToolGroup) -> list[ToolDescriptor]:
        """All active tools of a group."""
        ...

    async def search_tools(
        self, group: ToolGroup, embedding: list[float], limit: int
    ) -> list[ToolMatch]:
        """Nearest active tools by cosine similarity, most similar first."""
        ...

    async def get_tools_by_ids(
        self, origin: ToolOrigin, ids: list[str]
    ) -> list[ToolDescriptor]:
        """Active tools of one table by id (any order)."""
        ...

    async def search_routines(
        self, org_id: str, embedding: list[float], limit: int
    ) -> list[RoutineCandidate]:
        ...

    async def get_routine(self, routine_id: str) -> Routine | None:
        ...

    async def save_tool_embeddings(
        self, origin: ToolOrigin, vectors: dict[str, list[float]]
    ) -> None:
        """Write embeddings for tool ids of one table."""
        ...
