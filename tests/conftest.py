"""Pytest fixtures.

In-memory catalog store, deterministic embedder and descriptor factories
shared by the executor and catalog tests.
"""

import hashlib
from typing import Any

import pytest

from relay_config.settings import Settings
from relay_llm.client import EmbeddingClient, EmbeddingError
from relay_tools.base import (
    AgentSource,
    Credential,
    Routine,
    ToolDescriptor,
    ToolOrigin,
    ToolSource,
)
from relay_tools.catalog.store import RoutineCandidate, ToolCoverage, ToolGroup, ToolMatch


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests that need a live Postgres with pgvector",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return
    skip = pytest.mark.skip(reason="needs --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


# ============================================================================
# SETTINGS
# ============================================================================


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, OPENAI_API_KEY="", STDIO_REQUEST_TIMEOUT_SECONDS=5.0)


# ============================================================================
# FAKES
# ============================================================================


class FakeEmbedder(EmbeddingClient):
    """Deterministic embedder; records every text it embeds."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[str] = []
        self.batch_concurrency = 10

    @property
    def model_name(self) -> str:
        return "fake-embedding"

    @property
    def dimensions(self) -> int:
        return 4

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding provider down")
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255 for b in digest[:4]]


class InMemoryCatalogStore:
    """CatalogStore backed by dicts.

    Semantic search ranks embedded tools of a group by the `similarity`
    mapping (tool id -> score), highest first.
    """

    def __init__(self):
        self.agent_sources: dict[str, list[AgentSource]] = {}
        self.credentials: dict[tuple[str, str], Credential] = {}
        self.tools: dict[ToolOrigin, list[ToolDescriptor]] = {
            ToolOrigin.TENANT: [],
            ToolOrigin.TEMPLATE: [],
        }
        self.similarity: dict[str, float] = {}
        self.routines: dict[str, Routine] = {}
        self.routine_candidates: list[RoutineCandidate] = []
        self.routine_error: Exception | None = None
        self.saved_embeddings: dict[str, list[float]] = {}
        self.search_calls: list[tuple[ToolGroup, int]] = []

    # -- setup helpers ------------------------------------------------------

    def link(self, agent_id: str, source: ToolSource, permission: str = "write") -> None:
        self.agent_sources.setdefault(agent_id, []).append(
            AgentSource(source=source, permission=permission)
        )

    def add_credential(self, user_id: str, source_id: str, **secrets: Any) -> None:
        self.credentials[(user_id, source_id)] = Credential(
            source_id=source_id, user_id=user_id, secrets=secrets
        )

    def add_tools(self, tools: list[ToolDescriptor]) -> None:
        for tool in tools:
            self.tools[tool.origin].append(tool)

    # -- CatalogStore -------------------------------------------------------

    def _in_group(self, group: ToolGroup) -> list[ToolDescriptor]:
        owner = "source_id" if group.origin is ToolOrigin.TENANT else "template_id"
        return [t for t in self.tools[group.origin] if getattr(t, owner) in group.ids]

    async def get_agent_sources(self, agent_id: str) -> list[AgentSource]:
        return list(self.agent_sources.get(agent_id, []))

    async def get_active_credentials(self, user_id, source_ids):
        return {
            source_id: credential
            for (owner, source_id), credential in self.credentials.items()
            if owner == user_id and source_id in source_ids
        }

    async def get_coverage(self, group: ToolGroup) -> ToolCoverage:
        tools = self._in_group(group)
        return ToolCoverage(total=len(tools), embedded=sum(1 for t in tools if t.embedded))

    async def list_tools(self, group: ToolGroup) -> list[ToolDescriptor]:
        return self._in_group(group)

    async def search_tools(self, group, embedding, limit):
        self.search_calls.append((group, limit))
        ranked = sorted(
            (t for t in self._in_group(group) if t.embedded),
            key=lambda t: self.similarity.get(t.id, 0.0),
            reverse=True,
        )
        return [
            ToolMatch(tool_id=t.id, similarity=self.similarity.get(t.id, 0.0))
            for t in ranked[:limit]
        ]

    async def get_tools_by_ids(self, origin, ids):
        wanted = set(ids)
        # reversed so callers cannot rely on store order
        return [t for t in reversed(self.tools[origin]) if t.id in wanted]

    async def search_routines(self, org_id, embedding, limit):
        if self.routine_error is not None:
            raise self.routine_error
        return self.routine_candidates[:limit]

    async def get_routine(self, routine_id):
        return self.routines.get(routine_id)

    async def save_tool_embeddings(self, origin, vectors):
        self.saved_embeddings.update(vectors)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def failing_embedder():
    return FakeEmbedder(fail=True)


@pytest.fixture
def catalog_store():
    return InMemoryCatalogStore()


@pytest.fixture
def make_tool():
    """Factory for tool descriptors."""

    def _make(
        tool_id: str,
        name: str | None = None,
        method: str = "GET",
        path: str | None = None,
        source_id: str | None = "src-tenant",
        template_id: str | None = None,
        origin: ToolOrigin = ToolOrigin.TENANT,
        **fields: Any,
    ) -> ToolDescriptor:
        return ToolDescriptor(
            id=tool_id,
            name=name or f"tool {tool_id}",
            method=method,
            path=path or f"/{tool_id}",
            source_id=source_id if origin is not ToolOrigin.TEMPLATE else None,
            template_id=template_id,
            origin=origin,
            **fields,
        )

    return _make
