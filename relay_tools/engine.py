"""Tool engine assembly.

Wires settings, observability, the Postgres catalog store, the embedding
client, the connection pool, the executor and the catalog loader into one
object with an explicit start/close lifecycle.

Usage:
    async with ToolEngine.from_settings() as engine:
        catalog = await engine.loader.load_agent_tools(agent_id, user_id, user_query=query)
        outcome = await catalog.registry().get(key).execute(args)
"""

from relay_config import Settings, get_settings
from relay_llm.client import EmbeddingAuthError, EmbeddingClient
from relay_llm.openai_client import OpenAIEmbeddingClient
from relay_memory.database import check_db_connection, close_db_connections, get_session_factory
from relay_memory.stores import PgCatalogStore
from relay_obs.logging import get_logger, setup_logging
from relay_obs.tracing import setup_tracing
from relay_tools.adapters.protocol.pool import ConnectionPool
from relay_tools.catalog.loader import ToolCatalogLoader
from relay_tools.catalog.store import CatalogStore
from relay_tools.executor import ToolExecutor

logger = get_logger(__name__)


class ToolEngine:
    """Process-wide tool routing components."""

    def __init__(
        self,
        settings: Settings,
        store: CatalogStore,
        embedder: EmbeddingClient | None = None,
        pool: ConnectionPool | None = None,
        executor: ToolExecutor | None = None,
    ):
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self.pool = pool or ConnectionPool(settings)
        self.executor = executor or ToolExecutor(self.pool, settings)
        self.loader = ToolCatalogLoader(store, self.executor, embedder, settings)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ToolEngine":
        """Build the engine against Postgres and the configured embedding provider.

        Configures logging and tracing. Without an embedding API key the
        engine runs without semantic retrieval (every group loads everything).
        """
        settings = settings or get_settings()
        setup_logging(settings)
        setup_tracing(settings)

        store = PgCatalogStore(
            get_session_factory(settings.DATABASE_URL), settings.EMBEDDING_DIMENSIONS
        )
        try:
            embedder: EmbeddingClient | None = OpenAIEmbeddingClient.from_settings(settings)
        except EmbeddingAuthError as e:
            logger.warning("engine.embeddings_disabled", reason=str(e))
            embedder = None

        return cls(settings, store, embedder)

    async def check_health(self) -> bool:
        """True when the catalog database answers."""
        return await check_db_connection()

    async def close(self) -> None:
        """Disconnect tool servers and release HTTP and database resources."""
        await self.pool.disconnect_all()
        await self.executor.close()
        await close_db_connections()
        logger.info("engine.closed")

    async def __aenter__(self) -> "ToolEngine":
        logger.info(
            "engine.started",
            environment=self.settings.ENVIRONMENT,
            embeddings=self.embedder.model_name if self.embedder else None,
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
