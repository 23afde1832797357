"""Connection pool for tool servers.

Holds at most one live connection per pool key. Stdio servers are keyed by
source id alone; HTTP servers carry the caller's auth headers, so they are
keyed by source id plus a fingerprint of the credential bundle and each
user's credentials get their own session. Connections are created lazily on
first acquire, liveness-checked before reuse, and purged when they close or
fail; the next acquire then performs a fresh handshake. There is no automatic
reconnection or backoff.
"""

import asyncio
import hashlib
import json
from typing import Any, Callable

from relay_config import Settings, get_settings
from relay_obs.logging import get_logger
from relay_obs.metrics import protocol_connections_active
from relay_tools.base import Credential, ToolSource, TransportKind
from relay_tools.exceptions import ConfigurationError

from .connection import ProtocolConnection
from .http import HttpConnection
from .jsonrpc import RequestIdSequence
from .stdio import StdioConnection

logger = get_logger(__name__)

ConnectionFactory = Callable[
    [ToolSource, Settings, RequestIdSequence, Credential | None], ProtocolConnection
]

DEFAULT_FACTORIES: dict[TransportKind, ConnectionFactory] = {
    TransportKind.PROTOCOL_STDIO: StdioConnection,
    TransportKind.PROTOCOL_HTTP: HttpConnection,
}


def credential_fingerprint(credentials: Credential | None) -> str:
    """Stable short digest of a credential bundle; "anon" without secrets."""
    if credentials is None or not credentials.secrets:
        return "anon"
    encoded = json.dumps(credentials.secrets, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:16]


class ConnectionPool:
    """Process-wide cache of tool server connections."""

    def __init__(
        self,
        settings: Settings | None = None,
        factories: dict[TransportKind, ConnectionFactory] | None = None,
    ):
        """Initialize pool.

        Args:
            settings: Settings passed to every connection (defaults to get_settings())
            factories: Transport -> connection constructor overrides
        """
        self.settings = settings or get_settings()
        self.request_ids = RequestIdSequence()
        self._factories = {**DEFAULT_FACTORIES, **(factories or {})}
        self._connections: dict[str, ProtocolConnection] = {}
        self._keys: dict[int, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, source_id: str) -> bool:
        return self.is_connected(source_id)

    def pool_key(self, source: ToolSource, credentials: Credential | None = None) -> str:
        factory = self._factories.get(source.transport)
        if getattr(factory, "credential_scoped", True):
            return f"{source.id}:{credential_fingerprint(credentials)}"
        return source.id

    def _entries(self, source_id: str) -> list[tuple[str, ProtocolConnection]]:
        return [(k, c) for k, c in self._connections.items() if c.source_id == source_id]

    # ------------------------------------------------------------------------
    # ACQUIRE / RELEASE / PURGE
    # ------------------------------------------------------------------------

    async def acquire(
        self, source: ToolSource, credentials: Credential | None = None
    ) -> ProtocolConnection:
        """Return the live connection for a source and credential, connecting if needed.

        Concurrent acquires for the same key share one handshake.

        Raises:
            ConfigurationError: Source is not a tool server or is misconfigured
            HandshakeError: First-use handshake failed (nothing is cached)
        """
        factory = self._factories.get(source.transport)
        if factory is None:
            raise ConfigurationError(f'Source "{source.name}" is not a tool server.')

        key = self.pool_key(source, credentials)
        cached = self._connections.get(key)
        if cached is not None and cached.is_connected:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._connections.get(key)
            if cached is not None:
                if cached.is_connected:
                    return cached
                self.purge(source.id, cached)

            connection = factory(source, self.settings, self.request_ids, credentials)
            await connection.connect()
            connection.on_close(self._on_connection_closed)
            self._connections[key] = connection
            self._keys[id(connection)] = key
            protocol_connections_active.labels(transport=connection.transport.value).inc()
            return connection

    def release(self, connection: ProtocolConnection) -> None:
        """Return a connection after use; dead connections are purged."""
        if not connection.is_connected:
            self.purge(connection.source_id, connection)

    def purge(self, source_id: str, connection: ProtocolConnection | None = None) -> bool:
        """Drop cached entries for a source.

        When a connection is given, only its entry is dropped and only if it is
        still cached, so a stale close event never evicts its replacement.
        Without one, every entry for the source is dropped.

        Returns:
            True if an entry was removed
        """
        if connection is not None:
            key = self._keys.get(id(connection))
            if key is None or self._connections.get(key) is not connection:
                return False
            entries = [(key, connection)]
        else:
            entries = self._entries(source_id)

        for key, current in entries:
            self._forget(key, current)
        if entries:
            logger.info("protocol.purged", source_id=source_id, entries=len(entries))
        return bool(entries)

    def _forget(self, key: str, connection: ProtocolConnection) -> None:
        del self._connections[key]
        self._keys.pop(id(connection), None)
        protocol_connections_active.labels(transport=connection.transport.value).dec()

    def _on_connection_closed(self, connection: ProtocolConnection) -> None:
        self.purge(connection.source_id, connection)

    # ------------------------------------------------------------------------
    # INTROSPECTION
    # ------------------------------------------------------------------------

    def is_connected(self, source_id: str) -> bool:
        """True when any pooled connection for the source is live."""
        return any(c.is_connected for _, c in self._entries(source_id))

    def get_server_info(self, source_id: str) -> dict[str, Any] | None:
        """Capabilities and server identity from the handshake, if connected."""
        connection = next((c for _, c in self._entries(source_id) if c.is_connected), None)
        if connection is None:
            return None
        return {
            "source_id": source_id,
            "transport": connection.transport.value,
            "server_info": dict(connection.server_info),
            "capabilities": dict(connection.capabilities),
        }

    # ------------------------------------------------------------------------
    # OPERATIONS
    # ------------------------------------------------------------------------

    async def list_tools(
        self, source: ToolSource, credentials: Credential | None = None
    ) -> list[dict[str, Any]]:
        """List a tool server's tools through the pooled connection."""
        connection = await self.acquire(source, credentials)
        try:
            return await connection.list_tools()
        finally:
            self.release(connection)

    async def call_tool(
        self,
        source: ToolSource,
        name: str,
        arguments: dict[str, Any] | None = None,
        credentials: Credential | None = None,
    ) -> dict[str, Any]:
        """Call a tool through the pooled connection and return the raw result."""
        connection = await self.acquire(source, credentials)
        try:
            return await connection.call_tool(name, arguments)
        finally:
            self.release(connection)

    async def disconnect(self, source_id: str) -> None:
        """Close and forget every connection for one source."""
        for key, connection in self._entries(source_id):
            self._forget(key, connection)
            await connection.disconnect()

    async def disconnect_all(self) -> None:
        """Close every pooled connection (shutdown / reconfiguration)."""
        for source_id in {c.source_id for c in self._connections.values()}:
            await self.disconnect(source_id)
