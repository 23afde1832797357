"""Tool server connection lifecycle.

Disconnected -> Connecting (initialize handshake) -> Connected -> Disconnected.
A connection object is single-use: once it leaves Connected it never comes
back, and whoever needs the server again acquires a fresh one from the pool.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable

from relay_config.settings import Settings
from relay_obs.logging import get_logger
from relay_obs.metrics import protocol_connections_total
from relay_tools.base import Credential, ToolSource, TransportKind
from relay_tools.exceptions import (
    ConfigurationError,
    ConnectionClosedError,
    HandshakeError,
    ToolRoutingError,
)

from .jsonrpc import RequestIdSequence

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ProtocolConnection(ABC):
    """One logical connection to a tool server."""

    transport: TransportKind
    # Connections that carry the caller's credentials are pooled per credential
    credential_scoped = False

    def __init__(
        self,
        source: ToolSource,
        settings: Settings,
        request_ids: RequestIdSequence,
        credentials: Credential | None = None,
    ):
        """Initialize connection.

        Args:
            source: Tool server source configuration
            settings: Protocol version, client identity and timeouts
            request_ids: Shared request id sequence
            credentials: Active credential bundle (HTTP servers only)
        """
        self.source = source
        self.source_id = source.id
        self.settings = settings
        self.credentials = credentials
        self._request_ids = request_ids
        self.state = ConnectionState.DISCONNECTED
        self.capabilities: dict[str, Any] = {}
        self.server_info: dict[str, Any] = {}
        self._close_callbacks: list[Callable[["ProtocolConnection"], None]] = []
        self._closed = False

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def on_close(self, callback: Callable[["ProtocolConnection"], None]) -> None:
        """Register a callback fired once when the connection leaves Connected."""
        self._close_callbacks.append(callback)

    # ------------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------------

    async def connect(self) -> dict[str, Any]:
        """Open the transport and perform the initialize handshake.

        Returns:
            The server's initialize result

        Raises:
            ConfigurationError: Source is missing its command/URL
            HandshakeError: Transport could not be opened or initialize failed
        """
        if self.is_connected:
            return {"capabilities": self.capabilities, "serverInfo": self.server_info}
        if self._closed:
            raise ConnectionClosedError(f"Connection to {self.source.name} was already closed")

        self.state = ConnectionState.CONNECTING
        try:
            await self._open()
            result = await self._request(
                "initialize",
                {
                    "protocolVersion": self.settings.PROTOCOL_VERSION,
                    "capabilities": {"roots": {"listChanged": True}},
                    "clientInfo": {
                        "name": self.settings.PROTOCOL_CLIENT_NAME,
                        "version": self.settings.PROTOCOL_CLIENT_VERSION,
                    },
                },
            )
            await self._notify("notifications/initialized")
        except ConfigurationError:
            await self._abort()
            raise
        except (ToolRoutingError, OSError) as exc:
            await self._abort()
            if isinstance(exc, HandshakeError):
                raise
            raise HandshakeError(f"Could not connect to {self.source.name}: {exc}") from exc

        self.capabilities = result.get("capabilities") or {}
        self.server_info = result.get("serverInfo") or {}
        self.state = ConnectionState.CONNECTED
        protocol_connections_total.labels(transport=self.transport.value, outcome="connected").inc()
        logger.info(
            "protocol.connected",
            source_id=self.source_id,
            transport=self.transport.value,
            server=self.server_info.get("name"),
            protocol_version=result.get("protocolVersion"),
        )
        return result

    async def disconnect(self) -> None:
        """Close the transport; pending requests fail with ConnectionClosedError."""
        await self._teardown()
        self._mark_closed("disconnected")

    async def _abort(self) -> None:
        protocol_connections_total.labels(transport=self.transport.value, outcome="failed").inc()
        await self._teardown()
        self._mark_closed("handshake failed")

    def _mark_closed(self, reason: str) -> None:
        self.state = ConnectionState.DISCONNECTED
        if self._closed:
            return
        self._closed = True
        logger.info("protocol.closed", source_id=self.source_id, reason=reason)
        for callback in self._close_callbacks:
            callback(self)

    # ------------------------------------------------------------------------
    # OPERATIONS
    # ------------------------------------------------------------------------

    async def list_tools(self) -> list[dict[str, Any]]:
        """List tool definitions (name, description, inputSchema)."""
        result = await self._call("tools/list", {})
        return result.get("tools") or []

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Call a tool and return the raw result envelope (content blocks, isError)."""
        return await self._call("tools/call", {"name": name, "arguments": arguments or {}})

    async def list_resources(self) -> list[dict[str, Any]]:
        if "resources" not in self.capabilities:
            return []
        result = await self._call("resources/list", {})
        return result.get("resources") or []

    async def read_resource(self, uri: str) -> dict[str, Any]:
        return await self._call("resources/read", {"uri": uri})

    async def list_prompts(self) -> list[dict[str, Any]]:
        if "prompts" not in self.capabilities:
            return []
        result = await self._call("prompts/list", {})
        return result.get("prompts") or []

    async def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.is_connected:
            raise ConnectionClosedError(f"Not connected to {self.source.name}")
        return await self._request(method, params)

    # ------------------------------------------------------------------------
    # TRANSPORT HOOKS
    # ------------------------------------------------------------------------

    @abstractmethod
    async def _open(self) -> None:
        """Open the underlying transport."""

    @abstractmethod
    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Send a request and return its result."""

    @abstractmethod
    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification."""

    @abstractmethod
    async def _teardown(self) -> None:
        """Release transport resources."""
