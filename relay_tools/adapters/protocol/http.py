"""HTTP tool server transport.

Each request is an independent POST of a JSON-RPC envelope. There is no
persistent socket; the connection is a logical session identified by the
session header the server may return on its first response and which is
echoed on every subsequent call.
"""

import json
from typing import Any

import httpx

from relay_config.settings import Settings
from relay_obs.logging import get_logger
from relay_tools.adapters.rest.request import build_auth_headers
from relay_tools.base import AuthKind, Credential, ToolSource, TransportKind
from relay_tools.exceptions import ConfigurationError, TransportError

from .connection import ProtocolConnection
from .jsonrpc import (
    RequestIdSequence,
    build_notification,
    build_request,
    is_response,
    unwrap_response,
)

logger = get_logger(__name__)

SESSION_HEADER = "Mcp-Session-Id"


def iter_sse_messages(text: str):
    """Yield decoded JSON payloads of the ``data:`` events in an SSE body."""
    data_lines: list[str] = []
    for raw in text.splitlines() + [""]:
        line = raw.rstrip("\r")
        if line == "":
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(payload)
                except ValueError:
                    logger.debug("protocol.sse_unparseable", payload=payload[:200])
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data_lines.append(value[1:] if value.startswith(" ") else value)


class HttpConnection(ProtocolConnection):
    """Tool server reached over stateless HTTP JSON-RPC."""

    transport = TransportKind.PROTOCOL_HTTP
    credential_scoped = True

    def __init__(
        self,
        source: ToolSource,
        settings: Settings,
        request_ids: RequestIdSequence,
        credentials: Credential | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(source, settings, request_ids, credentials)
        self.session_id: str | None = None
        self.timeout = settings.PROTOCOL_HTTP_TIMEOUT_SECONDS
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def url(self) -> str:
        return self.source.server_uri or ""

    def _auth_headers(self) -> dict[str, str]:
        if self.source.auth_type not in (AuthKind.NONE, AuthKind.PASSTHROUGH):
            return build_auth_headers(self.source, self.credentials)
        secrets = self.credentials.secrets if self.credentials else {}
        token = secrets.get("token") or secrets.get("api_key")
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _open(self) -> None:
        if not self.url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f'Tool server "{self.source.name}" needs an http(s) URL, got: {self.url or "(none)"}'
            )
        logger.info("protocol.connect", source_id=self.source_id, url=self.url)
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json, text/event-stream",
                **self._auth_headers(),
            },
        )

    async def _post(self, message: dict[str, Any]) -> httpx.Response:
        if self._client is None:
            raise TransportError(f"Tool server {self.source.name} is not open")

        headers = {SESSION_HEADER: self.session_id} if self.session_id else {}
        try:
            response = await self._client.post(self.url, json=message, headers=headers)
        except httpx.HTTPError as e:
            await self._fail(f"transport error: {e}")
            raise TransportError(f"Tool server {self.source.name} unreachable: {e}") from e

        session_id = response.headers.get(SESSION_HEADER)
        if session_id and self.session_id is None:
            self.session_id = session_id

        if not response.is_success:
            await self._fail(f"HTTP {response.status_code}")
            raise TransportError(
                f"Tool server {self.source.name} returned HTTP {response.status_code}: "
                f"{response.text[:200]}"
            )
        return response

    async def _request(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        request_id = self._request_ids.next()
        response = await self._post(build_request(method, params, request_id))
        return unwrap_response(self._match_response(response, request_id))

    async def _notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self._post(build_notification(method, params))

    def _match_response(self, response: httpx.Response, request_id: int) -> dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            messages = list(iter_sse_messages(response.text))
        else:
            try:
                decoded = response.json()
            except ValueError as e:
                raise TransportError(
                    f"Tool server {self.source.name} sent an unreadable response"
                ) from e
            messages = decoded if isinstance(decoded, list) else [decoded]

        for message in messages:
            if is_response(message) and message["id"] == request_id:
                return message
        raise TransportError(
            f"Tool server {self.source.name} sent no response for request {request_id}"
        )

    async def _fail(self, reason: str) -> None:
        await self._teardown()
        self._mark_closed(reason)

    async def _teardown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
