"""Tests for the HTTP tool server transport."""

import functools
import json

import httpx
import pytest

from relay_tools.adapters.protocol import ConnectionPool, HttpConnection, RequestIdSequence
from relay_tools.adapters.protocol.http import SESSION_HEADER, iter_sse_messages
from relay_tools.base import AuthKind, Credential, ToolSource, TransportKind
from relay_tools.exceptions import ConfigurationError, ConnectionClosedError, ProtocolError, TransportError

URL = "https://tools.example.com/mcp"


def http_source(**overrides):
    fields = {
        "id": "remote",
        "name": "Remote",
        "transport": TransportKind.PROTOCOL_HTTP,
        "server_uri": URL,
    }
    fields.update(overrides)
    return ToolSource(**fields)


class FakeServer:
    """MockTransport handler speaking JSON-RPC; records every request."""

    def __init__(self, sse=False, fail_method=None, status_for=None):
        self.sse = sse
        self.fail_method = fail_method
        self.status_for = status_for or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        message = json.loads(request.content)
        method = message.get("method")
        if method in self.status_for:
            return httpx.Response(self.status_for[method], text="upstream down")
        if "id" not in message:
            return httpx.Response(202)

        if method == "initialize":
            payload = {
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "remote-server", "version": "2.0"},
            }
        elif method == self.fail_method:
            return self._reply({"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32000, "message": "boom"}})
        elif method == "tools/list":
            payload = {"tools": [{"name": "search"}]}
        else:
            payload = {"content": [{"type": "text", "text": "ok"}]}
        return self._reply({"jsonrpc": "2.0", "id": message["id"], "result": payload})

    def _reply(self, envelope):
        headers = {SESSION_HEADER: "sess-123"}
        if self.sse:
            body = "event: message\n" + f"data: {json.dumps(envelope)}\n\n"
            headers["content-type"] = "text/event-stream"
            return httpx.Response(200, text=body, headers=headers)
        return httpx.Response(200, json=envelope, headers=headers)


def connect_to(server, settings, **source_fields):
    credentials = source_fields.pop("credentials", None)
    return HttpConnection(
        http_source(**source_fields),
        settings,
        RequestIdSequence(),
        credentials=credentials,
        transport=httpx.MockTransport(server),
    )


@pytest.mark.asyncio
async def test_session_id_echoed_after_first_response(settings):
    server = FakeServer()
    conn = connect_to(server, settings)
    await conn.connect()
    await conn.list_tools()
    await conn.disconnect()

    initialize, initialized, list_call = server.requests
    assert SESSION_HEADER not in initialize.headers
    assert initialized.headers[SESSION_HEADER] == "sess-123"
    assert list_call.headers[SESSION_HEADER] == "sess-123"
    assert json.loads(initialized.content)["method"] == "notifications/initialized"


@pytest.mark.asyncio
async def test_sse_response_body(settings):
    server = FakeServer(sse=True)
    conn = connect_to(server, settings)
    await conn.connect()

    assert conn.server_info["name"] == "remote-server"
    assert await conn.list_tools() == [{"name": "search"}]
    await conn.disconnect()


@pytest.mark.asyncio
async def test_non_2xx_is_transport_error_and_closes(settings):
    server = FakeServer(status_for={"tools/call": 502})
    conn = connect_to(server, settings)
    closed = []
    conn.on_close(closed.append)
    await conn.connect()

    with pytest.raises(TransportError, match="HTTP 502"):
        await conn.call_tool("search", {"q": "x"})

    assert closed == [conn]
    with pytest.raises(ConnectionClosedError):
        await conn.call_tool("search")


@pytest.mark.asyncio
async def test_error_object_is_protocol_error(settings):
    conn = connect_to(FakeServer(fail_method="tools/call"), settings)
    await conn.connect()

    with pytest.raises(ProtocolError, match="boom"):
        await conn.call_tool("search")
    assert conn.is_connected
    await conn.disconnect()


@pytest.mark.asyncio
async def test_bearer_token_sent_from_credentials(settings):
    server = FakeServer()
    conn = connect_to(
        server,
        settings,
        auth_type=AuthKind.BEARER,
        credentials=Credential(source_id="remote", secrets={"token": "tok"}),
    )
    await conn.connect()
    await conn.disconnect()

    assert all(r.headers["Authorization"] == "Bearer tok" for r in server.requests)
    assert "text/event-stream" in server.requests[0].headers["Accept"]


@pytest.mark.asyncio
async def test_non_http_url_is_configuration_error(settings):
    conn = connect_to(FakeServer(), settings, server_uri="ftp://nope")
    with pytest.raises(ConfigurationError, match="http"):
        await conn.connect()


def test_iter_sse_messages_skips_comments_and_joins_data_lines():
    body = ': keepalive\n\ndata: {"a":\ndata: 1}\n\ndata: not json\n\n'
    assert list(iter_sse_messages(body)) == [{"a": 1}]


# ============================================================================
# POOLED SESSIONS
# ============================================================================


def pooled(server, settings):
    factory = functools.partial(HttpConnection, transport=httpx.MockTransport(server))
    return ConnectionPool(settings, factories={TransportKind.PROTOCOL_HTTP: factory})


def bearer(user_id, token):
    return Credential(source_id="remote", user_id=user_id, secrets={"token": token})


def calls_by_auth(server):
    return [
        r.headers["Authorization"]
        for r in server.requests
        if json.loads(r.content).get("method") == "tools/call"
    ]


@pytest.mark.asyncio
async def test_each_users_credentials_get_their_own_session(settings):
    server = FakeServer()
    pool = pooled(server, settings)
    source = http_source(auth_type=AuthKind.BEARER)

    await pool.call_tool(source, "search", {}, credentials=bearer("alice", "ALICE"))
    await pool.call_tool(source, "search", {}, credentials=bearer("bob", "BOB"))
    await pool.call_tool(source, "search", {}, credentials=bearer("alice", "ALICE"))

    assert calls_by_auth(server) == ["Bearer ALICE", "Bearer BOB", "Bearer ALICE"]
    handshakes = [r for r in server.requests if json.loads(r.content).get("method") == "initialize"]
    assert len(handshakes) == 2
    assert len(pool) == 2
    assert pool.pool_key(source, bearer("alice", "ALICE")) != pool.pool_key(source, bearer("bob", "BOB"))

    await pool.disconnect_all()


@pytest.mark.asyncio
async def test_disconnect_drops_every_session_for_source(settings):
    server = FakeServer()
    pool = pooled(server, settings)
    source = http_source(auth_type=AuthKind.BEARER)
    alice = await pool.acquire(source, bearer("alice", "ALICE"))
    bob = await pool.acquire(source, bearer("bob", "BOB"))

    await pool.disconnect(source.id)

    assert len(pool) == 0
    assert not pool.is_connected(source.id)
    assert not alice.is_connected and not bob.is_connected
