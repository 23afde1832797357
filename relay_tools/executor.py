"""Invocation Executor.

Performs exactly one call for a chosen tool and normalizes the outcome into
a ToolCallResult. REST sources are called directly over HTTP; tool server
sources go through the connection pool. Call failures never raise: they are
returned as results (status 0 for transport failures, 500 for tool-reported
errors, the HTTP status otherwise).
"""

import json
import time
from typing import Any, Awaitable, Callable

from relay_config import Settings, get_settings
from relay_obs.logging import bound_call_context, get_logger
from relay_obs.metrics import tool_execution_duration, tool_executions_total
from relay_obs.tracing import get_tracer
from relay_tools.adapters.protocol.hints import post_process_result, pre_process_args
from relay_tools.adapters.protocol.parser import parse_tool_result
from relay_tools.adapters.protocol.pool import ConnectionPool
from relay_tools.adapters.rest.client import RestClient
from relay_tools.adapters.rest.request import (
    build_auth_headers,
    build_request_body,
    build_url,
    clean_args,
)
from relay_tools.adapters.rest.vendors import VendorRegistry, default_vendors
from relay_tools.base import Credential, ToolCallResult, ToolDescriptor, ToolSource, TransportKind
from relay_tools.exceptions import ConfigurationError, ToolRoutingError

logger = get_logger(__name__)
tracer = get_tracer(__name__)

TRUNCATION_MARKER = "... (truncated)"

Invoker = Callable[
    [ToolDescriptor, ToolSource, dict[str, Any], Credential | None, str | None],
    Awaitable[ToolCallResult],
]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ToolExecutor:
    """Routes a tool call to its transport and normalizes the result."""

    def __init__(
        self,
        pool: ConnectionPool,
        settings: Settings | None = None,
        rest_client: RestClient | None = None,
        vendors: VendorRegistry | None = None,
    ):
        """Initialize executor.

        Args:
            pool: Connection pool used for tool server sources
            settings: Timeouts and result caps (defaults to get_settings())
            rest_client: HTTP client for REST sources (created if omitted)
            vendors: Vendor adapters for REST sources (defaults to default_vendors())
        """
        self.pool = pool
        self.settings = settings or get_settings()
        self.rest_client = rest_client or RestClient(
            timeout=self.settings.REST_TIMEOUT_SECONDS,
            text_body_max_chars=self.settings.REST_TEXT_BODY_MAX_CHARS,
        )
        self.vendors = vendors if vendors is not None else default_vendors()
        self._invokers: dict[TransportKind, Invoker] = {
            TransportKind.REST: self._execute_rest,
            TransportKind.PROTOCOL_STDIO: self._execute_protocol,
            TransportKind.PROTOCOL_HTTP: self._execute_protocol,
        }

    def resolve_invoker(self, tool: ToolDescriptor, source: ToolSource) -> Invoker:
        """Pick the invoker for a (tool, source) pair.

        Protocol descriptors always use the protocol path, even when the
        source record predates its transport kind.
        """
        if tool.is_protocol and not source.transport.is_protocol:
            return self._execute_protocol
        return self._invokers[source.transport]

    async def execute_tool(
        self,
        tool: ToolDescriptor,
        source: ToolSource,
        args: dict[str, Any] | None,
        credentials: Credential | None = None,
        caller_id: str | None = None,
    ) -> ToolCallResult:
        """Execute one tool call.

        Args:
            tool: Descriptor chosen by the model
            source: Source the descriptor belongs to
            args: Model-supplied arguments
            credentials: Active credential bundle for (user, source)
            caller_id: Id of the calling user, forwarded when configured

        Returns:
            ToolCallResult with status, body, duration, target and error
        """
        invoker = self.resolve_invoker(tool, source)
        transport = "protocol" if invoker == self._execute_protocol else "rest"

        with bound_call_context(source_id=source.id, caller_id=caller_id), tracer.start_as_current_span(
            "tool.execute"
        ) as span:
            span.set_attribute("tool.id", tool.id)
            span.set_attribute("tool.source_id", source.id)
            span.set_attribute("tool.transport", transport)

            result = await invoker(tool, source, args or {}, credentials, caller_id)

            span.set_attribute("tool.status", result.status)

        outcome = self._outcome(result)
        tool_executions_total.labels(transport=transport, outcome=outcome).inc()
        tool_execution_duration.labels(transport=transport).observe(result.duration_ms / 1000)
        logger.info(
            "tool.execute",
            tool=tool.name,
            source_id=source.id,
            target=result.target,
            status=result.status,
            duration_ms=result.duration_ms,
            arg_keys=sorted((args or {}).keys()),
            outcome=outcome,
        )
        return result

    @staticmethod
    def _outcome(result: ToolCallResult) -> str:
        if result.status == 0:
            return "transport_error"
        if result.ok:
            return "success"
        if result.status == 500 and result.target.startswith("mcp://"):
            return "protocol_error"
        return "http_error"

    # ------------------------------------------------------------------------
    # REST
    # ------------------------------------------------------------------------

    async def _execute_rest(
        self,
        tool: ToolDescriptor,
        source: ToolSource,
        args: dict[str, Any],
        credentials: Credential | None,
        caller_id: str | None,
    ) -> ToolCallResult:
        started = time.perf_counter()
        vendor = self.vendors.get(source)
        if vendor is not None:
            args = vendor.before_request(args, tool, source)
        url = build_url(source.base_url or "", tool.path, args, tool.parameters)

        try:
            headers = build_auth_headers(source, credentials)
            if vendor is not None:
                headers.update(vendor.headers(source, credentials))
            if caller_id and self.settings.CALLER_ID_HEADER:
                headers[self.settings.CALLER_ID_HEADER] = caller_id
            body = build_request_body(args, tool.parameters, tool.request_body)
            response = await self.rest_client.request(
                tool.method,
                url,
                headers=headers,
                body=body,
                encoding=self.vendors.encoding_for(source),
            )
        except ToolRoutingError as e:
            return ToolCallResult(
                status=0, body=None, duration_ms=_elapsed_ms(started), target=url, error=str(e)
            )

        body = response.body
        if vendor is not None:
            body = vendor.after_response(body, tool, source)
        return ToolCallResult(
            status=response.status_code,
            body=body,
            duration_ms=_elapsed_ms(started),
            target=url,
            error=None if response.ok else f"HTTP {response.status_code}",
        )

    # ------------------------------------------------------------------------
    # TOOL SERVERS
    # ------------------------------------------------------------------------

    async def _execute_protocol(
        self,
        tool: ToolDescriptor,
        source: ToolSource,
        args: dict[str, Any],
        credentials: Credential | None,
        caller_id: str | None,
    ) -> ToolCallResult:
        started = time.perf_counter()
        tool_name = tool.protocol_tool_name or tool.path
        target = f"mcp://{source.name}/{tool_name}"
        arguments = pre_process_args(clean_args(args), tool_name, source.hints)

        try:
            if not source.transport.is_protocol:
                raise ConfigurationError(f'Source "{source.name}" is not a tool server.')
            raw = await self.pool.call_tool(source, tool_name, arguments, credentials)
        except ToolRoutingError as e:
            status = getattr(e, "status", 0)
            return ToolCallResult(
                status=status, body=None, duration_ms=_elapsed_ms(started), target=target, error=str(e)
            )

        parsed = parse_tool_result(raw)
        data = post_process_result(parsed.data, tool_name, source.hints)
        return ToolCallResult(
            status=500 if parsed.is_error else 200,
            body=data if data is not None else {"text": parsed.text},
            duration_ms=_elapsed_ms(started),
            target=target,
            error=parsed.text if parsed.is_error else None,
        )

    async def close(self) -> None:
        await self.rest_client.close()


def format_tool_result(result: ToolCallResult, max_chars: int = 10240) -> str:
    """Render a bounded text summary of a call for the model's context.

    Failures without a body render as "Error: <message>"; non-2xx results are
    prefixed with their status; text beyond max_chars is cut with a marker.
    """
    if result.error and result.body is None:
        return f"Error: {result.error}"

    body = result.body
    if body is None:
        text = "Success (empty response)"
    elif isinstance(body, str):
        text = body
    else:
        text = json.dumps(body, indent=2, default=str, ensure_ascii=False)

    if len(text) > max_chars:
        text = text[:max_chars] + TRUNCATION_MARKER

    if not result.ok:
        return f"HTTP {result.status} Error:\n{text}"
    return text
