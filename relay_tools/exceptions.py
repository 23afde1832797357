"""Tool routing exceptions.

Neither the protocol connections nor the executor retry; retry policy belongs
to the caller. The executor turns every call failure into a ToolCallResult,
the protocol connections raise.
"""


class ToolRoutingError(Exception):
    """Base exception for tool routing and execution."""

    pass


class ConfigurationError(ToolRoutingError):
    """Missing or invalid credential/source configuration.

    The message is written for the end user and is surfaced verbatim.
    """

    pass


class TransportError(ToolRoutingError):
    """Spawn or network failure talking to a tool server or REST API."""

    status = 0


class HandshakeError(TransportError):
    """Initialize exchange failed on first use of a tool server."""

    pass


class ProtocolTimeoutError(TransportError):
    """A stdio request received no response within the pending-request timeout."""

    def __init__(self, method: str, timeout: float):
        super().__init__(f"Tool server request timed out after {timeout:g}s: {method}")
        self.method = method
        self.timeout = timeout


class ConnectionClosedError(TransportError):
    """The tool server process exited or its stream failed while requests were pending."""

    pass


class ProtocolError(ToolRoutingError):
    """Remote JSON-RPC error object."""

    status = 500

    def __init__(self, message: str, code: int | None = None, data=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class RestHTTPError(ToolRoutingError):
    """Non-2xx REST response."""

    def __init__(self, status_code: int, body=None):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class RoutineFallbackError(ToolRoutingError):
    """A matched routine could not be resolved; retrieval falls back to the normal path."""

    pass


# ============================================================================
# ADVISORIES
# ============================================================================


class CapacityWarning(UserWarning):
    """The callable tool list was truncated at the hard ceiling."""

    def __init__(self, dropped: int, kept: int, ceiling: int):
        super().__init__(
            f"{dropped} tools were not loaded because the limit is {ceiling} per request. "
            "Read tools were kept first, then create tools; use search_tools to find others."
        )
        self.dropped = dropped
        self.kept = kept
        self.ceiling = ceiling


class SourceSkippedWarning(UserWarning):
    """A configured source contributed no tools this turn."""

    def __init__(self, source_id: str, source_name: str, reason: str):
        super().__init__(f"Skipped {source_name}: {reason}")
        self.source_id = source_id
        self.source_name = source_name
        self.reason = reason
