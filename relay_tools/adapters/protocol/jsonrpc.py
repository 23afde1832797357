"""JSON-RPC 2.0 envelope helpers for tool server traffic.

Requests carry a numeric id drawn from a RequestIdSequence; notifications omit
the id. Responses are unwrapped into their result or raised as ProtocolError.
"""

import itertools
import json
import threading
from typing import Any

from relay_tools.exceptions import ProtocolError

JSONRPC_VERSION = "2.0"


class RequestIdSequence:
    """Monotonically increasing request ids shared by every connection of a pool.

    Never reset; safe to draw from concurrently.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


def build_request(method: str, params: dict[str, Any] | None, request_id: int) -> dict[str, Any]:
    """Build a request envelope."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method,
        "params": params or {},
    }


def build_notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a notification envelope (no id, no response expected)."""
    message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message


def encode_line(message: dict[str, Any]) -> bytes:
    """Serialize one message for a newline-delimited stream."""
    return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")


def is_response(message: Any) -> bool:
    return (
        isinstance(message, dict)
        and "id" in message
        and ("result" in message or "error" in message)
    )


def error_from_object(error: Any) -> ProtocolError:
    """Map a JSON-RPC error object to ProtocolError, preserving its message."""
    if isinstance(error, dict):
        return ProtocolError(
            error.get("message") or "Tool server error",
            code=error.get("code"),
            data=error.get("data"),
        )
    return ProtocolError(str(error))


def unwrap_response(message: dict[str, Any]) -> dict[str, Any]:
    """Return the result of a response envelope.

    Raises:
        ProtocolError: The envelope carries an error object
    """
    if "error" in message and message["error"] is not None:
        raise error_from_object(message["error"])
    result = message.get("result")
    return result if isinstance(result, dict) else {}
