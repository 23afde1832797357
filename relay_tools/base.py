"""Tool routing domain types.

Sources, descriptors, credentials and routines arrive from the catalog store;
ToolCallResult is produced by the executor and never persisted here.
"""

from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field


class TransportKind(str, Enum):
    """How a source is reached."""

    REST = "rest"
    PROTOCOL_STDIO = "protocol-stdio"
    PROTOCOL_HTTP = "protocol-http"

    @property
    def is_protocol(self) -> bool:
        return self is not TransportKind.REST


class AuthKind(str, Enum):
    BEARER = "bearer"
    API_KEY = "api_key"
    BASIC = "basic"
    HEADER = "header"
    PASSTHROUGH = "passthrough"
    NONE = "none"


class RiskLevel(str, Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    DANGEROUS = "dangerous"


class ToolOrigin(str, Enum):
    """Which catalog a descriptor came from."""

    TENANT = "tenant"  # tools table, private to the org
    TEMPLATE = "template"  # template_tools table, shared across orgs
    LIVE = "live"  # listed from an HTTP tool server this turn, never persisted


class RequestEncoding(str, Enum):
    JSON = "json"
    FORM = "form-urlencoded"


READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class ToolSource(BaseModel):
    """A REST API or tool server configured for an org."""

    id: str
    name: str
    transport: TransportKind = TransportKind.REST
    base_url: str | None = None
    server_uri: str | None = None  # command line (stdio) or URL (http)
    auth_type: AuthKind = AuthKind.NONE
    template_id: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    hints: dict[str, Any] = Field(default_factory=dict)  # template runtime hints
    request_encoding: RequestEncoding = RequestEncoding.JSON


class ToolDescriptor(BaseModel):
    """One callable operation. Superseded by re-sync, never mutated here."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    method: str = "GET"
    path: str = ""
    protocol_tool_name: str | None = None
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    request_body: dict[str, Any] | None = None
    risk_level: RiskLevel = RiskLevel.SAFE
    requires_confirmation: bool = False
    source_id: str | None = None
    template_id: str | None = None
    origin: ToolOrigin = ToolOrigin.TENANT
    tags: list[str] = Field(default_factory=list)
    embedded: bool = False  # a stored embedding exists for this row

    @property
    def is_protocol(self) -> bool:
        return self.method == "MCP"

    @property
    def needs_confirmation(self) -> bool:
        return self.requires_confirmation or self.risk_level is RiskLevel.DANGEROUS


class Credential(BaseModel):
    """The active credential bundle for one (user, source)."""

    source_id: str
    user_id: str | None = None
    label: str = "Default"
    secrets: dict[str, Any] = Field(default_factory=dict)

    def get(self, key: str) -> Any:
        return self.secrets.get(key)


class AgentSource(BaseModel):
    """A source linked to an agent with its permission."""

    source: ToolSource
    permission: str = "write"

    @property
    def read_only(self) -> bool:
        return self.permission == "read"


class Routine(BaseModel):
    """A saved intent with the ordered tool chain that fulfilled it."""

    id: str
    name: str
    prompt: str = ""
    org_id: str | None = None
    tool_chain: list[str] = Field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @property
    def total_runs(self) -> int:
        return self.success_count + self.failure_count


class ToolCallResult(BaseModel):
    """Outcome of exactly one call, identical in shape across transports."""

    status: int
    body: Any = None
    duration_ms: int = 0
    target: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# ============================================================================
# CALLABLE TOOL INTERFACE
# ============================================================================


class ToolMetadata(BaseModel):
    """Routing metadata carried by a callable tool."""

    tool_id: str | None = None
    source_id: str | None = None
    origin: ToolOrigin | None = None
    method: str | None = None
    path: str | None = None
    risk_level: RiskLevel = RiskLevel.SAFE
    requires_confirmation: bool = False
    system: bool = False  # built-in introspection tool, exempt from the cap


class Tool(Protocol):
    """Tool interface exposed to the model."""

    key: str
    description: str
    input_schema: dict[str, Any]
    metadata: ToolMetadata

    async def execute(self, args: dict[str, Any]) -> dict[str, Any]:
        """Execute tool action."""
        ...
