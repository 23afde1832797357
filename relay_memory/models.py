"""SQLAlchemy Async Models.

Driver: asyncpg ONLY (no psycopg2)
Vector columns (embedding_768 / embedding_1536) are added by migrations and
accessed through raw SQL, so they are not mapped here.
"""

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class SourceTemplate(Base):
    """Shared source definition installed by many orgs."""

    __tablename__ = "source_templates"

    id = Column(UUID(as_uuid=True), primary_key=True)
    slug = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    source_type = Column(Text, nullable=False)  # openapi, mcp
    mcp_transport = Column(Text, default="stdio")
    mcp_hints = Column(JSONB, default=dict)  # runtime hints for tool servers
    content_type = Column(Text, default="json")  # json, form-urlencoded
    auth_type = Column(Text, default="api_key")


class ApiSource(Base):
    """A REST API or tool server configured for an org."""

    __tablename__ = "api_sources"

    id = Column(UUID(as_uuid=True), primary_key=True)
    org_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    template_id = Column(UUID(as_uuid=True), ForeignKey("source_templates.id"), index=True)
    name = Column(Text, nullable=False)
    source_type = Column(Text, nullable=False, default="openapi")  # openapi, manual, mcp
    base_url = Column(Text)
    mcp_server_uri = Column(Text)  # command (stdio) or URL (http)
    mcp_transport = Column(Text, default="stdio")
    mcp_env = Column(JSONB, default=dict)
    auth_type = Column(Text, nullable=False, default="passthrough")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class AgentSourceLink(Base):
    """Source linked to an agent."""

    __tablename__ = "agent_sources"

    id = Column(UUID(as_uuid=True), primary_key=True)
    agent_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    source_id = Column(UUID(as_uuid=True), ForeignKey("api_sources.id", ondelete="CASCADE"), nullable=False)
    permission = Column(Text, nullable=False, default="read")  # read, read_write


class UserApiCredential(Base):
    """Per-user credential bundle; one active per (user, source)."""

    __tablename__ = "user_api_credentials"

    id = Column(UUID(as_uuid=True), primary_key=True)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    source_id = Column(UUID(as_uuid=True), ForeignKey("api_sources.id", ondelete="CASCADE"), nullable=False)
    label = Column(Text, nullable=False, default="Default")
    credentials = Column(JSONB, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)


class ToolRow(Base):
    """Tenant-owned tool."""

    __tablename__ = "tools"

    id = Column(UUID(as_uuid=True), primary_key=True)
    source_id = Column(UUID(as_uuid=True), ForeignKey("api_sources.id", ondelete="CASCADE"), nullable=False, index=True)
    operation_id = Column(Text)
    name = Column(Text, nullable=False)
    description = Column(Text)
    method = Column(Text, nullable=False)
    path = Column(Text, nullable=False)
    parameters = Column(JSONB, nullable=False, default=dict)
    request_body = Column(JSONB)
    mcp_tool_name = Column(Text)
    risk_level = Column(Text, nullable=False, default="safe")
    requires_confirmation = Column(Boolean, nullable=False, default=False)
    tags = Column(ARRAY(Text), nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)


class TemplateToolRow(Base):
    """Tool of a shared template."""

    __tablename__ = "template_tools"

    id = Column(UUID(as_uuid=True), primary_key=True)
    template_id = Column(UUID(as_uuid=True), ForeignKey("source_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    operation_id = Column(Text)
    name = Column(Text, nullable=False)
    description = Column(Text)
    method = Column(Text, nullable=False)
    path = Column(Text, nullable=False)
    parameters = Column(JSONB, nullable=False, default=dict)
    request_body = Column(JSONB)
    mcp_tool_name = Column(Text)
    risk_level = Column(Text, nullable=False, default="safe")
    requires_confirmation = Column(Boolean, nullable=False, default=False)
    tags = Column(ARRAY(Text), nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)


class RoutineRow(Base):
    """Saved routine with its ordered tool chain."""

    __tablename__ = "routines"

    id = Column(UUID(as_uuid=True), primary_key=True)
    org_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False)
    tool_chain = Column(ARRAY(UUID(as_uuid=True)), default=list)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
