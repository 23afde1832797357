"""Tests for callable-tool conversion and system tools."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from relay_tools.base import (
    AgentSource,
    Credential,
    RiskLevel,
    ToolCallResult,
    ToolOrigin,
    ToolSource,
)
from relay_tools.catalog import (
    SearchToolsTool,
    ToolConverter,
    ToolGroup,
    build_input_schema,
    create_system_tools,
    sanitize_tool_key,
)
from relay_tools.catalog.converter import deep_clean_schema


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute_tool = AsyncMock(
        return_value=ToolCallResult(
            status=200, body={"id": "re_1"}, duration_ms=12, target="https://api.example.com/refunds/re_1"
        )
    )
    return executor


# ============================================================================
# KEYS AND SCHEMAS
# ============================================================================


def test_sanitize_tool_key():
    key = sanitize_tool_key("Get refund (by id)", "3f2a9c1e-aaaa-bbbb")
    assert key == "Get_refund_by_id_3f2a9c1e"


def test_sanitize_tool_key_bounded():
    key = sanitize_tool_key("x" * 200, "abcdefghijkl")
    assert len(key) == 64
    assert key.endswith("_abcdefgh")


def test_deep_clean_schema():
    assert deep_clean_schema(
        {"type": "object", "properties": {"a": {"type": "None"}, "b": {"items": {"type": None}}}}
    ) == {"type": "object", "properties": {"a": {"type": "string"}, "b": {"items": {"type": "string"}}}}


def test_build_input_schema_merges_params_and_body(make_tool):
    tool = make_tool(
        "t-1",
        method="POST",
        path="/customers/{id}/refunds",
        parameters={
            "type": "object",
            "properties": {"id": {"in": "path"}, "expand": {"type": "array", "in": "query"}},
            "required": ["id"],
        },
        request_body={
            "type": "object",
            "properties": {"amount": {"type": "integer"}, "reason": {"type": "null"}},
            "required": ["amount", "id"],
        },
    )

    schema = build_input_schema(tool)

    assert schema["type"] == "object"
    assert schema["required"] == ["id", "amount"]
    assert schema["properties"]["id"] == {"type": "string", "description": "path parameter: id"}
    assert schema["properties"]["expand"]["type"] == "array"
    assert "in" not in schema["properties"]["expand"]
    assert schema["properties"]["amount"] == {"type": "integer"}
    assert schema["properties"]["reason"] == {"type": "string"}


# ============================================================================
# CONVERSION
# ============================================================================


def test_convert_maps_tenant_and_template_tools(make_tool, executor):
    tenant_source = ToolSource(id="src-tenant", name="Billing")
    template_source = ToolSource(id="src-stripe", name="Stripe", template_id="tpl-stripe")
    links = [AgentSource(source=tenant_source), AgentSource(source=template_source)]
    tools = [
        make_tool("t-1", name="Get invoice"),
        make_tool("t-2", name="List charges", origin=ToolOrigin.TEMPLATE, template_id="tpl-stripe"),
        make_tool("t-3", name="Orphan", source_id="src-unlinked"),
    ]

    converted = ToolConverter(executor).convert(tools, links, {})

    assert [t.metadata.tool_id for t in converted] == ["t-1", "t-2"]
    assert converted[1].metadata.source_id == "src-stripe"
    assert converted[1].metadata.origin is ToolOrigin.TEMPLATE


def test_read_only_link_drops_writes(make_tool, executor):
    link = AgentSource(source=ToolSource(id="src-tenant", name="Billing"), permission="read")
    tools = [
        make_tool("t-1", method="GET"),
        make_tool("t-2", method="POST"),
        make_tool("t-3", method="DELETE"),
        make_tool("t-4", method="HEAD"),
    ]

    converted = ToolConverter(executor).convert(tools, [link], {})

    assert [t.metadata.tool_id for t in converted] == ["t-1", "t-4"]


def test_description_marks_confirmation(make_tool, executor):
    link = AgentSource(source=ToolSource(id="src-tenant", name="Billing"))
    tool = make_tool(
        "t-9", name="Delete customer", method="DELETE", path="/customers/{id}",
        description="Delete a customer", risk_level=RiskLevel.DANGEROUS,
    )

    (callable_tool,) = ToolConverter(executor).convert([tool], [link], {})

    assert callable_tool.description == "Delete a customer (DELETE /customers/{id}) [requires confirmation]"
    assert callable_tool.needs_approval
    assert callable_tool.metadata.risk_level is RiskLevel.DANGEROUS


@pytest.mark.asyncio
async def test_execute_closure_binds_source_and_credentials(make_tool, executor):
    source = ToolSource(id="src-tenant", name="Billing", base_url="https://api.example.com")
    credential = Credential(source_id="src-tenant", secrets={"token": "T"})
    tool = make_tool("t-1", name="Get refund", path="/refunds/{id}")

    (callable_tool,) = ToolConverter(executor, result_max_chars=500).convert(
        [tool], [AgentSource(source=source)], {"src-tenant": credential}, caller_id="user-1"
    )
    outcome = await callable_tool.execute({"id": "re_1"})

    executor.execute_tool.assert_awaited_once_with(tool, source, {"id": "re_1"}, credential, "user-1")
    assert outcome["record"]["status"] == 200
    assert outcome["record"]["source_name"] == "Billing"
    assert outcome["record"]["arguments"] == {"id": "re_1"}
    assert outcome["result"] == '{\n  "id": "re_1"\n}'


# ============================================================================
# SYSTEM TOOLS
# ============================================================================


def test_create_system_tools(catalog_store, fake_embedder):
    tenant = ToolGroup(origin=ToolOrigin.TENANT, ids=("src-tenant",))

    assert create_system_tools(catalog_store, None, [tenant]) == []
    assert create_system_tools(catalog_store, fake_embedder, []) == []

    (search,) = create_system_tools(catalog_store, fake_embedder, [tenant])
    assert search.key == "search_tools"
    assert search.metadata.system
    assert search.input_schema["required"] == ["query"]


@pytest.mark.asyncio
async def test_search_tools_merges_groups_by_similarity(catalog_store, fake_embedder, make_tool):
    catalog_store.add_tools(
        [
            make_tool("t-1", name="Cancel subscription", embedded=True),
            make_tool("t-2", name="Get customer", embedded=True),
            make_tool(
                "p-1", name="Delete subscription", origin=ToolOrigin.TEMPLATE,
                template_id="tpl-stripe", embedded=True,
            ),
        ]
    )
    catalog_store.similarity = {"t-1": 0.91, "t-2": 0.42, "p-1": 0.77}
    groups = [
        ToolGroup(origin=ToolOrigin.TEMPLATE, ids=("tpl-stripe",)),
        ToolGroup(origin=ToolOrigin.TENANT, ids=("src-tenant",)),
    ]

    result = await SearchToolsTool(catalog_store, fake_embedder, groups, limit=2).execute(
        {"query": "cancel a subscription"}
    )

    assert [t["name"] for t in result["tools"]] == ["Cancel subscription", "Delete subscription"]
    assert result["tools"][0]["match"] == "91%"
    assert result["message"].startswith("Found 2 matching tools")
    assert fake_embedder.calls == ["cancel a subscription"]


@pytest.mark.asyncio
async def test_search_tools_reports_embedding_outage(catalog_store, failing_embedder):
    groups = [ToolGroup(origin=ToolOrigin.TENANT, ids=("src-tenant",))]
    result = await SearchToolsTool(catalog_store, failing_embedder, groups).execute({"query": "x"})

    assert result["tools"] == []
    assert "unavailable" in result["message"]


@pytest.mark.asyncio
async def test_search_tools_without_matches(catalog_store, fake_embedder):
    groups = [ToolGroup(origin=ToolOrigin.TENANT, ids=("src-tenant",))]
    result = await SearchToolsTool(catalog_store, fake_embedder, groups).execute({"query": "x"})

    assert result["tools"] == []
    assert result["message"].startswith("No matching tools found")
