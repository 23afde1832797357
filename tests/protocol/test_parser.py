"""Tests for tool listing conversion, result parsing and template hints."""

from relay_tools.adapters.protocol import (
    build_source_guidance,
    convert_tool,
    determine_risk_level,
    parse_tool_result,
    post_process_result,
    pre_process_args,
)
from relay_tools.adapters.protocol.hints import detect_thin_results, matches_pattern
from relay_tools.adapters.protocol.parser import humanize_name
from relay_tools.base import RiskLevel, ToolOrigin, ToolSource

# ============================================================================
# LISTING CONVERSION
# ============================================================================


def test_risk_levels():
    assert determine_risk_level("delete_everything", "Remove all records") is RiskLevel.DANGEROUS
    assert determine_risk_level("list_users", "List users") is RiskLevel.SAFE
    assert determine_risk_level("update_record", "Update a record") is RiskLevel.MODERATE
    # a safe verb at the start wins over moderate words later on
    assert determine_risk_level("get_settings", "Get settings") is RiskLevel.SAFE
    # dangerous words win everywhere
    assert determine_risk_level("get_thing", "and then purge it") is RiskLevel.DANGEROUS


def test_humanize_name():
    assert humanize_name("read_file") == "Read File"
    assert humanize_name("listUsers") == "List Users"
    assert humanize_name("get-item") == "Get Item"


def test_convert_tool():
    descriptor = convert_tool(
        {
            "name": "delete_everything",
            "description": "Remove all records",
            "inputSchema": {"type": "object", "properties": {"confirm": {"type": "boolean"}}},
        },
        "src-9",
    )

    assert descriptor.id == "src-9:delete_everything"
    assert descriptor.method == "MCP"
    assert descriptor.is_protocol
    assert descriptor.protocol_tool_name == "delete_everything"
    assert descriptor.origin is ToolOrigin.LIVE
    assert descriptor.requires_confirmation
    assert "destructive" in descriptor.tags
    assert descriptor.parameters["properties"] == {"confirm": {"type": "boolean"}}
    assert descriptor.parameters["required"] == []


def test_convert_tool_without_schema_or_description():
    descriptor = convert_tool({"name": "ping"}, "src-9")
    assert descriptor.description == "Execute ping"
    assert descriptor.parameters == {"type": "object", "properties": {}}
    assert not descriptor.requires_confirmation


# ============================================================================
# RESULT PARSING
# ============================================================================


def test_parse_json_text():
    parsed = parse_tool_result({"content": [{"type": "text", "text": '[{"id": 1}]'}]})
    assert parsed.data == [{"id": 1}]
    assert not parsed.is_error


def test_parse_plain_text_and_error_flag():
    parsed = parse_tool_result(
        {"content": [{"type": "text", "text": "no such file"}], "isError": True}
    )
    assert parsed.is_error
    assert parsed.text == "no such file"
    assert parsed.data is None


def test_parse_mixed_blocks():
    parsed = parse_tool_result(
        {
            "content": [
                {"type": "text", "text": "see "},
                {"type": "image", "mimeType": "image/png", "data": "..."},
                {"type": "resource", "resource": {"uri": "file:///a.txt", "text": "hello"}},
            ]
        }
    )
    assert parsed.text == "see [Image: image/png][Resource: file:///a.txt]\nhello"


def test_parse_structured_content_fallback():
    parsed = parse_tool_result(
        {"content": [{"type": "text", "text": "3 results"}], "structuredContent": {"count": 3}}
    )
    assert parsed.data == {"count": 3}


def test_parse_empty():
    parsed = parse_tool_result(None)
    assert parsed.text == ""
    assert parsed.data is None


# ============================================================================
# HINTS
# ============================================================================

HINTS = {
    "list_expansion": {"param": "expand", "default": ["*"], "tool_patterns": ["list_*"]},
    "response": {"unwrap_data": True},
    "llm_guidance": "Use expand to get full objects.",
}


def test_matches_pattern():
    assert matches_pattern("list_customers", "list_*")
    assert matches_pattern("fetch_resources", "*_resources")
    assert matches_pattern("anything", "*")
    assert not matches_pattern("get_customer", "list_*")


def test_pre_process_applies_expansion_default():
    assert pre_process_args({"limit": 5}, "list_customers", HINTS) == {"limit": 5, "expand": ["*"]}
    assert pre_process_args({"expand": ["data.x"]}, "list_customers", HINTS) == {"expand": ["data.x"]}
    assert pre_process_args({}, "get_customer", HINTS) == {}
    assert pre_process_args({"a": 1}, "list_customers", None) == {"a": 1}


def test_post_process_unwraps_data():
    assert post_process_result({"data": [{"id": 1, "name": "A", "email": "a@x"}]}, "list_x", HINTS) == [
        {"id": 1, "name": "A", "email": "a@x"}
    ]
    assert post_process_result({"data": []}, "list_x", HINTS) == {"data": []}


def test_detect_thin_results():
    assert detect_thin_results([{"id": "cus_1"}])
    assert detect_thin_results([{"id": "cus_1", "object": "customer"}])
    assert not detect_thin_results([{"id": "cus_1", "object": "customer", "email": "a@x"}])
    assert not detect_thin_results({"id": "cus_1"})


def test_build_source_guidance():
    sources = [
        ToolSource(id="s1", name="Stripe", hints=HINTS),
        ToolSource(id="s2", name="Plain"),
    ]
    assert build_source_guidance(sources) == (
        "\n### Source-Specific Tips\n**Stripe:** Use expand to get full objects."
    )
    assert build_source_guidance([ToolSource(id="s2", name="Plain")]) == ""
