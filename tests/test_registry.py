"""Tool Registry Tests."""

from relay_tools.base import RiskLevel, ToolMetadata
from relay_tools.registry import ToolRegistry


class MockTool:
    def __init__(self, key, risk_level=RiskLevel.SAFE, requires_confirmation=False, system=False):
        self.key = key
        self.description = "Mock tool"
        self.input_schema = {"type": "object", "properties": {}}
        self.metadata = ToolMetadata(
            risk_level=risk_level, requires_confirmation=requires_confirmation, system=system
        )

    async def execute(self, args):
        return {"result": "ok"}


def test_register_and_retrieve_tool():
    """Test tool registration and retrieval."""
    registry = ToolRegistry()
    registry.register(MockTool("mock_tool"))

    retrieved = registry.get("mock_tool")

    assert retrieved is not None
    assert retrieved.key == "mock_tool"
    assert "mock_tool" in registry
    assert len(registry) == 1


def test_filter_by_risk_and_confirmation():
    registry = ToolRegistry(
        [
            MockTool("list_things"),
            MockTool("drop_table", risk_level=RiskLevel.DANGEROUS),
            MockTool("update_thing", RiskLevel.MODERATE, requires_confirmation=True),
        ]
    )

    assert [t.key for t in registry.filter_by_risk(RiskLevel.DANGEROUS)] == ["drop_table"]
    assert {t.key for t in registry.requiring_confirmation()} == {"drop_table", "update_thing"}


def test_system_tools_and_keys():
    registry = ToolRegistry([MockTool("a"), MockTool("search_tools", system=True)])

    assert registry.keys() == ["a", "search_tools"]
    assert [t.key for t in registry.system_tools()] == ["search_tools"]
