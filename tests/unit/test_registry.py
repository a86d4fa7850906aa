"""Tests for conch.tools.registry and the OpenAI tool schema."""

from __future__ import annotations

import pytest

from conch.errors import DuplicateToolError, UnknownToolError
from conch.providers.base import tool_def_to_openai
from conch.tools.base import ReadOnlyTool
from conch.tools.files import ReadFileTool
from conch.tools.registry import ToolRegistry
from conch.types.tools import Tool, ToolArguments, ToolDef, ToolParam, ToolResultData

DEFAULT_NAMES = [
    "execute_ssh_command",
    "read_file",
    "write_file",
    "list_directory",
    "get_system_info",
    "get_process_list",
    "get_network_status",
    "manage_service",
]


class UptimeTool(ReadOnlyTool):
    @property
    def definition(self) -> ToolDef:
        return ToolDef(name="uptime", description="Show uptime.")

    async def execute(self, args: ToolArguments, executor) -> ToolResultData:
        return self._ok(await executor.execute("uptime"))


class TestToolRegistry:
    def test_defaults(self, registry: ToolRegistry):
        assert registry.names == DEFAULT_NAMES
        assert len(registry) == 8

    def test_all_defaults_satisfy_protocol(self, registry: ToolRegistry):
        assert all(isinstance(tool, Tool) for tool in registry)

    def test_get(self, registry: ToolRegistry):
        tool = registry.get("read_file")
        assert tool is not None
        assert tool.definition.name == "read_file"

    def test_lookup_is_exact(self, registry: ToolRegistry):
        assert registry.get("Read_File") is None
        assert "read_file " not in registry
        assert "read_file" in registry

    def test_require_unknown(self, registry: ToolRegistry):
        with pytest.raises(UnknownToolError) as exc_info:
            registry.require("format_disk")
        assert exc_info.value.name == "format_disk"
        assert str(exc_info.value) == "Unknown tool 'format_disk'"

    def test_register_custom(self):
        reg = ToolRegistry()
        reg.register(UptimeTool())
        assert reg.names == ["uptime"]

    def test_duplicate_rejected(self, registry: ToolRegistry):
        with pytest.raises(DuplicateToolError, match="read_file"):
            registry.register(ReadFileTool())
        assert len(registry) == 8

    def test_definitions(self, registry: ToolRegistry):
        defs = registry.definitions()
        assert [d["function"]["name"] for d in defs] == DEFAULT_NAMES
        assert all(d["type"] == "function" for d in defs)

    def test_repr(self):
        assert repr(ToolRegistry([UptimeTool()])) == "ToolRegistry(tools=['uptime'])"


class TestToolSchema:
    def test_required_and_optional(self):
        entry = tool_def_to_openai(ReadFileTool().definition)
        params = entry["function"]["parameters"]
        assert params["type"] == "object"
        assert params["required"] == ["path"]
        assert "explanation" in params["properties"]
        assert params["properties"]["start_line"] == {
            "type": "integer",
            "description": "Optional 1-based start line. Reads from the beginning if omitted.",
        }

    def test_enum(self, registry: ToolRegistry):
        entry = tool_def_to_openai(registry.require("get_system_info").definition)
        category = entry["function"]["parameters"]["properties"]["category"]
        assert category["enum"] == ["all", "cpu", "memory", "disk", "os"]

    def test_no_required_key_when_all_optional(self):
        entry = tool_def_to_openai(ToolDef(
            name="t", description="d",
            parameters=(ToolParam(name="x", type="string", description="x", required=False),),
        ))
        assert "required" not in entry["function"]["parameters"]

    def test_array_items(self):
        entry = tool_def_to_openai(ToolDef(
            name="t", description="d",
            parameters=(ToolParam(name="xs", type="array", description="xs"),),
        ))
        assert entry["function"]["parameters"]["properties"]["xs"]["items"] == {"type": "string"}
