"""ToolRegistry — name-keyed lookup of the tools exposed to the model."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from conch.errors import DuplicateToolError, UnknownToolError
from conch.providers.base import tool_defs_to_openai
from conch.tools.base import BaseTool
from conch.types.tools import Tool, ToolDef


class ToolRegistry:
    """Registers tools and looks them up by exact name.

    Usage::

        registry = ToolRegistry.with_defaults()
        tool = registry.get("read_file")
        schema = registry.definitions()
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._registry: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    @classmethod
    def with_defaults(cls) -> ToolRegistry:
        """A registry holding the built-in remote-host tools."""
        return cls(default_tools())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: Tool) -> None:
        """Add *tool* under its definition name.

        Raises :class:`DuplicateToolError` if the name is taken.
        """
        name = tool.definition.name
        if name in self._registry:
            raise DuplicateToolError(f"Tool '{name}' is already registered")
        self._registry[name] = tool

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Tool | None:
        """Return the tool with the given name, or None."""
        return self._registry.get(name)

    def require(self, name: str) -> Tool:
        """Return the tool with the given name.

        Raises :class:`UnknownToolError` if nothing is registered under it.
        """
        tool = self._registry.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def tool_defs(self) -> list[ToolDef]:
        return [tool.definition for tool in self._registry.values()]

    def definitions(self) -> list[dict[str, Any]]:
        """OpenAI ``tools`` array for the request body."""
        return tool_defs_to_openai(self.tool_defs())

    @property
    def names(self) -> list[str]:
        return list(self._registry)

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._registry.values())

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={sorted(self._registry)})"


def default_tools() -> list[BaseTool]:
    from conch.tools.command import ExecuteCommandTool
    from conch.tools.files import ListDirectoryTool, ReadFileTool, WriteFileTool
    from conch.tools.service import ManageServiceTool
    from conch.tools.system import NetworkStatusTool, ProcessListTool, SystemInfoTool

    return [
        ExecuteCommandTool(),
        ReadFileTool(),
        WriteFileTool(),
        ListDirectoryTool(),
        SystemInfoTool(),
        ProcessListTool(),
        NetworkStatusTool(),
        ManageServiceTool(),
    ]
