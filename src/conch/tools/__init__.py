"""Built-in remote-host tools."""

from conch.tools.base import BaseTool, ReadOnlyTool
from conch.tools.command import CommandSafetyPolicy, ExecuteCommandTool
from conch.tools.files import ListDirectoryTool, ReadFileTool, WriteFileTool
from conch.tools.registry import ToolRegistry, default_tools
from conch.tools.service import ManageServiceTool
from conch.tools.shell import shell_escape
from conch.tools.system import NetworkStatusTool, ProcessListTool, SystemInfoTool

__all__ = [
    "BaseTool",
    "CommandSafetyPolicy",
    "ExecuteCommandTool",
    "ListDirectoryTool",
    "ManageServiceTool",
    "NetworkStatusTool",
    "ProcessListTool",
    "ReadFileTool",
    "ReadOnlyTool",
    "SystemInfoTool",
    "ToolRegistry",
    "WriteFileTool",
    "default_tools",
    "shell_escape",
]
