"""Host inspection tools — system info, processes, network."""

from __future__ import annotations

from conch.executors.base import CommandExecutor
from conch.tools.base import ReadOnlyTool
from conch.tools.shell import shell_escape
from conch.types.tools import ToolArguments, ToolDef, ToolParam, ToolResultData

_SYSTEM_COMMANDS: dict[str, str] = {
    "cpu": "nproc && cat /proc/cpuinfo | grep 'model name' | head -1 && uptime",
    "memory": "free -h",
    "disk": "df -h",
    "os": "uname -a && cat /etc/os-release 2>/dev/null || echo 'Unknown OS'",
    "all": (
        "echo '=== OS ===' && uname -a && "
        "echo '=== CPU ===' && nproc && uptime && "
        "echo '=== Memory ===' && free -h && "
        "echo '=== Disk ===' && df -h"
    ),
}

_NETWORK_COMMANDS: dict[str, str] = {
    "interfaces": "ip addr show 2>/dev/null || ifconfig",
    "connections": "ss -tunap 2>/dev/null || netstat -tunap 2>/dev/null",
    "ports": "ss -tlnp 2>/dev/null || netstat -tlnp 2>/dev/null",
    "all": (
        "echo '=== Interfaces ===' && (ip addr show 2>/dev/null || ifconfig) && "
        "echo '=== Listening ports ===' && (ss -tlnp 2>/dev/null || netstat -tlnp 2>/dev/null)"
    ),
}

_SORT_FLAGS: dict[str, str] = {
    "cpu": "--sort=-%cpu",
    "memory": "--sort=-%mem",
    "pid": "--sort=pid",
}

_DEFAULT_PROCESS_LIMIT = 20


class SystemInfoTool(ReadOnlyTool):
    """CPU, memory, disk and OS details."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="get_system_info",
            description=(
                "Get system information including CPU, memory, disk usage, and OS "
                "details from the remote server."
            ),
            parameters=(
                ToolParam(
                    name="category",
                    type="string",
                    description="Category of system info to retrieve. Defaults to 'all'.",
                    required=False,
                    enum=("all", "cpu", "memory", "disk", "os"),
                ),
                ToolParam(
                    name="explanation",
                    type="string",
                    description="A brief explanation of why you need this system info.",
                    required=False,
                ),
            ),
        )

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        category = args.get_str("category", "all")
        command = _SYSTEM_COMMANDS.get(category, _SYSTEM_COMMANDS["all"])
        return self._ok(await executor.execute(command))


class ProcessListTool(ReadOnlyTool):
    """``ps aux`` sorted and trimmed, optionally filtered by name."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="get_process_list",
            description="List running processes on the remote server, optionally filtered by name.",
            parameters=(
                ToolParam(
                    name="filter",
                    type="string",
                    description="Only show processes matching this string.",
                    required=False,
                ),
                ToolParam(
                    name="sort_by",
                    type="string",
                    description="Sort by CPU usage, memory usage, or PID. Defaults to 'cpu'.",
                    required=False,
                    enum=("cpu", "memory", "pid"),
                ),
                ToolParam(
                    name="limit",
                    type="integer",
                    description=f"Maximum number of processes to return. Defaults to {_DEFAULT_PROCESS_LIMIT}.",
                    required=False,
                ),
                ToolParam(
                    name="explanation",
                    type="string",
                    description="A brief explanation of why you need the process list.",
                    required=False,
                ),
            ),
        )

    @staticmethod
    def build_command(name_filter: str | None, sort_by: str, limit: int) -> str:
        sort_flag = _SORT_FLAGS.get(sort_by, _SORT_FLAGS["cpu"])
        limit = max(1, limit)
        if name_filter:
            return (
                f"ps aux {sort_flag} | head -1; "
                f"ps aux {sort_flag} | grep {shell_escape(name_filter)} | grep -v grep | head -n {limit}"
            )
        return f"ps aux {sort_flag} | head -n {limit + 1}"

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        command = self.build_command(
            args.optional_str("filter"),
            args.get_str("sort_by", "cpu"),
            args.get_int("limit", _DEFAULT_PROCESS_LIMIT),
        )
        return self._ok(await executor.execute(command))


class NetworkStatusTool(ReadOnlyTool):
    """Interfaces, connections and listening ports."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="get_network_status",
            description=(
                "Get network status information from the remote server, including "
                "interfaces, connections, and ports."
            ),
            parameters=(
                ToolParam(
                    name="category",
                    type="string",
                    description="Category of network info to retrieve. Defaults to 'all'.",
                    required=False,
                    enum=("interfaces", "connections", "ports", "all"),
                ),
                ToolParam(
                    name="explanation",
                    type="string",
                    description="A brief explanation of why you need the network status.",
                    required=False,
                ),
            ),
        )

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        category = args.get_str("category", "all")
        command = _NETWORK_COMMANDS.get(category, _NETWORK_COMMANDS["all"])
        return self._ok(await executor.execute(command))
