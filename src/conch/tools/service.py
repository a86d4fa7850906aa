"""manage_service — systemd status, logs and lifecycle actions."""

from __future__ import annotations

from conch.errors import InvalidArgumentsError
from conch.executors.base import CommandExecutor
from conch.tools.base import BaseTool
from conch.tools.shell import shell_escape
from conch.types.tools import SafetyLevel, ToolArguments, ToolDef, ToolParam, ToolResultData

SAFE_ACTIONS = frozenset({"status", "logs"})
LIFECYCLE_ACTIONS = frozenset({"start", "stop", "restart", "enable", "disable"})

_DEFAULT_LOG_LINES = 50


class ManageServiceTool(BaseTool):
    """Read-only actions run freely; anything that changes a service needs confirmation."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="manage_service",
            description=(
                "Manage systemd services on the remote server. Can check status, view "
                "logs, start, stop, restart, enable or disable services."
            ),
            parameters=(
                ToolParam(
                    name="service",
                    type="string",
                    description="Name of the systemd service (e.g. 'nginx', 'docker', 'sshd').",
                ),
                ToolParam(
                    name="action",
                    type="string",
                    description="Action to perform on the service.",
                    enum=("status", "logs", "start", "stop", "restart", "enable", "disable"),
                ),
                ToolParam(
                    name="log_lines",
                    type="integer",
                    description=f"Log lines to show for 'logs'. Defaults to {_DEFAULT_LOG_LINES}.",
                    required=False,
                ),
                ToolParam(
                    name="explanation",
                    type="string",
                    description="A brief explanation of why you are managing this service.",
                    required=False,
                ),
            ),
        )

    def classify(self, args: ToolArguments) -> SafetyLevel:
        if args.get_str("action") in SAFE_ACTIONS:
            return SafetyLevel.SAFE
        return SafetyLevel.NEEDS_CONFIRMATION

    @staticmethod
    def build_command(service: str, action: str, log_lines: int = _DEFAULT_LOG_LINES) -> str:
        quoted = shell_escape(service)
        if action == "status":
            return f"systemctl status {quoted}"
        if action == "logs":
            return f"journalctl -u {quoted} -n {log_lines} --no-pager"
        if action in LIFECYCLE_ACTIONS:
            return f"sudo systemctl {action} {quoted}"
        raise InvalidArgumentsError(f"Unknown action: {action}")

    async def execute(self, args: ToolArguments, executor: CommandExecutor) -> ToolResultData:
        command = self.build_command(
            args.get_str("service"),
            args.get_str("action"),
            args.get_int("log_lines", _DEFAULT_LOG_LINES),
        )
        return self._ok(await executor.execute(command))
